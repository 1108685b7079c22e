"""
RadCatalog Backend - Sync & Enrichment Result Schemas
=======================================================

What:  Summary objects produced by the reconciler, refresher and generator,
       and the envelopes the /api/sync routes return them in.
How:   Services build the snake_case models; routes wrap them in `SyncResponse`
       (`{"success": true, "message": ..., "data": {...}}`), serialized by alias.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _SummaryModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ReconcileStats(_SummaryModel):
    """
    Counters for one reconciliation run.

    Per-item failures are recorded as "Subspecialty <code>: <message>" or
    "Template <template_id>: <message>" and never abort the run.
    """

    subspecialties_processed: int = Field(default=0, alias="subspecialtiesProcessed")
    templates_processed: int = Field(default=0, alias="templatesProcessed")
    relationships_created: int = Field(default=0, alias="relationshipsCreated")
    errors: List[str] = Field(default_factory=list)


class RefreshOutcome(_SummaryModel):
    """Result of enriching a single template from upstream details."""

    template_id: str = Field(alias="templateId")
    success: bool
    fallback: bool = False
    error: Optional[str] = None


class RefreshSummary(_SummaryModel):
    updated: int = 0
    failed: int = 0
    total: int = 0
    errors: List[str] = Field(default_factory=list)


class GenerateSummary(_SummaryModel):
    updated: int = 0
    skipped: int = 0


class SyncResponse(_SummaryModel):
    success: bool = True
    message: str
    data: dict
