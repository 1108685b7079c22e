"""
RadCatalog Backend - Catalog API Response Schemas
===================================================

What:  Pydantic models defining the read API contract (subspecialties, templates).
How:   Built from ORM rows with `model_validate(..., from_attributes=True)`;
       serialized by alias, so JSON keys keep the upstream camelCase spelling
       (`shortName`, `specCode`, `templateData`, ...).
Who:   Returned by the routers in app/routes/subspecialties.py and templates.py.

Envelope:
    Every body carries `success`. Successful reads wrap the payload in `data`;
    paginated lists add `pagination{total, skip, limit, hasMore}`.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CatalogModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


# ══════════════════════════════════════════════════════════════════════════
# Entity Representations
# ══════════════════════════════════════════════════════════════════════════


class SubspecialtyOut(_CatalogModel):
    id: int
    code: str = Field(description="Upstream subspecialty code")
    short_name: str = Field(alias="shortName")
    name: str
    radlex_id: Optional[str] = Field(default=None, alias="radlexID")
    count: int = Field(description="Number of linked templates")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")


class TemplateOut(_CatalogModel):
    id: int
    template_id: str
    template_version: str
    title: str
    lang: str
    created: datetime
    specialty: str
    spec_code: str = Field(alias="specCode")
    tlap_approved: Optional[str] = Field(default=None, alias="TLAP_Approved")
    views: int
    downloads: int
    description: Optional[str] = None
    author: Optional[str] = None
    firstname: Optional[str] = None
    lastname: Optional[str] = None
    data_type: str = Field(alias="dataType")
    template_data: Optional[str] = Field(default=None, alias="templateData")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")


class SubspecialtyDetail(SubspecialtyOut):
    """Subspecialty plus its templates (newest first); `templates` is null when not requested."""

    templates: Optional[List[TemplateOut]] = None


class TemplateDetail(TemplateOut):
    """Template plus the subspecialties it is linked to; null when not requested."""

    subspecialties: Optional[List[SubspecialtyOut]] = None


# ══════════════════════════════════════════════════════════════════════════
# Envelopes
# ══════════════════════════════════════════════════════════════════════════


class Pagination(_CatalogModel):
    """
    total:   rows matching the filters before skip/limit
    limit:   null when the caller asked for everything
    hasMore: true only when a limit was given and skip + limit < total
    """

    total: int
    skip: int
    limit: Optional[int] = None
    has_more: bool = Field(alias="hasMore")


class SubspecialtyListResponse(_CatalogModel):
    success: bool = True
    data: List[SubspecialtyOut]
    pagination: Pagination


class HierarchicalResponse(_CatalogModel):
    success: bool = True
    data: List[SubspecialtyDetail]
    pagination: Pagination


class SubspecialtyResponse(_CatalogModel):
    success: bool = True
    data: SubspecialtyDetail


class TemplateListResponse(_CatalogModel):
    success: bool = True
    data: List[TemplateOut]
    pagination: Pagination


class TemplateResponse(_CatalogModel):
    success: bool = True
    data: TemplateDetail


class TemplateSubspecialtiesResponse(_CatalogModel):
    success: bool = True
    data: List[SubspecialtyOut]


# ══════════════════════════════════════════════════════════════════════════
# Error & Health
# ══════════════════════════════════════════════════════════════════════════


class ErrorResponse(BaseModel):
    """
    Standardized error body for all API errors.

    Example:
        {
            "success": false,
            "error": "not_found",
            "message": "subspecialty with ID 'ZZ' was not found",
            "request_id": "550e8400-e29b-41d4-a716-446655440000"
        }
    """

    success: bool = False
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str
    database: str = Field(description="connected or disconnected")
    upstream: str = Field(description="available or unavailable")
    uptime_seconds: float
