"""
RadCatalog Backend - Sync Service (Fetch-then-Reconcile Orchestrator)
=======================================================================

What:  The four synchronization flows exposed over HTTP and the job entrypoint.
How:   Fetches raw collections from a CatalogSource, hands them to the
       RelationshipReconciler, and commits the whole run as one transaction.

Flows:
    sync_all             subspecialties + template listing
    sync_detailed        subspecialties + listing merged with per-template details
    sync_subspecialties  subspecialties only; templates treated as empty, so
                         every association is cleared and all counts drop to 0
    sync_templates       template listing reconciled against the subspecialties
                         already stored

Concurrency:
    Reconciliation clears and rebuilds the association table, so two runs must
    not interleave. A process-wide asyncio.Lock serializes them; upstream
    fetches happen outside the lock. There is no cross-process exclusion.
"""

import asyncio
import logging
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.subspecialty import Subspecialty
from app.schemas.sync import ReconcileStats
from app.services.catalog_source import CatalogSource
from app.services.reconciler import RelationshipReconciler, relationship_reconciler

logger = logging.getLogger(__name__)


def _as_raw(subspecialty: Subspecialty) -> Dict[str, Any]:
    """Stored subspecialty in the upstream record shape."""
    return {
        "code": subspecialty.code,
        "shortName": subspecialty.short_name,
        "name": subspecialty.name,
        "radlexID": subspecialty.radlex_id,
    }


class SyncService:
    def __init__(self, reconciler: RelationshipReconciler = relationship_reconciler):
        self.reconciler = reconciler
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def sync_all(self, db: AsyncSession, source: CatalogSource) -> ReconcileStats:
        subspecialties = await source.fetch_subspecialties()
        templates = await source.fetch_templates()
        logger.info(
            "Fetched %d subspecialties and %d templates", len(subspecialties), len(templates)
        )
        async with self._lock:
            return await self._reconcile_and_commit(db, subspecialties, templates)

    async def sync_detailed(self, db: AsyncSession, source: CatalogSource) -> ReconcileStats:
        subspecialties = await source.fetch_subspecialties()
        templates = await source.fetch_templates_with_details()
        logger.info(
            "Fetched %d subspecialties and %d detailed templates",
            len(subspecialties),
            len(templates),
        )
        async with self._lock:
            return await self._reconcile_and_commit(db, subspecialties, templates)

    async def sync_subspecialties(
        self, db: AsyncSession, source: CatalogSource
    ) -> ReconcileStats:
        subspecialties = await source.fetch_subspecialties()
        logger.info("Fetched %d subspecialties", len(subspecialties))
        async with self._lock:
            return await self._reconcile_and_commit(db, subspecialties, [])

    async def sync_templates(self, db: AsyncSession, source: CatalogSource) -> ReconcileStats:
        templates = await source.fetch_templates()
        logger.info("Fetched %d templates", len(templates))
        async with self._lock:
            result = await db.execute(select(Subspecialty).order_by(Subspecialty.code))
            existing = [_as_raw(s) for s in result.scalars().all()]
            logger.info("Reconciling templates against %d stored subspecialties", len(existing))
            return await self._reconcile_and_commit(db, existing, templates)

    async def _reconcile_and_commit(
        self,
        db: AsyncSession,
        subspecialties: List[Any],
        templates: List[Any],
    ) -> ReconcileStats:
        try:
            stats = await self.reconciler.reconcile(db, subspecialties, templates)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return stats


# Module-level singleton; its lock is what serializes runs within the process
sync_service = SyncService()
