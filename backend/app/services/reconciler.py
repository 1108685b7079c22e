"""
RadCatalog Backend - Relationship Reconciler
==============================================

What:  Turns raw upstream collections into canonical rows: upserts subspecialties
       and templates, rebuilds the subspecialty↔template association from each
       template's `specCode`, and recomputes the cached per-subspecialty counts.
Who:   Called by SyncService (HTTP and job entrypoints).
When:  After both collections have been fetched from the upstream catalog.

Reconciliation Flow:
    ┌──────────────┐   ┌─────────────────┐   ┌────────────────┐   ┌───────────┐
    │ Clear links  │──▶│ Upsert          │──▶│ Upsert         │──▶│ Recompute │
    │ (DELETE all) │   │ subspecialties  │   │ templates +    │   │ counts    │
    └──────────────┘   │ (code → id map) │   │ link by code   │   └───────────┘
                       └─────────────────┘   └────────────────┘

Transaction contract:
    The reconciler never commits. Every step runs in the caller's transaction,
    so readers see either the previous catalog or the fully rebuilt one. Each
    item is written inside its own SAVEPOINT: a failing item rolls back alone,
    is recorded in `ReconcileStats.errors`, and the run continues.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ConflictError, DatabaseError, RadCatalogError, ValidationError
from app.models.subspecialty import Subspecialty
from app.models.subspecialty_template import SubspecialtyTemplate
from app.models.template import Template
from app.schemas.sync import ReconcileStats
from app.schemas.upstream import RawSubspecialty, RawTemplate

logger = logging.getLogger(__name__)

# Attribution and content fields a sync must not wipe when the raw record lacks them
ENRICHMENT_FIELDS = ("description", "author", "firstname", "lastname", "template_data")


def parse_spec_code(spec_code: Optional[str]) -> List[str]:
    """
    Split a comma-separated subspecialty code list.

    Whitespace around codes is trimmed and empty entries are dropped; order is
    preserved and duplicates are kept.

    Examples:
        "CA,CT"      → ["CA", "CT"]
        " CA , ,CT " → ["CA", "CT"]
        "" / None    → []
    """
    if not spec_code:
        return []
    return [code.strip() for code in spec_code.split(",") if code.strip()]


def describe_validation_error(exc: PydanticValidationError) -> ValidationError:
    """Collapse a pydantic error into the application's ValidationError."""
    problems = []
    first_field: Optional[str] = None
    for err in exc.errors():
        loc = err.get("loc", ())
        if first_field is None and loc:
            first_field = str(loc[0])
        location = ".".join(str(part) for part in loc) or "record"
        problems.append(f"{location}: {err.get('msg')}")
    return ValidationError(message="; ".join(problems), field=first_field)


def _label(raw: Any, key: str) -> str:
    if isinstance(raw, dict) and raw.get(key) not in (None, ""):
        return str(raw[key])
    return "<unknown>"


class RelationshipReconciler:
    """
    Stateless reconciliation engine.

    Responsibilities:
        - reconcile(): the four-step rebuild described in the module docstring
        - recompute_counts(): align `Subspecialty.count` with live association rows

    Error Handling Strategy:
        Per-item failures are translated into application exceptions
        (pydantic errors → ValidationError, IntegrityError → ConflictError,
        other SQLAlchemy errors → DatabaseError) and recorded, never raised.
        Failures of the clear or recompute steps propagate as DatabaseError.
    """

    async def reconcile(
        self,
        db: AsyncSession,
        subspecialties: Iterable[Any],
        templates: Iterable[Any],
    ) -> ReconcileStats:
        stats = ReconcileStats()
        subspecialties = list(subspecialties)
        templates = list(templates)
        logger.info(
            "Reconciling %d subspecialties and %d templates",
            len(subspecialties),
            len(templates),
        )

        try:
            await db.execute(delete(SubspecialtyTemplate))
        except SQLAlchemyError as e:
            logger.error("Failed to clear associations: %s", e, exc_info=True)
            raise DatabaseError(context={"step": "clear_associations"}) from e

        # Subspecialty ids known in this run; ints survive savepoint rollbacks
        code_to_id: Dict[str, int] = {}
        for raw in subspecialties:
            try:
                record, sub_id = await self._process_subspecialty(db, raw)
            except RadCatalogError as e:
                label = _label(raw, "code")
                logger.warning("Subspecialty %s skipped: %s", label, e.message)
                stats.errors.append(f"Subspecialty {label}: {e.message}")
                continue
            code_to_id[record.code] = sub_id
            stats.subspecialties_processed += 1

        linked: Set[Tuple[int, int]] = set()
        for raw in templates:
            try:
                created_links = await self._process_template(db, raw, code_to_id, linked)
            except RadCatalogError as e:
                label = _label(raw, "template_id")
                logger.warning("Template %s skipped: %s", label, e.message)
                stats.errors.append(f"Template {label}: {e.message}")
                continue
            linked.update(created_links)
            stats.relationships_created += len(created_links)
            stats.templates_processed += 1

        await self.recompute_counts(db)

        logger.info(
            "Reconciliation finished: %d subspecialties, %d templates, %d relationships, %d errors",
            stats.subspecialties_processed,
            stats.templates_processed,
            stats.relationships_created,
            len(stats.errors),
        )
        return stats

    async def recompute_counts(self, db: AsyncSession) -> None:
        """Set every subspecialty's `count` to its number of association rows."""
        try:
            rows = await db.execute(
                select(SubspecialtyTemplate.subspecialty_id, func.count())
                .group_by(SubspecialtyTemplate.subspecialty_id)
            )
            counts = {sub_id: total for sub_id, total in rows.all()}

            result = await db.execute(select(Subspecialty))
            for subspecialty in result.scalars().all():
                new_count = counts.get(subspecialty.id, 0)
                if subspecialty.count != new_count:
                    subspecialty.count = new_count
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to recompute subspecialty counts: %s", e, exc_info=True)
            raise DatabaseError(context={"step": "recompute_counts"}) from e

    # ── Per-item steps ────────────────────────────────────────────────────

    async def _process_subspecialty(
        self, db: AsyncSession, raw: Any
    ) -> Tuple[RawSubspecialty, int]:
        try:
            record = RawSubspecialty.model_validate(raw)
        except PydanticValidationError as e:
            raise describe_validation_error(e) from e

        try:
            async with db.begin_nested():
                subspecialty = await self._upsert_subspecialty(db, record)
                await db.flush()
                sub_id = subspecialty.id
        except IntegrityError as e:
            raise ConflictError(
                message=f"Subspecialty code '{record.code}' conflicts with an existing row",
                context={"code": record.code},
            ) from e
        except SQLAlchemyError as e:
            raise DatabaseError(
                message=f"Database error while saving subspecialty: {type(e).__name__}",
                context={"code": record.code},
            ) from e
        return record, sub_id

    async def _process_template(
        self,
        db: AsyncSession,
        raw: Any,
        code_to_id: Dict[str, int],
        linked: Set[Tuple[int, int]],
    ) -> List[Tuple[int, int]]:
        """Upsert one template and link it; returns the association pairs it created."""
        try:
            record = RawTemplate.model_validate(raw)
        except PydanticValidationError as e:
            raise describe_validation_error(e) from e

        codes = parse_spec_code(record.spec_code)
        created_links: List[Tuple[int, int]] = []
        try:
            async with db.begin_nested():
                template = await self._upsert_template(db, record)
                await db.flush()

                for code in codes:
                    sub_id = code_to_id.get(code)
                    if sub_id is None:
                        logger.debug(
                            "Template %s references unknown subspecialty %s",
                            record.template_id,
                            code,
                        )
                        continue
                    pair = (sub_id, template.id)
                    if pair in linked or pair in created_links:
                        continue
                    db.add(SubspecialtyTemplate(subspecialty_id=sub_id, template_id=template.id))
                    created_links.append(pair)
                await db.flush()
        except IntegrityError as e:
            raise ConflictError(
                message=f"Template '{record.template_id}' conflicts with an existing row",
                context={"template_id": record.template_id},
            ) from e
        except SQLAlchemyError as e:
            raise DatabaseError(
                message=f"Database error while saving template: {type(e).__name__}",
                context={"template_id": record.template_id},
            ) from e
        return created_links

    @staticmethod
    async def _upsert_subspecialty(db: AsyncSession, record: RawSubspecialty) -> Subspecialty:
        result = await db.execute(select(Subspecialty).where(Subspecialty.code == record.code))
        subspecialty = result.scalar_one_or_none()
        if subspecialty is None:
            subspecialty = Subspecialty(code=record.code, count=0)
            db.add(subspecialty)

        subspecialty.short_name = record.short_name
        subspecialty.name = record.name
        subspecialty.radlex_id = record.radlex_id
        return subspecialty

    @staticmethod
    async def _upsert_template(db: AsyncSession, record: RawTemplate) -> Template:
        result = await db.execute(
            select(Template).where(Template.template_id == record.template_id)
        )
        template = result.scalar_one_or_none()
        is_new = template is None
        if is_new:
            template = Template(template_id=record.template_id)
            db.add(template)

        template.template_version = record.template_version
        template.title = record.title
        template.lang = record.lang or "English"
        template.specialty = record.specialty
        template.spec_code = record.spec_code
        template.tlap_approved = record.tlap_approved
        template.views = record.views
        template.downloads = record.downloads
        if record.created is not None:
            template.created = record.created
        elif is_new:
            template.created = datetime.now(timezone.utc)

        # Non-destructive merge: absent enrichment values keep what is stored
        for field in ENRICHMENT_FIELDS:
            value = getattr(record, field)
            if value is not None:
                setattr(template, field, value)
        if is_new:
            for field in ("author", "firstname", "lastname"):
                if getattr(template, field) is None:
                    setattr(template, field, "")

        if record.data_type:
            template.data_type = record.data_type
        elif is_new:
            template.data_type = "html"
        return template


# Module-level singleton
relationship_reconciler = RelationshipReconciler()
