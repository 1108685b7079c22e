"""
RadCatalog Backend - Catalog Read Service
===========================================

What:  Query layer behind the read endpoints: listings with sorting and
       skip/limit pagination, lookups by natural key, hierarchical views.
Who:   Called by app/routes/subspecialties.py and app/routes/templates.py.

Relationship loading:
    Associations are loaded eagerly (selectinload) or with explicit joins.
    Lazy loads are not available under asyncio, so callers only touch
    relationships that a method documents as loaded.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.sql import Select

from app.exceptions import NotFoundError
from app.models.subspecialty import Subspecialty
from app.models.subspecialty_template import SubspecialtyTemplate
from app.models.template import Template
from app.schemas.catalog import Pagination

logger = logging.getLogger(__name__)

SUBSPECIALTY_SORT_FIELDS: Dict[str, object] = {
    "name": Subspecialty.name,
    "code": Subspecialty.code,
    "count": Subspecialty.count,
    "shortName": Subspecialty.short_name,
}

TEMPLATE_SORT_FIELDS: Dict[str, object] = {
    "created": Template.created,
    "title": Template.title,
    "views": Template.views,
    "downloads": Template.downloads,
}


def build_pagination(total: int, skip: int, limit: Optional[int]) -> Pagination:
    """hasMore is only meaningful when a limit was requested."""
    return Pagination(
        total=total,
        skip=skip,
        limit=limit,
        has_more=bool(limit) and skip + limit < total,
    )


def newest_first(templates: Iterable[Template]) -> List[Template]:
    """Sort templates by `created`, newest first, whether or not the values carry a tz."""

    def key(template: Template) -> datetime:
        created = template.created
        if created.tzinfo is not None:
            created = created.astimezone(timezone.utc).replace(tzinfo=None)
        return created

    return sorted(templates, key=key, reverse=True)


def _ordered(stmt: Select, column, sort_order: str, tiebreaker) -> Select:
    direction = column.desc() if sort_order == "desc" else column.asc()
    return stmt.order_by(direction, tiebreaker)


def _page(stmt: Select, skip: int, limit: Optional[int]) -> Select:
    stmt = stmt.offset(skip)
    if limit:
        stmt = stmt.limit(limit)
    return stmt


async def _count(db: AsyncSession, stmt: Select) -> int:
    result = await db.execute(select(func.count()).select_from(stmt.order_by(None).subquery()))
    return int(result.scalar_one())


class CatalogService:
    """Read-only access to subspecialties and templates."""

    # ── Subspecialties ────────────────────────────────────────────────────

    async def list_subspecialties(
        self,
        db: AsyncSession,
        include_empty: bool = False,
        sort_by: str = "name",
        sort_order: str = "asc",
        limit: Optional[int] = None,
        skip: int = 0,
        with_templates: bool = False,
    ) -> Tuple[List[Subspecialty], int]:
        """
        Subspecialties page plus the total matching count.

        Empty subspecialties (count == 0) are excluded unless `include_empty`.
        With `with_templates`, each row's `templates` relationship is loaded.
        """
        stmt = select(Subspecialty)
        if not include_empty:
            stmt = stmt.where(Subspecialty.count > 0)
        total = await _count(db, stmt)

        stmt = _ordered(stmt, SUBSPECIALTY_SORT_FIELDS[sort_by], sort_order, Subspecialty.id)
        stmt = _page(stmt, skip, limit)
        if with_templates:
            stmt = stmt.options(selectinload(Subspecialty.templates))

        result = await db.execute(stmt)
        return list(result.scalars().all()), total

    async def get_subspecialty(self, db: AsyncSession, code: str) -> Subspecialty:
        result = await db.execute(select(Subspecialty).where(Subspecialty.code == code))
        subspecialty = result.scalar_one_or_none()
        if subspecialty is None:
            raise NotFoundError(resource="subspecialty", resource_id=code)
        return subspecialty

    async def templates_for_subspecialty(
        self,
        db: AsyncSession,
        code: str,
        sort_by: str = "created",
        sort_order: str = "desc",
        limit: Optional[int] = None,
        skip: int = 0,
    ) -> Tuple[Subspecialty, List[Template], int]:
        """
        Templates linked to the subspecialty `code`.

        Raises:
            NotFoundError: unknown subspecialty code
        """
        subspecialty = await self.get_subspecialty(db, code)

        stmt = (
            select(Template)
            .join(SubspecialtyTemplate, SubspecialtyTemplate.template_id == Template.id)
            .where(SubspecialtyTemplate.subspecialty_id == subspecialty.id)
        )
        total = await _count(db, stmt)

        stmt = _ordered(stmt, TEMPLATE_SORT_FIELDS[sort_by], sort_order, Template.id)
        result = await db.execute(_page(stmt, skip, limit))
        return subspecialty, list(result.scalars().all()), total

    # ── Templates ─────────────────────────────────────────────────────────

    async def list_templates(
        self,
        db: AsyncSession,
        sort_by: str = "created",
        sort_order: str = "desc",
        limit: Optional[int] = None,
        skip: int = 0,
        spec_code: Optional[str] = None,
        specialty: Optional[str] = None,
    ) -> Tuple[List[Template], int]:
        """
        Templates page plus the total matching count.

        Filters:
            spec_code: only templates linked to this subspecialty code
            specialty: case-insensitive substring of the specialty text
        """
        stmt = select(Template)
        if spec_code:
            stmt = (
                stmt.join(SubspecialtyTemplate, SubspecialtyTemplate.template_id == Template.id)
                .join(Subspecialty, Subspecialty.id == SubspecialtyTemplate.subspecialty_id)
                .where(Subspecialty.code == spec_code)
            )
        if specialty:
            stmt = stmt.where(
                func.lower(Template.specialty).contains(specialty.lower(), autoescape=True)
            )
        total = await _count(db, stmt)

        stmt = _ordered(stmt, TEMPLATE_SORT_FIELDS[sort_by], sort_order, Template.id)
        result = await db.execute(_page(stmt, skip, limit))
        return list(result.scalars().all()), total

    async def get_template(
        self, db: AsyncSession, template_id: str, with_subspecialties: bool = False
    ) -> Template:
        stmt = select(Template).where(Template.template_id == template_id)
        if with_subspecialties:
            stmt = stmt.options(selectinload(Template.subspecialties))
        result = await db.execute(stmt)
        template = result.scalar_one_or_none()
        if template is None:
            raise NotFoundError(resource="template", resource_id=template_id)
        return template

    async def subspecialties_for_template(
        self, db: AsyncSession, template_id: str
    ) -> List[Subspecialty]:
        """Subspecialties linked to a template, ordered by code."""
        template = await self.get_template(db, template_id)
        result = await db.execute(
            select(Subspecialty)
            .join(SubspecialtyTemplate, SubspecialtyTemplate.subspecialty_id == Subspecialty.id)
            .where(SubspecialtyTemplate.template_id == template.id)
            .order_by(Subspecialty.code)
        )
        return list(result.scalars().all())


catalog_service = CatalogService()
