"""
RadCatalog Backend - Subspecialty Route Handlers
==================================================

What:  Read endpoints for subspecialties and their templates.
How:   Validates query parameters, delegates to CatalogService, wraps results
       in the `{"success": true, "data": ..., "pagination": ...}` envelope.

Endpoints:
    GET /api/subspecialties                     list (empty ones hidden by default)
    GET /api/subspecialties/hierarchical        list, each with its templates
    GET /api/subspecialties/{code}              one subspecialty
    GET /api/subspecialties/{code}/templates    templates linked to one subspecialty
"""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.models.subspecialty import Subspecialty
from app.schemas.catalog import (
    ErrorResponse,
    HierarchicalResponse,
    SubspecialtyDetail,
    SubspecialtyListResponse,
    SubspecialtyOut,
    SubspecialtyResponse,
    TemplateListResponse,
    TemplateOut,
)
from app.services.catalog_service import build_pagination, catalog_service, newest_first

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/subspecialties", tags=["Subspecialties"])

SubspecialtySort = Literal["name", "code", "count", "shortName"]
TemplateSort = Literal["created", "title", "views", "downloads"]
SortOrder = Literal["asc", "desc"]

# Upstream subspecialty codes are two uppercase letters ("CA", "NR")
CODE_PATTERN = r"^[A-Z]{2}$"


def _detail(subspecialty: Subspecialty, templates: Optional[list]) -> SubspecialtyDetail:
    base = SubspecialtyOut.model_validate(subspecialty)
    return SubspecialtyDetail(
        **base.model_dump(),
        templates=(
            [TemplateOut.model_validate(t) for t in templates] if templates is not None else None
        ),
    )


@router.get(
    "",
    response_model=SubspecialtyListResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="List subspecialties",
)
async def list_subspecialties(
    include_empty: bool = Query(default=False, description="Include subspecialties with no templates"),
    sort_by: SubspecialtySort = Query(default="name"),
    sort_order: SortOrder = Query(default="asc"),
    limit: Optional[int] = Query(default=None, ge=1, le=100, description="Page size; omit for all"),
    skip: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db_session),
) -> SubspecialtyListResponse:
    subspecialties, total = await catalog_service.list_subspecialties(
        db,
        include_empty=include_empty,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=limit,
        skip=skip,
    )
    return SubspecialtyListResponse(
        data=[SubspecialtyOut.model_validate(s) for s in subspecialties],
        pagination=build_pagination(total, skip, limit),
    )


@router.get(
    "/hierarchical",
    response_model=HierarchicalResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Subspecialties with their templates",
    description="Same filters as the list endpoint; each subspecialty carries its templates, newest first.",
)
async def hierarchical(
    include_empty: bool = Query(default=False),
    sort_by: SubspecialtySort = Query(default="name"),
    sort_order: SortOrder = Query(default="asc"),
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    skip: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db_session),
) -> HierarchicalResponse:
    subspecialties, total = await catalog_service.list_subspecialties(
        db,
        include_empty=include_empty,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=limit,
        skip=skip,
        with_templates=True,
    )
    data = [
        _detail(s, newest_first(s.templates))
        for s in subspecialties
    ]
    return HierarchicalResponse(data=data, pagination=build_pagination(total, skip, limit))


@router.get(
    "/{code}",
    response_model=SubspecialtyResponse,
    responses={404: {"model": ErrorResponse}, 400: {"model": ErrorResponse}},
    summary="Get one subspecialty by code",
)
async def get_subspecialty(
    code: str = Path(pattern=CODE_PATTERN, description="Two-letter subspecialty code"),
    include_templates: bool = Query(default=True),
    db: AsyncSession = Depends(get_db_session),
) -> SubspecialtyResponse:
    if include_templates:
        subspecialty, templates, _ = await catalog_service.templates_for_subspecialty(db, code)
        return SubspecialtyResponse(data=_detail(subspecialty, templates))

    subspecialty = await catalog_service.get_subspecialty(db, code)
    return SubspecialtyResponse(data=_detail(subspecialty, None))


@router.get(
    "/{code}/templates",
    response_model=TemplateListResponse,
    responses={404: {"model": ErrorResponse}, 400: {"model": ErrorResponse}},
    summary="Templates linked to a subspecialty",
)
async def subspecialty_templates(
    code: str = Path(pattern=CODE_PATTERN),
    sort_by: TemplateSort = Query(default="created"),
    sort_order: SortOrder = Query(default="desc"),
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    skip: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db_session),
) -> TemplateListResponse:
    _, templates, total = await catalog_service.templates_for_subspecialty(
        db, code, sort_by=sort_by, sort_order=sort_order, limit=limit, skip=skip
    )
    return TemplateListResponse(
        data=[TemplateOut.model_validate(t) for t in templates],
        pagination=build_pagination(total, skip, limit),
    )
