"""
RadCatalog Backend - Template Route Handlers
==============================================

What:  Read endpoints for templates.

Endpoints:
    GET /api/templates                                 list with filters
    GET /api/templates/{template_id}                   one template
    GET /api/templates/{template_id}/subspecialties    subspecialties it is linked to
"""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.schemas.catalog import (
    ErrorResponse,
    SubspecialtyOut,
    TemplateDetail,
    TemplateListResponse,
    TemplateOut,
    TemplateResponse,
    TemplateSubspecialtiesResponse,
)
from app.services.catalog_service import build_pagination, catalog_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/templates", tags=["Templates"])

# Upstream template identifiers are numeric
TEMPLATE_ID_PATTERN = r"^[0-9]+$"


@router.get(
    "",
    response_model=TemplateListResponse,
    responses={400: {"model": ErrorResponse}},
    summary="List templates",
)
async def list_templates(
    sort_by: Literal["created", "title", "views", "downloads"] = Query(default="created"),
    sort_order: Literal["asc", "desc"] = Query(default="desc"),
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    skip: int = Query(default=0, ge=0),
    spec_code: str | None = Query(
        default=None, description="Only templates linked to this subspecialty code"
    ),
    specialty: str | None = Query(
        default=None, description="Case-insensitive substring of the specialty"
    ),
    db: AsyncSession = Depends(get_db_session),
) -> TemplateListResponse:
    templates, total = await catalog_service.list_templates(
        db,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=limit,
        skip=skip,
        spec_code=spec_code,
        specialty=specialty,
    )
    return TemplateListResponse(
        data=[TemplateOut.model_validate(t) for t in templates],
        pagination=build_pagination(total, skip, limit),
    )


@router.get(
    "/{template_id}",
    response_model=TemplateResponse,
    responses={404: {"model": ErrorResponse}, 400: {"model": ErrorResponse}},
    summary="Get one template by upstream id",
)
async def get_template(
    template_id: str = Path(pattern=TEMPLATE_ID_PATTERN),
    include_subspecialties: bool = Query(default=True),
    db: AsyncSession = Depends(get_db_session),
) -> TemplateResponse:
    template = await catalog_service.get_template(
        db, template_id, with_subspecialties=include_subspecialties
    )
    base = TemplateOut.model_validate(template)
    subspecialties = (
        [SubspecialtyOut.model_validate(s) for s in sorted(template.subspecialties, key=lambda s: s.code)]
        if include_subspecialties
        else None
    )
    return TemplateResponse(data=TemplateDetail(**base.model_dump(), subspecialties=subspecialties))


@router.get(
    "/{template_id}/subspecialties",
    response_model=TemplateSubspecialtiesResponse,
    responses={404: {"model": ErrorResponse}, 400: {"model": ErrorResponse}},
    summary="Subspecialties linked to a template",
)
async def template_subspecialties(
    template_id: str = Path(pattern=TEMPLATE_ID_PATTERN),
    db: AsyncSession = Depends(get_db_session),
) -> TemplateSubspecialtiesResponse:
    subspecialties = await catalog_service.subspecialties_for_template(db, template_id)
    return TemplateSubspecialtiesResponse(
        data=[SubspecialtyOut.model_validate(s) for s in subspecialties]
    )
