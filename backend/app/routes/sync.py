"""
RadCatalog Backend - Sync Route Handlers
==========================================

What:  Write endpoints that pull from the upstream catalog and rebuild or
       enrich the local mirror.
How:   Each handler resolves the CatalogSource dependency, runs one service
       operation, and returns its summary statistics in `data`.
Who:   Operators and schedulers (the job entrypoint runs the same operations).

Endpoints:
    POST /api/sync/all                              subspecialties + templates
    POST /api/sync/detailed                         same, with per-template details
    POST /api/sync/subspecialties                   subspecialties only
    POST /api/sync/templates                        templates against stored subspecialties
    POST /api/sync/template-data                    refresh all templates missing data
    POST /api/sync/template-data/{template_id}      refresh one template
    POST /api/sync/generate-template-data           generate missing data locally

Failures of the run as a whole (upstream unreachable, database down) surface
through the global exception handlers; per-item failures are listed in
`data.errors` of a successful response.
"""

import logging

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.dependencies import get_catalog_source
from app.exceptions import UpstreamError
from app.schemas.catalog import ErrorResponse
from app.schemas.sync import SyncResponse
from app.services.catalog_source import CatalogSource
from app.services.sync_service import sync_service
from app.services.template_generator import TemplateGenerator
from app.services.template_refresher import TemplateRefresher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["Sync"])

_ERRORS = {
    404: {"model": ErrorResponse},
    502: {"model": ErrorResponse, "description": "Upstream catalog failed"},
    504: {"model": ErrorResponse, "description": "Upstream catalog timed out"},
}

FULL_SYNC_FIELDS = {"subspecialties_processed", "templates_processed", "relationships_created", "errors"}


@router.post("/all", response_model=SyncResponse, responses=_ERRORS, summary="Full sync")
async def sync_all(
    db: AsyncSession = Depends(get_db_session),
    source: CatalogSource = Depends(get_catalog_source),
) -> SyncResponse:
    stats = await sync_service.sync_all(db, source)
    return SyncResponse(
        message="Data sync completed successfully",
        data=stats.model_dump(by_alias=True, include=FULL_SYNC_FIELDS),
    )


@router.post("/detailed", response_model=SyncResponse, responses=_ERRORS, summary="Full sync with template details")
async def sync_detailed(
    db: AsyncSession = Depends(get_db_session),
    source: CatalogSource = Depends(get_catalog_source),
) -> SyncResponse:
    stats = await sync_service.sync_detailed(db, source)
    return SyncResponse(
        message="Detailed data sync completed successfully",
        data=stats.model_dump(by_alias=True, include=FULL_SYNC_FIELDS),
    )


@router.post("/subspecialties", response_model=SyncResponse, responses=_ERRORS, summary="Sync subspecialties only")
async def sync_subspecialties(
    db: AsyncSession = Depends(get_db_session),
    source: CatalogSource = Depends(get_catalog_source),
) -> SyncResponse:
    stats = await sync_service.sync_subspecialties(db, source)
    return SyncResponse(
        message="Subspecialties sync completed successfully",
        data=stats.model_dump(by_alias=True, include={"subspecialties_processed", "errors"}),
    )


@router.post("/templates", response_model=SyncResponse, responses=_ERRORS, summary="Sync templates only")
async def sync_templates(
    db: AsyncSession = Depends(get_db_session),
    source: CatalogSource = Depends(get_catalog_source),
) -> SyncResponse:
    stats = await sync_service.sync_templates(db, source)
    return SyncResponse(
        message="Templates sync completed successfully",
        data=stats.model_dump(
            by_alias=True, include={"templates_processed", "relationships_created", "errors"}
        ),
    )


@router.post("/template-data", response_model=SyncResponse, responses=_ERRORS, summary="Refresh missing template data")
async def refresh_template_data(
    db: AsyncSession = Depends(get_db_session),
    source: CatalogSource = Depends(get_catalog_source),
) -> SyncResponse:
    summary = await TemplateRefresher(source).refresh_all(db)
    return SyncResponse(
        message="Template data update completed",
        data=summary.model_dump(by_alias=True),
    )


@router.post(
    "/template-data/{template_id}",
    response_model=SyncResponse,
    responses=_ERRORS,
    summary="Refresh one template's data",
)
async def refresh_one_template(
    template_id: str = Path(pattern=r"^[0-9]+$"),
    db: AsyncSession = Depends(get_db_session),
    source: CatalogSource = Depends(get_catalog_source),
) -> SyncResponse:
    outcome = await TemplateRefresher(source).refresh_one(db, template_id)
    if not outcome.success:
        raise UpstreamError(
            message=f"Failed to update template {template_id}: {outcome.error}",
            context={"template_id": template_id},
        )
    return SyncResponse(
        message=f"Template {template_id} updated successfully",
        data=outcome.model_dump(by_alias=True, include={"template_id", "fallback"}),
    )


@router.post(
    "/generate-template-data",
    response_model=SyncResponse,
    responses=_ERRORS,
    summary="Generate missing template data locally",
)
async def generate_template_data(
    db: AsyncSession = Depends(get_db_session),
) -> SyncResponse:
    summary = await TemplateGenerator().generate_all(db)
    return SyncResponse(
        message="Template data generation completed",
        data=summary.model_dump(by_alias=True),
    )
