"""
RadCatalog Backend - Scheduled Job Entrypoint
===============================================

What:  Runs the sync and enrichment operations without the HTTP server.
Who:   cron / systemd timers / container schedulers.

Usage:
    python -m app.jobs sync-all
    python -m app.jobs sync-detailed
    python -m app.jobs sync-subspecialties
    python -m app.jobs sync-templates
    python -m app.jobs refresh [--template-id 123]
    python -m app.jobs generate [--seed 42]

Exit codes:
    0  operation completed (per-item errors are logged, not fatal)
    1  operation failed as a whole (upstream unreachable, database error, ...)
    2  invalid command line (argparse)
"""

import argparse
import asyncio
import logging
import random
import sys
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, Union

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import dispose_engine, session_scope
from app.exceptions import RadCatalogError
from app.main import setup_logging
from app.schemas.sync import GenerateSummary, ReconcileStats, RefreshOutcome, RefreshSummary
from app.services.catalog_source import CatalogSource
from app.services.radreport_client import radreport_client
from app.services.sync_service import sync_service
from app.services.template_generator import TemplateGenerator
from app.services.template_refresher import TemplateRefresher

logger = logging.getLogger("radcatalog.jobs")

Operation = Callable[[AsyncSession, CatalogSource, argparse.Namespace], Awaitable[BaseModel]]


async def _sync_all(
    db: AsyncSession, source: CatalogSource, args: argparse.Namespace
) -> ReconcileStats:
    return await sync_service.sync_all(db, source)


async def _sync_detailed(
    db: AsyncSession, source: CatalogSource, args: argparse.Namespace
) -> ReconcileStats:
    return await sync_service.sync_detailed(db, source)


async def _sync_subspecialties(
    db: AsyncSession, source: CatalogSource, args: argparse.Namespace
) -> ReconcileStats:
    return await sync_service.sync_subspecialties(db, source)


async def _sync_templates(
    db: AsyncSession, source: CatalogSource, args: argparse.Namespace
) -> ReconcileStats:
    return await sync_service.sync_templates(db, source)


async def _refresh(
    db: AsyncSession, source: CatalogSource, args: argparse.Namespace
) -> Union[RefreshOutcome, RefreshSummary]:
    refresher = TemplateRefresher(source)
    if args.template_id:
        outcome = await refresher.refresh_one(db, args.template_id)
        if not outcome.success:
            raise RadCatalogError(
                message=f"Failed to update template {args.template_id}: {outcome.error}"
            )
        return outcome
    return await refresher.refresh_all(db)


async def _generate(
    db: AsyncSession, source: CatalogSource, args: argparse.Namespace
) -> GenerateSummary:
    rng = random.Random(args.seed) if args.seed is not None else None
    return await TemplateGenerator(rng=rng).generate_all(db)


COMMANDS: Dict[str, Operation] = {
    "sync-all": _sync_all,
    "sync-detailed": _sync_detailed,
    "sync-subspecialties": _sync_subspecialties,
    "sync-templates": _sync_templates,
    "refresh": _refresh,
    "generate": _generate,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m app.jobs",
        description="Synchronize and enrich the local RadReport template mirror.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("sync-all", help="Sync subspecialties and templates")
    subparsers.add_parser("sync-detailed", help="Sync with per-template details (slow)")
    subparsers.add_parser("sync-subspecialties", help="Sync subspecialties only")
    subparsers.add_parser("sync-templates", help="Sync templates against stored subspecialties")

    refresh = subparsers.add_parser("refresh", help="Fetch missing template data from upstream")
    refresh.add_argument(
        "--template-id",
        default=None,
        help="Refresh only this template (even if it already has data)",
    )

    generate = subparsers.add_parser("generate", help="Generate missing template data locally")
    generate.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for the attribution draw (reproducible output)",
    )
    return parser


async def run(args: argparse.Namespace, source: CatalogSource = radreport_client) -> Dict[str, Any]:
    """Run one command in its own transaction and return its summary by alias."""
    operation = COMMANDS[args.command]
    try:
        async with session_scope() as db:
            result = await operation(db, source, args)
    finally:
        await source.aclose()
        await dispose_engine()
    return result.model_dump(by_alias=True)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", str(e))
        return 1

    logger.info("Running job '%s'", args.command)
    try:
        summary = asyncio.run(run(args))
    except RadCatalogError as e:
        logger.error("Job '%s' failed: %s | Context: %s", args.command, e.message, e.context)
        return 1

    logger.info("Job '%s' finished: %s", args.command, summary)
    errors = summary.get("errors") or []
    for error in errors:
        logger.warning("  %s", error)
    return 0


if __name__ == "__main__":
    sys.exit(main())
