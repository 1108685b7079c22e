"""
RadCatalog Backend - Template Data Refresher
==============================================

What:  Enriches templates whose `template_data` is missing by fetching their
       detail records from the upstream catalog.
How:   Candidates are processed in fixed-size batches. Inside a batch every
       template is refreshed concurrently (settle-all); batches run one after
       another with a pause in between. Each template goes through a small
       state machine with tenacity-driven retries and a listing fallback.
Who:   POST /api/sync/template-data[/{template_id}] and `python -m app.jobs refresh`.

Per-template state machine:

    ATTEMPTING(1) ──fail──▶ ATTEMPTING(2) ──fail──▶ ATTEMPTING(n) ──fail──▶ FALLBACK
         │                       │                       │                   │   │
         └──────────ok───────────┴──────────ok───────────┘                  ok  fail
                                 ▼                                           ▼   ▼
                             SUCCEEDED ◀─────────────────────────────────────┘ FAILED

    Backoff between attempts is linear: retry_delay × attempt.

Session discipline:
    Tasks only talk to the upstream source. Results are applied to the ORM rows
    by the coordinating coroutine after the batch settles, followed by one flush
    per batch; the AsyncSession is never shared between concurrent tasks.
"""

import asyncio
import logging
from typing import List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from app.config import settings
from app.exceptions import NotFoundError, RadCatalogError
from app.models.template import Template
from app.schemas.sync import RefreshOutcome, RefreshSummary
from app.schemas.upstream import RawTemplateDetail
from app.services.catalog_source import CatalogSource
from app.services.reconciler import describe_validation_error

logger = logging.getLogger(__name__)

DETAIL_FIELDS = ("template_data", "description", "author", "firstname", "lastname", "downloads")
FALLBACK_FIELDS = ("description", "author", "firstname", "lastname")


class RefreshJob:
    """
    Tracks one template through the refresh state machine.

    Transitions outside the diagram raise RuntimeError; reaching SUCCEEDED or
    FAILED is final.
    """

    ATTEMPTING = "attempting"
    FALLBACK = "fallback"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    _TRANSITIONS = {
        ATTEMPTING: {ATTEMPTING, SUCCEEDED, FALLBACK},
        FALLBACK: {SUCCEEDED, FAILED},
        SUCCEEDED: set(),
        FAILED: set(),
    }

    def __init__(self, template_id: str, version: str):
        self.template_id = template_id
        self.version = version
        self.state = self.ATTEMPTING
        self.attempt = 0
        self.used_fallback = False
        self.detail: Optional[RawTemplateDetail] = None
        self.error: Optional[str] = None

    def _move(self, new_state: str) -> None:
        if new_state not in self._TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Illegal refresh transition for template {self.template_id}: "
                f"{self.state} -> {new_state}"
            )
        self.state = new_state

    def begin_attempt(self) -> None:
        self._move(self.ATTEMPTING)
        self.attempt += 1

    def enter_fallback(self, error: str) -> None:
        self._move(self.FALLBACK)
        self.error = error

    def succeed(self, detail: RawTemplateDetail) -> None:
        self.used_fallback = self.state == self.FALLBACK
        self._move(self.SUCCEEDED)
        self.detail = detail
        self.error = None

    def fail(self, error: str) -> None:
        self._move(self.FAILED)
        self.error = error

    @property
    def succeeded(self) -> bool:
        return self.state == self.SUCCEEDED

    def outcome(self) -> RefreshOutcome:
        return RefreshOutcome(
            template_id=self.template_id,
            success=self.succeeded,
            fallback=self.used_fallback,
            error=self.error,
        )


class TemplateRefresher:
    """
    Batch enrichment from upstream template details.

    Args (all default to settings):
        source:       CatalogSource used for detail lookups and the fallback listing
        batch_size:   templates refreshed concurrently (5)
        batch_delay:  seconds between batches, none after the last (3.0)
        max_attempts: detail lookups per template before falling back (3)
        retry_delay:  base of the linear backoff in seconds (2.0)
    """

    def __init__(
        self,
        source: CatalogSource,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ):
        self.source = source
        self.batch_size = batch_size or settings.refresh_batch_size
        self.batch_delay = settings.refresh_batch_delay if batch_delay is None else batch_delay
        self.max_attempts = max_attempts or settings.refresh_max_attempts
        self.retry_delay = settings.refresh_retry_delay if retry_delay is None else retry_delay

    # ── Public operations ─────────────────────────────────────────────────

    async def refresh_all(self, db: AsyncSession) -> RefreshSummary:
        """
        Refresh every template without `template_data`, most viewed first.

        Returns:
            RefreshSummary with updated / failed / total counts and one
            "Template <id>: <reason>" entry per failure.
        """
        result = await db.execute(
            select(Template)
            .where(Template.template_data.is_(None))
            .order_by(Template.views.desc(), Template.id)
        )
        templates = list(result.scalars().all())
        summary = RefreshSummary(total=len(templates))
        logger.info(
            "Refreshing %d templates without data (batch_size=%d)",
            len(templates),
            self.batch_size,
        )

        for batch_number, start in enumerate(range(0, len(templates), self.batch_size)):
            if batch_number and self.batch_delay:
                await asyncio.sleep(self.batch_delay)
            batch = templates[start:start + self.batch_size]
            logger.info(
                "Processing refresh batch %d (%d templates)", batch_number + 1, len(batch)
            )
            await self._process_batch(db, batch, summary)

        logger.info(
            "Template refresh finished: %d updated, %d failed of %d",
            summary.updated,
            summary.failed,
            summary.total,
        )
        return summary

    async def refresh_one(self, db: AsyncSession, template_id: str) -> RefreshOutcome:
        """
        Refresh a single template regardless of whether it already has data.

        Raises:
            NotFoundError: no stored template has this template_id
        """
        result = await db.execute(select(Template).where(Template.template_id == template_id))
        template = result.scalar_one_or_none()
        if template is None:
            raise NotFoundError(resource="template", resource_id=template_id)

        job = await self._run_job(template.template_id, template.template_version)
        if job.succeeded:
            self._apply(template, job)
            await db.flush()
            logger.info(
                "Template %s refreshed (fallback=%s)", template_id, job.used_fallback
            )
        else:
            logger.warning("Template %s refresh failed: %s", template_id, job.error)
        return job.outcome()

    # ── Internals ─────────────────────────────────────────────────────────

    async def _process_batch(
        self, db: AsyncSession, batch: Sequence[Template], summary: RefreshSummary
    ) -> None:
        results = await asyncio.gather(
            *(self._run_job(t.template_id, t.template_version) for t in batch),
            return_exceptions=True,
        )
        for template, result in zip(batch, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Unexpected refresh error for template %s: %s",
                    template.template_id,
                    result,
                    exc_info=result,
                )
                summary.failed += 1
                summary.errors.append(f"Template {template.template_id}: {result}")
            elif result.succeeded:
                self._apply(template, result)
                summary.updated += 1
            else:
                summary.failed += 1
                summary.errors.append(f"Template {template.template_id}: {result.error}")
        await db.flush()

    async def _run_job(self, template_id: str, version: str) -> RefreshJob:
        """Drive one template through the state machine. Touches no database state."""
        job = RefreshJob(template_id, version)
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                # wait before retry n (1-based) = retry_delay × n
                wait=wait_incrementing(start=self.retry_delay, increment=self.retry_delay),
                retry=retry_if_exception_type(RadCatalogError),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    job.begin_attempt()
                    logger.debug(
                        "Attempt %d/%d for template %s",
                        job.attempt,
                        self.max_attempts,
                        template_id,
                    )
                    detail = await self._fetch_detail(template_id, version)
        except RadCatalogError as e:
            logger.warning(
                "All %d attempts failed for template %s: %s",
                job.attempt,
                template_id,
                e.message,
            )
            job.enter_fallback(e.message)
            await self._fallback(job)
            return job

        job.succeed(detail)
        return job

    async def _fetch_detail(self, template_id: str, version: str) -> RawTemplateDetail:
        raw = await self.source.fetch_template_details(template_id, version)
        try:
            return RawTemplateDetail.model_validate(raw)
        except PydanticValidationError as e:
            raise describe_validation_error(e) from e

    async def _fallback(self, job: RefreshJob) -> None:
        """Look the template up in the basic listing and salvage attribution fields."""
        logger.info("Fallback: fetching basic listing for template %s", job.template_id)
        try:
            listing: List[dict] = await self.source.fetch_templates()
        except RadCatalogError as e:
            job.fail(f"Fallback failed: {e.message}")
            return

        match = next(
            (
                record
                for record in listing
                if isinstance(record, dict) and str(record.get("template_id")) == job.template_id
            ),
            None,
        )
        if match is None:
            job.fail("Template not found in basic templates list")
            return

        try:
            detail = RawTemplateDetail.model_validate(match)
        except PydanticValidationError as e:
            job.fail(f"Fallback failed: {describe_validation_error(e).message}")
            return
        job.succeed(detail)

    @staticmethod
    def _apply(template: Template, job: RefreshJob) -> None:
        """Write back only the fields present in the fetched record."""
        fields = FALLBACK_FIELDS if job.used_fallback else DETAIL_FIELDS
        for field in fields:
            value = getattr(job.detail, field)
            if value is not None:
                setattr(template, field, value)
