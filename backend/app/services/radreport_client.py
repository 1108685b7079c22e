"""
RadCatalog Backend - RSNA RadReport API Client
================================================

What:  Concrete CatalogSource talking to the RSNA RadReport REST API over httpx.
How:   One lazily created httpx.AsyncClient per instance, shared by all calls.
       Every response is unwrapped from the `{"SUCCESS": bool, "DATA": ...}`
       envelope; transport and protocol failures are translated into the
       application's exception hierarchy.
Who:   Module-level singleton `radreport_client`, injected into routes through
       app.dependencies and used directly by the job entrypoint.

Endpoints:
    GET /subspecialty/                          → list of subspecialties
    GET /templates                              → list of templates (basic fields)
    GET /templates/{id}/details?version={ver}   → one template's detail record

Error translation:
    httpx.TimeoutException   → UpstreamTimeoutError (504)
    HTTP 404 on details      → NotFoundError (404)
    other HTTP errors        → UpstreamError with upstream status (502)
    SUCCESS false / bad DATA → UpstreamError (502)
    connection failures      → UpstreamError (502)
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from app.config import settings
from app.exceptions import NotFoundError, UpstreamError, UpstreamTimeoutError
from app.services.catalog_source import CatalogSource

logger = logging.getLogger(__name__)


class RadReportClient(CatalogSource):
    """
    RSNA RadReport API client.

    Args:
        base_url:       API root (default: settings.upstream_base_url)
        timeout:        listing timeout in seconds (default 15)
        detail_timeout: per-template detail timeout in seconds (default 10)
        transport:      optional httpx transport; tests pass httpx.MockTransport
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        detail_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.upstream_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.upstream_timeout
        self.detail_timeout = (
            detail_timeout if detail_timeout is not None else settings.upstream_detail_timeout
        )
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._client_lock = asyncio.Lock()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            async with self._client_lock:
                if self._client is None:
                    self._client = httpx.AsyncClient(
                        base_url=self.base_url,
                        timeout=httpx.Timeout(self.timeout),
                        headers={
                            "Accept": "application/json",
                            "Content-Type": "application/json",
                            "User-Agent": settings.upstream_user_agent,
                        },
                        transport=self._transport,
                    )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ── Request plumbing ──────────────────────────────────────────────────

    async def _get(
        self,
        path: str,
        what: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        """Issue a GET and translate transport failures. Does not check the status."""
        client = await self._get_client()
        effective_timeout = timeout if timeout is not None else self.timeout
        start_time = time.time()
        try:
            response = await client.get(
                path, params=params, timeout=httpx.Timeout(effective_timeout)
            )
        except httpx.TimeoutException as e:
            logger.warning("Timeout fetching %s after %.1fs: %s", what, effective_timeout, e)
            raise UpstreamTimeoutError(
                message=f"Timeout fetching {what}",
                timeout=effective_timeout,
                context={"path": path},
            ) from e
        except httpx.HTTPError as e:
            logger.warning("Connection error fetching %s: %s", what, e)
            raise UpstreamError(
                message=f"Failed to fetch {what}: {e}",
                context={"path": path, "error_type": type(e).__name__},
            ) from e

        logger.debug(
            "GET %s → %d in %.0fms",
            path,
            response.status_code,
            (time.time() - start_time) * 1000,
        )
        return response

    @staticmethod
    def _unwrap(response: httpx.Response, what: str) -> Any:
        """Check HTTP status and the SUCCESS flag, return the DATA payload."""
        if response.is_error:
            raise UpstreamError(
                message=f"Failed to fetch {what}: upstream returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamError(
                message=f"Failed to fetch {what}: response is not valid JSON",
                status_code=response.status_code,
            ) from e

        if not isinstance(body, dict) or not body.get("SUCCESS"):
            raise UpstreamError(
                message=f"Failed to fetch {what}: upstream reported failure",
                status_code=response.status_code,
            )
        return body.get("DATA")

    async def _fetch_list(self, path: str, what: str) -> List[Dict[str, Any]]:
        logger.info("Fetching %s from RadReport API", what)
        data = self._unwrap(await self._get(path, what), what)
        if not isinstance(data, list):
            raise UpstreamError(message=f"Failed to fetch {what}: DATA is not a list")
        logger.info("Fetched %d %s", len(data), what)
        return data

    # ── CatalogSource operations ──────────────────────────────────────────

    async def fetch_subspecialties(self) -> List[Dict[str, Any]]:
        return await self._fetch_list("/subspecialty/", "subspecialties")

    async def fetch_templates(self) -> List[Dict[str, Any]]:
        return await self._fetch_list("/templates", "templates")

    async def fetch_template_details(self, template_id: str, version: str) -> Dict[str, Any]:
        what = f"details for template {template_id}"
        response = await self._get(
            f"/templates/{template_id}/details",
            what,
            params={"version": version},
            timeout=self.detail_timeout,
        )
        if response.status_code == 404:
            raise NotFoundError(
                resource="template details",
                resource_id=template_id,
                context={"version": version},
            )

        data = self._unwrap(response, what)
        if not isinstance(data, dict):
            raise UpstreamError(message=f"Failed to fetch {what}: DATA is not an object")
        return data

    async def fetch_templates_with_details(
        self, delay: Optional[float] = None
    ) -> List[Dict[str, Any]]:
        """Detailed listing paced by `detail_sync_delay` (0.5 s) between lookups."""
        pause = settings.detail_sync_delay if delay is None else delay
        return await super().fetch_templates_with_details(delay=pause)

    async def health_check(self) -> bool:
        """Cheap reachability probe against the subspecialty listing."""
        try:
            response = await self._get("/subspecialty/", "health probe")
        except UpstreamError:
            return False
        return not response.is_error


# Module-level singleton shared by routes and jobs
radreport_client = RadReportClient()
