"""
RadCatalog Backend - Abstract Catalog Source Interface
========================================================

What:  Abstract base class defining the contract for fetching the upstream catalog.
How:   Concrete implementations inherit from CatalogSource and implement the
       fetch_* methods. RadReportClient talks to the RSNA RadReport API;
       tests substitute an in-memory source.
Who:   Called by SyncService (fetch-then-reconcile) and TemplateRefresher
       (detail lookups and the listing fallback).

Records are returned as plain dicts exactly as the upstream sent them.
Validation happens per item in the consumers, so one malformed row never
fails a whole fetch.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from app.exceptions import RadCatalogError

logger = logging.getLogger(__name__)


class CatalogSource(ABC):
    """
    Abstract interface for a radiology template catalog.

    Contract:
        - Listing methods return the full collection or raise UpstreamError
        - fetch_template_details raises NotFoundError for an unknown template,
          UpstreamTimeoutError when the deadline passes, UpstreamError otherwise
        - No implementation-specific exception escapes these methods
    """

    @abstractmethod
    async def fetch_subspecialties(self) -> List[Dict[str, Any]]:
        """Return every raw subspecialty record."""
        ...

    @abstractmethod
    async def fetch_templates(self) -> List[Dict[str, Any]]:
        """Return every raw template record (basic listing, no template content)."""
        ...

    @abstractmethod
    async def fetch_template_details(self, template_id: str, version: str) -> Dict[str, Any]:
        """
        Return the detail record of one template version.

        The detail record may carry `templateData`, `description`, author
        fields and `downloads`; any of them can be absent.
        """
        ...

    async def fetch_templates_with_details(self, delay: float = 0.0) -> List[Dict[str, Any]]:
        """
        Return the template listing with each record merged with its details.

        Lookups run sequentially with `delay` seconds between them. A failed
        lookup keeps the basic record; detail keys win on merge except
        `template_id`, which always comes from the listing.
        """
        templates = await self.fetch_templates()
        merged: List[Dict[str, Any]] = []
        for index, template in enumerate(templates):
            if index and delay:
                await asyncio.sleep(delay)
            try:
                details = await self.fetch_template_details(
                    str(template.get("template_id")), str(template.get("template_version"))
                )
            except RadCatalogError as e:
                logger.warning(
                    "Detail lookup failed for template %s, keeping basic record: %s",
                    template.get("template_id"),
                    e.message,
                )
                merged.append(template)
                continue
            merged.append({**template, **details, "template_id": template.get("template_id")})
        return merged

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check whether the catalog is reachable.

        Returns: True if reachable, False otherwise. Never raises.
        """
        ...

    async def aclose(self) -> None:
        """Release network resources. No-op by default."""
        return None
