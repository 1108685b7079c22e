"""
RadCatalog Backend - Shared FastAPI Dependencies
==================================================

Routes receive the upstream catalog through `Depends(get_catalog_source)`,
so tests can swap in an in-memory source with `app.dependency_overrides`.
"""

from app.services.catalog_source import CatalogSource
from app.services.radreport_client import radreport_client


def get_catalog_source() -> CatalogSource:
    return radreport_client
