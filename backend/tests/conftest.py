"""
RadCatalog Backend - Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy (all function-scoped, created fresh for each test):
    ├── db_engine:         in-memory SQLite engine with the schema created
    ├── session_factory:   async_sessionmaker bound to db_engine
    ├── db_session:        one AsyncSession for service-level tests
    ├── raw_subspecialties / raw_templates: RadReport-shaped sample records
    ├── catalog_source:    FakeCatalogSource with a small RadReport-shaped catalog
    └── test_client:       HTTPX AsyncClient against a fresh app, with the
                           database and catalog source dependencies overridden
"""

import os

# Override settings for testing BEFORE any app imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RATE_LIMIT_REQUESTS"] = "10000"
os.environ["REFRESH_BATCH_DELAY"] = "0"
os.environ["REFRESH_RETRY_DELAY"] = "0"
os.environ["GENERATE_BATCH_DELAY"] = "0"
os.environ["DETAIL_SYNC_DELAY"] = "0"

from copy import deepcopy
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.database import Base, enable_sqlite_savepoints, get_db_session
from app.dependencies import get_catalog_source
from app.exceptions import NotFoundError, UpstreamError
from app.services.catalog_source import CatalogSource
import app.models  # noqa: F401


# ══════════════════════════════════════════════════════════════════════════
# Sample Catalog (shapes as returned by the RadReport API `DATA` arrays)
# ══════════════════════════════════════════════════════════════════════════

SUBSPECIALTIES: List[Dict[str, Any]] = [
    {"code": "CA", "shortName": "Cardiac", "name": "Cardiac Radiology", "radlexID": "RID50"},
    {"code": "CH", "shortName": "Chest", "name": "Chest Radiology", "radlexID": "RID1243"},
    {"code": "NR", "shortName": "Neuro", "name": "Neuroradiology", "radlexID": ""},
]

TEMPLATES: List[Dict[str, Any]] = [
    {
        "template_id": "101",
        "template_version": "1.0",
        "title": "CT Coronary Angiography",
        "lang": "English",
        "created": "2021-03-04T10:00:00Z",
        "specialty": "Cardiac CT",
        "specCode": "CA,CH",
        "TLAP_Approved": "true",
        "views": 250,
        "downloads": 40,
    },
    {
        "template_id": "102",
        "template_version": "2",
        "title": "Chest Radiograph",
        "created": "2019-06-01T08:30:00Z",
        "specialty": "Chest",
        "specCode": "CH",
        "views": "75",
        "downloads": None,
    },
    {
        "template_id": 103,
        "template_version": 1,
        "title": "Brain MRI",
        "created": "2022-11-20T12:00:00",
        "specialty": "Neuro MRI",
        "specCode": "NR, XX",
        "views": 500,
        "downloads": 12,
    },
]

DETAILS: Dict[str, Dict[str, Any]] = {
    "101": {
        "templateData": "<html>coronary</html>",
        "description": "Coronary CTA report",
        "author": "Dr. Upstream Author",
        "firstname": "Upstream",
        "lastname": "Author",
        "downloads": 41,
    },
    "102": {"templateData": "<html>chest</html>", "description": "Chest radiograph report"},
    "103": {"templateData": "<html>brain</html>", "author": "Dr. Neuro Person"},
}


class FakeCatalogSource(CatalogSource):
    """
    In-memory CatalogSource.

    Failure injection:
        detail_failures[template_id]: list of exceptions raised by successive
            detail lookups for that template (an exhausted list means success)
        listing_error: raised by fetch_templates / fetch_subspecialties
        healthy:       value returned by health_check
    """

    def __init__(
        self,
        subspecialties: Optional[List[Dict[str, Any]]] = None,
        templates: Optional[List[Dict[str, Any]]] = None,
        details: Optional[Dict[str, Dict[str, Any]]] = None,
    ):
        self.subspecialties = deepcopy(SUBSPECIALTIES if subspecialties is None else subspecialties)
        self.templates = deepcopy(TEMPLATES if templates is None else templates)
        self.details = deepcopy(DETAILS if details is None else details)
        self.detail_failures: Dict[str, List[Exception]] = {}
        self.listing_error: Optional[Exception] = None
        self.healthy = True
        self.detail_calls: List[str] = []
        self.listing_calls = 0
        self.closed = False

    async def fetch_subspecialties(self) -> List[Dict[str, Any]]:
        if self.listing_error is not None:
            raise self.listing_error
        return deepcopy(self.subspecialties)

    async def fetch_templates(self) -> List[Dict[str, Any]]:
        self.listing_calls += 1
        if self.listing_error is not None:
            raise self.listing_error
        return deepcopy(self.templates)

    async def fetch_template_details(self, template_id: str, version: str) -> Dict[str, Any]:
        self.detail_calls.append(template_id)
        failures = self.detail_failures.get(template_id)
        if failures:
            raise failures.pop(0)
        if template_id not in self.details:
            raise NotFoundError(resource="template details", resource_id=template_id)
        return deepcopy(self.details[template_id])

    def fail_details(self, template_id: str, error: Optional[Exception] = None, times: int = 10):
        """Make the next `times` detail lookups for `template_id` raise."""
        self.detail_failures[template_id] = [
            error or UpstreamError(message="upstream exploded") for _ in range(times)
        ]

    async def health_check(self) -> bool:
        return self.healthy

    async def aclose(self) -> None:
        self.closed = True


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine():
    """
    Fresh in-memory database per test.

    StaticPool keeps the single connection alive so every session sees the
    same in-memory database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def raw_subspecialties():
    return deepcopy(SUBSPECIALTIES)


@pytest.fixture
def raw_templates():
    return deepcopy(TEMPLATES)


@pytest.fixture
def catalog_source():
    return FakeCatalogSource()


@pytest_asyncio.fixture
async def test_client(session_factory, catalog_source):
    """
    HTTPX AsyncClient talking to a freshly created app.

    Each request gets its own session from the test factory (same commit /
    rollback contract as get_db_session); the catalog source is the fake.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    from app.main import create_app

    app = create_app()

    async def override_db_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_catalog_source] = lambda: catalog_source

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
