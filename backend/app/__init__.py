"""
RadCatalog Backend - Application Package Initializer
=====================================================

What: Marks the `app` directory as a Python package.
Who:  Imported by uvicorn (`app.main:app`), Alembic, pytest and the job runner (`app.jobs`).

Architecture Note:
    The backend mirrors the RSNA RadReport template catalog into a relational store:

    ┌─────────────────────────────────────┐
    │      Routes (API Layer) / Jobs      │  ← HTTP and cron entrypoints
    ├─────────────────────────────────────┤
    │   Services (Sync, Reconcile, Enrich)│  ← Orchestration, batching, retry
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘
                      ▲
                      │ CatalogSource (httpx)
              RSNA RadReport API (upstream)
"""

__version__ = "1.0.0"
