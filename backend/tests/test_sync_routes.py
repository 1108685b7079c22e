"""
RadCatalog Backend - Sync Endpoint Tests
==========================================

What:  HTTP-level tests for /api/sync/* and /health.
How:   Uses the test_client fixture; the fake catalog source is shared between
       the test and the app, so failures can be injected per test.

What we test:
    ✅ Each sync flow returns its statistics under camelCase keys
    ✅ Upstream failure → 502, upstream timeout → 504, nothing committed
    ✅ Template data refresh (all / one) and local generation
    ✅ Health status reflects upstream reachability
    ✅ Rate-limited responses use the error envelope with the request id
"""

import pytest

from app.config import settings
from app.exceptions import UpstreamError, UpstreamTimeoutError


class TestSyncRoutes:

    @pytest.mark.asyncio
    async def test_sync_all(self, test_client):
        response = await test_client.post("/api/sync/all")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Data sync completed successfully"
        assert body["data"] == {
            "subspecialtiesProcessed": 3,
            "templatesProcessed": 3,
            "relationshipsCreated": 4,
            "errors": [],
        }

    @pytest.mark.asyncio
    async def test_sync_subspecialties_then_templates(self, test_client):
        subspecialties = await test_client.post("/api/sync/subspecialties")
        templates = await test_client.post("/api/sync/templates")

        assert subspecialties.json()["data"] == {"subspecialtiesProcessed": 3, "errors": []}
        assert templates.json()["message"] == "Templates sync completed successfully"
        assert templates.json()["data"] == {
            "templatesProcessed": 3,
            "relationshipsCreated": 4,
            "errors": [],
        }

    @pytest.mark.asyncio
    async def test_sync_detailed_stores_details(self, test_client, catalog_source):
        catalog_source.fail_details("102")

        response = await test_client.post("/api/sync/detailed")

        assert response.status_code == 200
        assert response.json()["data"]["templatesProcessed"] == 3
        coronary = (await test_client.get("/api/templates/101")).json()["data"]
        chest = (await test_client.get("/api/templates/102")).json()["data"]
        assert coronary["templateData"] == "<html>coronary</html>"
        assert coronary["author"] == "Dr. Upstream Author"
        assert chest["templateData"] is None

    @pytest.mark.asyncio
    async def test_per_item_errors_are_reported(self, test_client, catalog_source):
        catalog_source.templates.append({"template_id": "300", "title": "No version"})

        response = await test_client.post("/api/sync/all")

        assert response.status_code == 200
        errors = response.json()["data"]["errors"]
        assert len(errors) == 1
        assert errors[0].startswith("Template 300:")

    @pytest.mark.asyncio
    async def test_upstream_failure(self, test_client, catalog_source):
        catalog_source.listing_error = UpstreamError(message="Failed to fetch subspecialties")

        response = await test_client.post("/api/sync/all")

        assert response.status_code == 502
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "upstream_error"
        assert "request_id" in body

        listing = await test_client.get("/api/subspecialties", params={"include_empty": "true"})
        assert listing.json()["data"] == []

    @pytest.mark.asyncio
    async def test_upstream_timeout(self, test_client, catalog_source):
        catalog_source.listing_error = UpstreamTimeoutError(timeout=15.0)

        response = await test_client.post("/api/sync/subspecialties")

        assert response.status_code == 504
        assert response.json()["error"] == "upstream_timeout"


class TestTemplateDataRoutes:

    @pytest.mark.asyncio
    async def test_refresh_all(self, test_client):
        await test_client.post("/api/sync/all")

        response = await test_client.post("/api/sync/template-data")

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Template data update completed"
        assert body["data"] == {"updated": 3, "failed": 0, "total": 3, "errors": []}

    @pytest.mark.asyncio
    async def test_refresh_one(self, test_client):
        await test_client.post("/api/sync/all")

        response = await test_client.post("/api/sync/template-data/103")

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Template 103 updated successfully"
        assert body["data"] == {"templateId": "103", "fallback": False}
        template = (await test_client.get("/api/templates/103")).json()["data"]
        assert template["templateData"] == "<html>brain</html>"

    @pytest.mark.asyncio
    async def test_refresh_one_unknown(self, test_client):
        response = await test_client.post("/api/sync/template-data/999")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_refresh_one_failure(self, test_client, catalog_source):
        await test_client.post("/api/sync/all")
        catalog_source.fail_details("101")
        catalog_source.templates = []

        response = await test_client.post("/api/sync/template-data/101")

        assert response.status_code == 502
        assert response.json()["message"] == (
            "Failed to update template 101: Template not found in basic templates list"
        )

    @pytest.mark.asyncio
    async def test_generate(self, test_client):
        await test_client.post("/api/sync/all")

        response = await test_client.post("/api/sync/generate-template-data")

        assert response.status_code == 200
        assert response.json()["data"] == {"updated": 3, "skipped": 0}
        template = (await test_client.get("/api/templates/102")).json()["data"]
        assert template["templateData"].startswith("<!DOCTYPE html>")
        assert template["description"] == (
            "Chest Radiograph - Chest template with structured reporting format."
        )


class TestHealth:

    @pytest.mark.asyncio
    async def test_healthy(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["upstream"] == "available"

    @pytest.mark.asyncio
    async def test_degraded_when_upstream_down(self, test_client, catalog_source):
        catalog_source.healthy = False

        response = await test_client.get("/health")

        assert response.json()["status"] == "degraded"
        assert response.json()["upstream"] == "unavailable"

    @pytest.mark.asyncio
    async def test_request_id_header(self, test_client):
        response = await test_client.get("/health", headers={"X-Request-ID": "abc12345"})

        assert response.headers["X-Request-ID"] == "abc12345"

    @pytest.mark.asyncio
    async def test_rate_limited_response_carries_request_id(self, test_client, monkeypatch):
        monkeypatch.setattr(settings, "rate_limit_requests", 1)

        first = await test_client.get("/api/templates")
        limited = await test_client.get("/api/templates", headers={"X-Request-ID": "rl123456"})

        assert first.status_code == 200
        assert limited.status_code == 429
        assert limited.headers["X-Request-ID"] == "rl123456"
        assert int(limited.headers["Retry-After"]) >= 1
        body = limited.json()
        assert body["success"] is False
        assert body["error"] == "rate_limit_exceeded"
        assert body["request_id"] == "rl123456"
