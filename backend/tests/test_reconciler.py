"""
RadCatalog Backend - Relationship Reconciler Tests
====================================================

What:  Tests for RelationshipReconciler against an in-memory SQLite database.
How:   Feeds RadReport-shaped raw collections (see conftest) and inspects the rows.

What we test:
    ✅ Upserts, association rebuild and count recompute on a clean database
    ✅ Re-running is idempotent (no duplicate rows or links)
    ✅ specCode changes move associations and counts
    ✅ Unknown and duplicate codes in specCode
    ✅ Malformed items are recorded and skipped, the run continues
    ✅ A database error while writing one item rolls back only that item
    ✅ Enrichment fields survive a sync whose records lack them
    ✅ specCode parsing
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from app.models import Subspecialty, SubspecialtyTemplate, Template
from app.services.reconciler import RelationshipReconciler, parse_spec_code


async def _counts(db):
    result = await db.execute(select(Subspecialty.code, Subspecialty.count))
    return dict(result.all())


async def _link_total(db):
    result = await db.execute(select(func.count()).select_from(SubspecialtyTemplate))
    return result.scalar_one()


async def _template(db, template_id):
    result = await db.execute(select(Template).where(Template.template_id == template_id))
    return result.scalar_one()


class TestParseSpecCode:
    """Tests for splitting the comma-separated specCode field."""

    def test_splits_and_trims(self):
        assert parse_spec_code(" CA , CH ") == ["CA", "CH"]

    def test_drops_empty_entries(self):
        assert parse_spec_code("CA,,CH,") == ["CA", "CH"]

    def test_keeps_duplicates_in_order(self):
        assert parse_spec_code("CH,CA,CH") == ["CH", "CA", "CH"]

    @pytest.mark.parametrize("value", ["", None, " , "])
    def test_empty_values(self, value):
        assert parse_spec_code(value) == []


class TestReconcile:
    """Tests for the full reconcile() run."""

    def setup_method(self):
        self.reconciler = RelationshipReconciler()

    @pytest.mark.asyncio
    async def test_clean_database(self, db_session, raw_subspecialties, raw_templates):
        """All rows are created, known codes linked, counts recomputed."""
        stats = await self.reconciler.reconcile(db_session, raw_subspecialties, raw_templates)

        assert stats.subspecialties_processed == 3
        assert stats.templates_processed == 3
        # 101 → CA, CH; 102 → CH; 103 → NR (XX is unknown)
        assert stats.relationships_created == 4
        assert stats.errors == []
        assert await _link_total(db_session) == 4
        assert await _counts(db_session) == {"CA": 1, "CH": 2, "NR": 1}

    @pytest.mark.asyncio
    async def test_coerces_upstream_values(self, db_session, raw_subspecialties, raw_templates):
        await self.reconciler.reconcile(db_session, raw_subspecialties, raw_templates)

        brain = await _template(db_session, "103")
        assert brain.template_version == "1"
        assert brain.spec_code == "NR, XX"
        assert brain.data_type == "html"
        assert brain.author == ""
        assert brain.template_data is None

        chest = await _template(db_session, "102")
        assert chest.views == 75
        assert chest.downloads == 0
        assert chest.lang == "English"

        result = await db_session.execute(select(Subspecialty).where(Subspecialty.code == "NR"))
        assert result.scalar_one().radlex_id is None

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, db_session, raw_subspecialties, raw_templates):
        await self.reconciler.reconcile(db_session, raw_subspecialties, raw_templates)
        stats = await self.reconciler.reconcile(db_session, raw_subspecialties, raw_templates)

        assert stats.relationships_created == 4
        templates = await db_session.execute(select(func.count()).select_from(Template))
        subspecialties = await db_session.execute(select(func.count()).select_from(Subspecialty))
        assert templates.scalar_one() == 3
        assert subspecialties.scalar_one() == 3
        assert await _link_total(db_session) == 4
        assert await _counts(db_session) == {"CA": 1, "CH": 2, "NR": 1}

    @pytest.mark.asyncio
    async def test_spec_code_change_moves_links(self, db_session, raw_subspecialties, raw_templates):
        await self.reconciler.reconcile(db_session, raw_subspecialties, raw_templates)

        raw_templates[0]["specCode"] = "CA"
        raw_templates[1]["specCode"] = ""
        stats = await self.reconciler.reconcile(db_session, raw_subspecialties, raw_templates)

        assert stats.relationships_created == 2
        assert await _counts(db_session) == {"CA": 1, "CH": 0, "NR": 1}

    @pytest.mark.asyncio
    async def test_duplicate_codes_link_once(self, db_session, raw_subspecialties, raw_templates):
        templates = [dict(raw_templates[0], specCode="CA,CA, CA")]
        stats = await self.reconciler.reconcile(db_session, raw_subspecialties, templates)

        assert stats.relationships_created == 1
        assert (await _counts(db_session))["CA"] == 1

    @pytest.mark.asyncio
    async def test_updates_existing_rows(self, db_session, raw_subspecialties, raw_templates):
        await self.reconciler.reconcile(db_session, raw_subspecialties, raw_templates)

        raw_subspecialties[0]["name"] = "Cardiovascular Radiology"
        raw_templates[0]["title"] = "CT Coronary Angiography v2"
        raw_templates[0]["views"] = 300
        await self.reconciler.reconcile(db_session, raw_subspecialties, raw_templates)

        result = await db_session.execute(select(Subspecialty).where(Subspecialty.code == "CA"))
        assert result.scalar_one().name == "Cardiovascular Radiology"
        template = await _template(db_session, "101")
        assert template.title == "CT Coronary Angiography v2"
        assert template.views == 300

    @pytest.mark.asyncio
    async def test_invalid_template_is_skipped(self, db_session, raw_subspecialties, raw_templates):
        """A malformed template is recorded; the others are still processed."""
        templates = raw_templates + [
            {"template_id": "200", "template_version": "1"},
            "garbage",
        ]
        stats = await self.reconciler.reconcile(db_session, raw_subspecialties, templates)

        assert stats.templates_processed == 3
        assert len(stats.errors) == 2
        assert stats.errors[0].startswith("Template 200:")
        assert "title" in stats.errors[0]
        assert stats.errors[1].startswith("Template <unknown>:")
        assert await _counts(db_session) == {"CA": 1, "CH": 2, "NR": 1}

    @pytest.mark.asyncio
    async def test_invalid_subspecialty_is_not_linked(self, db_session, raw_subspecialties, raw_templates):
        raw_subspecialties[0] = {"code": "CA", "shortName": "Cardiac"}
        stats = await self.reconciler.reconcile(db_session, raw_subspecialties, raw_templates)

        assert stats.subspecialties_processed == 2
        assert len(stats.errors) == 1
        assert stats.errors[0].startswith("Subspecialty CA:")
        assert "name" in stats.errors[0]
        # 101 only links to CH now
        assert stats.relationships_created == 3
        assert await _counts(db_session) == {"CH": 2, "NR": 1}

    @pytest.mark.asyncio
    async def test_write_failure_rolls_back_only_that_template(self, db_session, raw_subspecialties):
        """A database error mid-upsert undoes that template alone; the run continues."""

        class FailingOnThree(RelationshipReconciler):
            async def _upsert_template(self, db, record):
                template = await RelationshipReconciler._upsert_template(db, record)
                if record.template_id == "3":
                    await db.flush()
                    raise OperationalError("UPDATE templates", {}, Exception("disk I/O error"))
                return template

        templates = [
            {
                "template_id": str(n),
                "template_version": "1",
                "title": f"Template {n}",
                "specCode": "CA,CH",
            }
            for n in range(1, 6)
        ]
        reconciler = FailingOnThree()

        await reconciler.reconcile(db_session, raw_subspecialties, templates)
        stats = await reconciler.reconcile(db_session, raw_subspecialties, templates)

        assert stats.templates_processed == 4
        assert stats.relationships_created == 8
        assert stats.errors == [
            "Template 3: Database error while saving template: OperationalError"
        ]
        result = await db_session.execute(select(Template.template_id).order_by(Template.template_id))
        assert result.scalars().all() == ["1", "2", "4", "5"]
        assert await _link_total(db_session) == 8
        assert await _counts(db_session) == {"CA": 4, "CH": 4, "NR": 0}

    @pytest.mark.asyncio
    async def test_enrichment_survives_resync(self, db_session, raw_subspecialties, raw_templates):
        await self.reconciler.reconcile(db_session, raw_subspecialties, raw_templates)
        template = await _template(db_session, "101")
        template.template_data = "<html>enriched</html>"
        template.author = "Dr. Sarah Johnson"
        await db_session.flush()

        await self.reconciler.reconcile(db_session, raw_subspecialties, raw_templates)

        template = await _template(db_session, "101")
        assert template.template_data == "<html>enriched</html>"
        assert template.author == "Dr. Sarah Johnson"

    @pytest.mark.asyncio
    async def test_detail_fields_are_stored(self, db_session, raw_subspecialties, raw_templates):
        templates = [dict(raw_templates[0], templateData="<html/>", description="From details")]
        await self.reconciler.reconcile(db_session, raw_subspecialties, templates)

        template = await _template(db_session, "101")
        assert template.template_data == "<html/>"
        assert template.description == "From details"

    @pytest.mark.asyncio
    async def test_missing_created_uses_ingest_time(self, db_session, raw_subspecialties, raw_templates):
        before = datetime.now(timezone.utc).replace(tzinfo=None)
        templates = [{k: v for k, v in raw_templates[1].items() if k != "created"}]
        await self.reconciler.reconcile(db_session, raw_subspecialties, templates)

        template = await _template(db_session, "102")
        assert template.created.replace(tzinfo=None) >= before

    @pytest.mark.asyncio
    async def test_empty_templates_clear_all_links(self, db_session, raw_subspecialties, raw_templates):
        await self.reconciler.reconcile(db_session, raw_subspecialties, raw_templates)
        stats = await self.reconciler.reconcile(db_session, raw_subspecialties, [])

        assert stats.templates_processed == 0
        assert await _link_total(db_session) == 0
        assert await _counts(db_session) == {"CA": 0, "CH": 0, "NR": 0}
