"""
RadCatalog Backend - Template Data Generator Tests
====================================================

What:  Tests for local template content synthesis.

What we test:
    ✅ Keyword table: first match in table order wins, generic fallback
    ✅ Alternative keyword tables are honored
    ✅ Attribution fields always come from one draw
    ✅ Rendered document: sections, metadata, escaping, default date
    ✅ generate_all fills only templates without data and counts failures as skipped
"""

import random
from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from app.models import Template
from app.services.reconciler import RelationshipReconciler
from app.services.template_generator import (
    AUTHORS,
    DEFAULT_DOCUMENT_DATE,
    GENERIC_PROFILE,
    SPECIALTY_PROFILES,
    Attribution,
    SpecialtyProfile,
    TemplateGenerator,
    match_profile,
    pick_attribution,
    render_template_document,
)

ATTRIBUTION = Attribution(author="Dr. Sarah Johnson", firstname="Sarah", lastname="Johnson")


class TestMatchProfile:
    """Tests for keyword → section text selection."""

    def test_precedence_order(self):
        assert [p.keywords[0] for p in SPECIALTY_PROFILES] == [
            "mri",
            "ct",
            "chest",
            "breast",
            "cardiac",
            "neuro",
            "spine",
            "abdomen",
            "musculoskeletal",
        ]

    def test_ct_precedes_chest(self):
        assert match_profile("Chest CT") is SPECIALTY_PROFILES[1]
        assert "ct" in SPECIALTY_PROFILES[1].keywords

    def test_case_insensitive(self):
        profile = match_profile("BREAST imaging")
        assert profile.keywords == ("breast",)

    def test_generic_fallback(self):
        assert match_profile("Pediatric Radiology") is GENERIC_PROFILE
        assert match_profile(None) is GENERIC_PROFILE
        assert match_profile("") is GENERIC_PROFILE

    def test_alternative_table(self):
        chest_first = SpecialtyProfile(
            keywords=("chest",), procedure="Chest first", findings="f", impression="i"
        )
        assert match_profile("Chest CT", profiles=(chest_first,)) is chest_first
        assert match_profile("Spine", profiles=(chest_first,)) is GENERIC_PROFILE


class TestAttribution:

    def test_single_draw_is_consistent(self):
        rng = random.Random(3)
        for _ in range(20):
            attribution = pick_attribution(rng)
            assert attribution.author in AUTHORS
            assert attribution.author == f"Dr. {attribution.firstname} {attribution.lastname}"

    def test_seeded_rng_is_reproducible(self):
        assert pick_attribution(random.Random(42)) == pick_attribution(random.Random(42))


class TestRenderDocument:
    """Tests for the rendered report-template document."""

    def test_contains_all_sections(self):
        document = render_template_document(
            "Chest CT", "Chest CT", datetime(2021, 3, 4, tzinfo=timezone.utc), ATTRIBUTION,
            identifier="fixed-id",
        )

        for section_id in (
            "procedureInformation",
            "clinicalInformation",
            "comparisons",
            "findings",
            "impression",
        ):
            assert f'<section id="{section_id}"' in document
        assert SPECIALTY_PROFILES[1].procedure in document
        assert 'content="fixed-id"' in document
        assert 'name="dcterms.date" content="2021-03-04"' in document
        assert 'name="dcterms.creator" content="Dr. Sarah Johnson"' in document
        assert "Exam Type: Chest CT" in document

    def test_defaults_and_escaping(self):
        document = render_template_document(None, None, None, ATTRIBUTION)

        assert "<title>Radiology Report</title>" in document
        assert f'content="{DEFAULT_DOCUMENT_DATE}"' in document
        assert GENERIC_PROFILE.findings in document

        escaped = render_template_document("Hip & Knee <MSK>", "MSK", None, ATTRIBUTION)
        assert "Hip &amp; Knee &lt;MSK&gt;" in escaped
        assert "<MSK>" not in escaped

    def test_fresh_identifier_each_time(self):
        first = render_template_document("A", "CT", None, ATTRIBUTION)
        second = render_template_document("A", "CT", None, ATTRIBUTION)
        assert first != second


class FailingGenerator(TemplateGenerator):
    """Generator whose content build fails for one template."""

    def __init__(self, failing_id, **kwargs):
        super().__init__(**kwargs)
        self.failing_id = failing_id

    async def _generate(self, template):
        if template.template_id == self.failing_id:
            raise ValueError("render failed")
        return await super()._generate(template)


class TestGenerateAll:
    """Tests for the batch generator."""

    async def _seed(self, db, raw_subspecialties, raw_templates):
        await RelationshipReconciler().reconcile(db, raw_subspecialties, raw_templates)

    @pytest.mark.asyncio
    async def test_fills_missing_data(self, db_session, raw_subspecialties, raw_templates):
        await self._seed(db_session, raw_subspecialties, raw_templates)
        result = await db_session.execute(select(Template).where(Template.template_id == "102"))
        existing = result.scalar_one()
        existing.template_data = "<html>keep</html>"
        await db_session.flush()

        generator = TemplateGenerator(batch_size=1, batch_delay=0, rng=random.Random(1))
        summary = await generator.generate_all(db_session)

        assert summary.updated == 2
        assert summary.skipped == 0
        assert existing.template_data == "<html>keep</html>"

        result = await db_session.execute(select(Template).where(Template.template_id == "101"))
        template = result.scalar_one()
        assert template.template_data.startswith("<!DOCTYPE html>")
        assert template.description == (
            "CT Coronary Angiography - Cardiac CT template with structured reporting format."
        )
        assert template.author in AUTHORS
        assert template.author == f"Dr. {template.firstname} {template.lastname}"

    @pytest.mark.asyncio
    async def test_second_run_is_noop(self, db_session, raw_subspecialties, raw_templates):
        await self._seed(db_session, raw_subspecialties, raw_templates)
        generator = TemplateGenerator(batch_delay=0, rng=random.Random(1))

        await generator.generate_all(db_session)
        summary = await generator.generate_all(db_session)

        assert summary.updated == 0
        assert summary.skipped == 0

    @pytest.mark.asyncio
    async def test_failure_is_skipped(self, db_session, raw_subspecialties, raw_templates):
        await self._seed(db_session, raw_subspecialties, raw_templates)
        generator = FailingGenerator("103", batch_size=2, batch_delay=0)

        summary = await generator.generate_all(db_session)

        assert summary.updated == 2
        assert summary.skipped == 1
        result = await db_session.execute(select(Template).where(Template.template_id == "103"))
        assert result.scalar_one().template_data is None
