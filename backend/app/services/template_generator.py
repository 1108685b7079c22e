"""
RadCatalog Backend - Template Data Generator
==============================================

What:  Synthesizes report-template content locally for templates that have no
       `template_data`, without calling the upstream catalog.
How:   Renders a fixed five-section HTML document (procedure information,
       clinical information, comparison, findings, impression). Section text is
       chosen from an ordered keyword table matched against the template's
       specialty; attribution comes from one random draw per template.
Who:   POST /api/sync/generate-template-data and `python -m app.jobs generate`.

Keyword matching:
    Case-insensitive substring match, first profile in table order wins.
    "Chest CT" therefore resolves to the CT profile with the default table,
    because CT precedes chest/lung.
"""

import asyncio
import html
import logging
import random
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.template import Template
from app.schemas.sync import GenerateSummary

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Content Tables
# ══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class SpecialtyProfile:
    keywords: Tuple[str, ...]
    procedure: str
    findings: str
    impression: str

    def matches(self, specialty: str) -> bool:
        lowered = specialty.lower()
        return any(keyword in lowered for keyword in self.keywords)


SPECIALTY_PROFILES: Tuple[SpecialtyProfile, ...] = (
    SpecialtyProfile(
        keywords=("mri", "magnetic resonance"),
        procedure="Sagittal T1, T2, STIR, Axial T1, T2, and Coronal T2 sequences.",
        findings=(
            "Normal signal intensity throughout. No evidence of acute pathology. "
            "Normal anatomical structures are preserved. No abnormal enhancement "
            "following contrast administration."
        ),
        impression="Normal MRI study. No acute abnormality.",
    ),
    SpecialtyProfile(
        keywords=("ct", "computed tomography"),
        procedure="Axial and coronal CT images with and without contrast.",
        findings=(
            "Normal attenuation values. No evidence of acute pathology. "
            "Normal anatomical structures are preserved. No abnormal enhancement "
            "following contrast administration."
        ),
        impression="Normal CT study. No acute abnormality.",
    ),
    SpecialtyProfile(
        keywords=("chest", "lung"),
        procedure="PA and lateral chest radiographs.",
        findings=(
            "Clear lung fields bilaterally. Normal cardiac silhouette. "
            "No acute cardiopulmonary process. Normal mediastinal contours."
        ),
        impression="Normal chest radiograph. No acute cardiopulmonary process.",
    ),
    SpecialtyProfile(
        keywords=("breast",),
        procedure="CC and MLO mammographic views.",
        findings=(
            "No suspicious masses or calcifications. Normal breast parenchyma. "
            "No architectural distortion. BI-RADS Category 1: Negative."
        ),
        impression="BI-RADS Category 1: Negative. No evidence of malignancy.",
    ),
    SpecialtyProfile(
        keywords=("cardiac", "heart"),
        procedure="ECG-gated cardiac imaging with contrast enhancement.",
        findings=(
            "Normal cardiac function. No wall motion abnormalities. "
            "Normal coronary anatomy. No evidence of ischemia or infarction."
        ),
        impression="Normal cardiac function. No evidence of coronary artery disease.",
    ),
    SpecialtyProfile(
        keywords=("neuro", "brain"),
        procedure="Axial T1, T2, FLAIR, and DWI sequences.",
        findings=(
            "Normal brain parenchyma. No acute intracranial abnormality. "
            "Normal ventricular system. No mass effect or midline shift."
        ),
        impression="Normal brain MRI. No acute intracranial abnormality.",
    ),
    SpecialtyProfile(
        keywords=("spine",),
        procedure="Sagittal T1, T2, STIR, and axial T2 sequences.",
        findings=(
            "Normal vertebral alignment. No evidence of fracture or dislocation. "
            "Normal disc spaces. No spinal canal stenosis."
        ),
        impression="Normal spine MRI. No acute abnormality.",
    ),
    SpecialtyProfile(
        keywords=("abdomen", "abdominal"),
        procedure="Axial CT images through the abdomen and pelvis with IV contrast.",
        findings=(
            "Normal abdominal organs. No acute pathology. Normal bowel gas pattern. "
            "No free air or fluid collections."
        ),
        impression="Normal abdominal CT. No acute abnormality.",
    ),
    SpecialtyProfile(
        keywords=("musculoskeletal", "msk"),
        procedure="Multiplanar imaging with T1 and T2 weighted sequences.",
        findings=(
            "Normal bone marrow signal. No evidence of fracture or dislocation. "
            "Normal joint spaces. No soft tissue abnormalities."
        ),
        impression="Normal musculoskeletal MRI. No acute abnormality.",
    ),
)

GENERIC_PROFILE = SpecialtyProfile(
    keywords=(),
    procedure="Standard imaging protocol as per institutional guidelines.",
    findings="Normal study. No acute abnormality identified.",
    impression="Normal study. No acute abnormality.",
)

AUTHORS: Tuple[str, ...] = (
    "Dr. Sarah Johnson",
    "Dr. Michael Chen",
    "Dr. Emily Rodriguez",
    "Dr. David Kim",
    "Dr. Lisa Thompson",
    "Dr. Robert Wilson",
    "Dr. Jennifer Davis",
    "Dr. Christopher Brown",
    "Dr. Amanda Garcia",
    "Dr. Matthew Taylor",
    "Dr. Jessica Martinez",
    "Dr. Daniel Anderson",
)

COMPARISON_TEXT = "No prior studies available for comparison."
DEFAULT_DOCUMENT_DATE = "2023-01-01"


def match_profile(
    specialty: Optional[str],
    profiles: Sequence[SpecialtyProfile] = SPECIALTY_PROFILES,
) -> SpecialtyProfile:
    """Return the first profile whose keywords occur in `specialty`, else the generic one."""
    if specialty:
        for profile in profiles:
            if profile.matches(specialty):
                return profile
    return GENERIC_PROFILE


@dataclass(frozen=True)
class Attribution:
    author: str
    firstname: str
    lastname: str

    @classmethod
    def from_display_name(cls, display_name: str) -> "Attribution":
        # "Dr. FirstName LastName"
        parts = display_name.split()
        return cls(author=display_name, firstname=parts[1], lastname=parts[-1])


def pick_attribution(rng: random.Random) -> Attribution:
    """One draw; author, first and last name always describe the same person."""
    return Attribution.from_display_name(rng.choice(AUTHORS))


# ══════════════════════════════════════════════════════════════════════════
# Document Rendering
# ══════════════════════════════════════════════════════════════════════════

_DOCUMENT = """<!DOCTYPE html>
<html>
    <head>
        <title>{title}</title>
        <meta charset="UTF-8" />
        <meta name="dcterms.identifier" content="{identifier}" />
        <meta name="dcterms.title" content="{title}" />
        <meta name="dcterms.description" content="{title}" />
        <meta name="dcterms.type" content="IMAGE_REPORT_TEMPLATE" />
        <meta name="dcterms.language" content="en" />
        <meta name="dcterms.publisher" content="RSNA" />
        <meta name="dcterms.rights" content="May be used freely, subject to license agreement" />
        <meta name="dcterms.cdesets" content="[]" />
        <meta name="dcterms.license" content="http://www.radreport.org/license.pdf" />
        <meta name="dcterms.date" content="{date}" />
        <meta name="dcterms.creator" content="{creator}" />
        <script type="text/xml">
            <template_attributes>
                <coded_content>
                    <coding_schemes>
                        <coding_scheme name="RADLEX" designator="2.16.840.1.113883.6.256"></coding_scheme>
                        <coding_scheme name="LOINC" designator="2.16.840.1.113883.6.1"></coding_scheme>
                    </coding_schemes>
                    <entry origtxt="procedureInformation">
                        <term>
                            <code meaning="Current Imaging Procedure Description" value="55111-9" scheme="LOINC"></code>
                        </term>
                    </entry>
                    <entry origtxt="findings">
                        <term>
                            <code meaning="Procedure Findings" value="59776-5" scheme="LOINC"></code>
                        </term>
                    </entry>
                    <entry origtxt="comparisons">
                        <term>
                            <code meaning="Radiology Comparison Study" value="18834-2" scheme="LOINC"></code>
                        </term>
                    </entry>
                    <entry origtxt="impression">
                        <term>
                            <code meaning="Impressions" value="19005-8" scheme="LOINC"></code>
                        </term>
                    </entry>
                    <entry origtxt="clinicalInformation">
                        <term>
                            <code meaning="Clinical Information" value="55752-0" scheme="LOINC"></code>
                        </term>
                    </entry>
                </coded_content>
            </template_attributes>
        </script>
    </head>
    <body>
{sections}
    </body>
</html>"""

_SECTION = """        <section id="{section_id}" class="level1" data-section-name="{label}">
            <header class="level1">
                {label}
            </header>
            <p title="">
                <label for="{section_id}Text"></label>
                <textarea rows="{rows}" cols="100" id="{section_id}Text" name="" data-field-type="TEXTAREA" data-field-completion-action="NONE">{text}</textarea>
            </p>
        </section>"""


def _section(section_id: str, label: str, text: str, rows: int = 3) -> str:
    return _SECTION.format(section_id=section_id, label=label, rows=rows, text=html.escape(text))


def render_template_document(
    title: Optional[str],
    specialty: Optional[str],
    created: Optional[datetime],
    attribution: Attribution,
    identifier: Optional[str] = None,
    profiles: Sequence[SpecialtyProfile] = SPECIALTY_PROFILES,
) -> str:
    """Render the five-section report-template document for one template."""
    title = title or "Radiology Report"
    specialty = specialty or "Radiology"
    profile = match_profile(specialty, profiles)
    clinical = (
        f"Exam Date: [DATE] Exam Type: {title} Name of Patient: [PATIENT NAME] "
        f"Date of Birth: [DOB] Clinical History: [CLINICAL HISTORY]"
    )

    sections = "\n".join(
        [
            _section("procedureInformation", "Procedure Information", profile.procedure),
            _section("clinicalInformation", "Clinical Information", clinical),
            _section("comparisons", "Comparison", COMPARISON_TEXT),
            _section("findings", "Findings", profile.findings, rows=5),
            _section("impression", "Impression", profile.impression),
        ]
    )
    return _DOCUMENT.format(
        title=html.escape(title),
        identifier=identifier or str(uuid.uuid4()),
        date=created.date().isoformat() if created else DEFAULT_DOCUMENT_DATE,
        creator=html.escape(attribution.author),
        sections=sections,
    )


@dataclass(frozen=True)
class GeneratedContent:
    template_data: str
    description: str
    author: str
    firstname: str
    lastname: str


# ══════════════════════════════════════════════════════════════════════════
# Generator Service
# ══════════════════════════════════════════════════════════════════════════


class TemplateGenerator:
    """
    Batch generator for templates missing `template_data`.

    Args (default to settings):
        batch_size:  templates per batch (10)
        batch_delay: pause between batches in seconds (0.1)
        rng:         random source for attribution; inject a seeded one in tests
        profiles:    keyword table; SPECIALTY_PROFILES unless overridden
    """

    def __init__(
        self,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
        rng: Optional[random.Random] = None,
        profiles: Sequence[SpecialtyProfile] = SPECIALTY_PROFILES,
    ):
        self.batch_size = batch_size or settings.generate_batch_size
        self.batch_delay = settings.generate_batch_delay if batch_delay is None else batch_delay
        self.rng = rng or random.Random()
        self.profiles = profiles

    def build(self, template: Template) -> GeneratedContent:
        attribution = pick_attribution(self.rng)
        return GeneratedContent(
            template_data=render_template_document(
                template.title,
                template.specialty,
                template.created,
                attribution,
                profiles=self.profiles,
            ),
            description=(
                f"{template.title} - {template.specialty} template with structured reporting format."
            ),
            author=attribution.author,
            firstname=attribution.firstname,
            lastname=attribution.lastname,
        )

    async def _generate(self, template: Template) -> GeneratedContent:
        return self.build(template)

    async def generate_all(self, db: AsyncSession) -> GenerateSummary:
        result = await db.execute(
            select(Template)
            .where(Template.template_data.is_(None))
            .order_by(Template.views.desc(), Template.id)
        )
        templates: List[Template] = list(result.scalars().all())
        summary = GenerateSummary()
        if not templates:
            logger.info("All templates already have data")
            return summary

        logger.info("Generating template data for %d templates", len(templates))
        for batch_number, start in enumerate(range(0, len(templates), self.batch_size)):
            if batch_number and self.batch_delay:
                await asyncio.sleep(self.batch_delay)
            batch = templates[start:start + self.batch_size]
            results = await asyncio.gather(
                *(self._generate(t) for t in batch), return_exceptions=True
            )
            for template, content in zip(batch, results):
                if isinstance(content, BaseException):
                    logger.error(
                        "Failed to generate data for template %s: %s",
                        template.template_id,
                        content,
                    )
                    summary.skipped += 1
                    continue
                template.template_data = content.template_data
                template.description = content.description
                template.author = content.author
                template.firstname = content.firstname
                template.lastname = content.lastname
                summary.updated += 1
            await db.flush()

        logger.info(
            "Template data generation finished: %d updated, %d skipped",
            summary.updated,
            summary.skipped,
        )
        return summary
