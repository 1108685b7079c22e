"""
RadCatalog Backend - Template SQLAlchemy Model
================================================

What:  ORM model representing the `templates` table (one RadReport report template).
Who:   Upserted by the RelationshipReconciler; enriched by TemplateRefresher and
       TemplateGenerator; read by CatalogService.

Column notes:
    - `template_id`: upstream identity and the upsert key (unique)
    - `spec_code`: comma-separated subspecialty codes as sent upstream ("CA,CT");
      the association table is the parsed, validated form of this field
    - `views` / `downloads`: upstream counters, clamped to >= 0 on ingest
    - `template_data`: the rendered report-template document. NULL marks a row
      that still needs enrichment (refresh or local generation)
"""

from datetime import datetime, timezone
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import DateTime, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

if TYPE_CHECKING:
    from app.models.subspecialty import Subspecialty


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Template(Base):
    """
    A radiology report template mirrored from the upstream catalog.

    Lifecycle:
        1. Created or updated on every sync (never deleted by sync)
        2. While `template_data` is NULL: eligible for refresh / generation
        3. Enrichment writes template_data + attribution fields in one update
    """

    __tablename__ = "templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    template_id: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        comment="Upstream template identifier (upsert key)",
    )
    template_version: Mapped[str] = mapped_column(String(100), nullable=False)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    lang: Mapped[str] = mapped_column(
        String(50), nullable=False, default="English", server_default=text("'English'")
    )
    created: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Upstream publication timestamp",
    )
    specialty: Mapped[str] = mapped_column(String(200), nullable=False)
    spec_code: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default="",
        server_default=text("''"),
        comment="Comma-separated subspecialty codes",
    )
    tlap_approved: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    views: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    downloads: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )

    # ── Attribution (optional, enrichable) ────────────────────────────────
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    author: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, default="")
    firstname: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, default="")
    lastname: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, default="")

    # ── Content ───────────────────────────────────────────────────────────
    data_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="html", server_default=text("'html'")
    )
    template_data: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Rendered report-template document; NULL until enriched",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    subspecialties: Mapped[List["Subspecialty"]] = relationship(
        "Subspecialty",
        secondary="subspecialty_templates",
        back_populates="templates",
        viewonly=True,
    )

    __table_args__ = (
        Index("idx_templates_spec_code", "spec_code"),
        Index("idx_templates_title", "title"),
        Index("idx_templates_specialty", "specialty"),
        Index("idx_templates_views", "views"),
    )

    def __repr__(self) -> str:
        return (
            f"<Template(template_id='{self.template_id}', "
            f"spec_code='{self.spec_code}', has_data={self.template_data is not None})>"
        )
