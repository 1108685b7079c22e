"""
RadCatalog Backend - Subspecialty/Template Association Model
==============================================================

What:  The `subspecialty_templates` join table ("template belongs to subspecialty").
How:   Entirely derived from `Template.spec_code`. The reconciler deletes every
       row at the start of a run and re-inserts them from the parsed codes that
       match a known subspecialty in the same run.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Index, Integer, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class SubspecialtyTemplate(Base):
    __tablename__ = "subspecialty_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    subspecialty_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("subspecialties.id", ondelete="CASCADE"),
        nullable=False,
    )
    template_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("templates.id", ondelete="CASCADE"),
        nullable=False,
        comment="References templates.id (surrogate key), not the upstream template_id",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        UniqueConstraint(
            "subspecialty_id", "template_id", name="uq_subspecialty_template"
        ),
        Index("idx_subspecialty_templates_subspecialty", "subspecialty_id"),
        Index("idx_subspecialty_templates_template", "template_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<SubspecialtyTemplate(subspecialty_id={self.subspecialty_id}, "
            f"template_id={self.template_id})>"
        )
