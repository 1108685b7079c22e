"""
RadCatalog Backend - Subspecialty SQLAlchemy Model
====================================================

What:  ORM model representing the `subspecialties` table.
Who:   Written by the RelationshipReconciler; read by CatalogService and Alembic.

Table Design:
    - Integer surrogate key referenced by the association table
    - `code`: unique natural key from the upstream catalog (e.g. "CA", "NR")
    - `count`: cached number of linked templates. Derived data: only the
      reconciler's recompute step writes it, and it always equals the number
      of `subspecialty_templates` rows referencing this subspecialty after a run.
"""

from datetime import datetime, timezone
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import DateTime, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

if TYPE_CHECKING:
    from app.models.template import Template


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Subspecialty(Base):
    """
    One radiology subspecialty category.

    Lifecycle:
        1. Created on the first sync that sees its code
        2. Updated (labels, radlex id) on every later sync
        3. Never deleted individually; only its associations are rebuilt
    """

    __tablename__ = "subspecialties"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    code: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        unique=True,
        comment="Upstream subspecialty code, e.g. 'CA'",
    )

    short_name: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    radlex_id: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="RadLex taxonomy reference",
    )

    count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
        comment="Number of linked templates, recomputed on every reconciliation",
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

    # Read-only view over the association table; rows are written through
    # SubspecialtyTemplate directly by the reconciler.
    templates: Mapped[List["Template"]] = relationship(
        "Template",
        secondary="subspecialty_templates",
        back_populates="subspecialties",
        viewonly=True,
    )

    __table_args__ = (
        Index("idx_subspecialties_name", "name"),
    )

    def __repr__(self) -> str:
        return f"<Subspecialty(code='{self.code}', count={self.count})>"
