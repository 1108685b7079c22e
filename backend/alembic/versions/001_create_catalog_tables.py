"""Create catalog tables

Revision ID: 001
Revises: None
Create Date: 2024-01-15 00:00:00.000000+00:00

What:  Creates `subspecialties`, `templates` and the `subspecialty_templates`
       association table mirroring the RadReport catalog.
How:   Portable column types (Integer keys, TIMESTAMP WITH TIME ZONE) so the same
       revision runs on PostgreSQL and on SQLite for local development.

Rollback: downgrade() drops all three tables (destructive; re-run a sync to repopulate).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create the three catalog tables with constraints and indexes (see app/models)."""
    op.create_table(
        "subspecialties",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "code",
            sa.String(10),
            nullable=False,
            comment="Upstream subspecialty code, e.g. 'CA'",
        ),
        sa.Column("short_name", sa.String(50), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("radlex_id", sa.String(50), nullable=True, comment="RadLex taxonomy reference"),
        sa.Column(
            "count",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
            comment="Number of linked templates, recomputed on every reconciliation",
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
    )
    op.create_index("idx_subspecialties_name", "subspecialties", ["name"])

    op.create_table(
        "templates",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "template_id",
            sa.String(50),
            nullable=False,
            comment="Upstream template identifier (upsert key)",
        ),
        sa.Column("template_version", sa.String(100), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("lang", sa.String(50), nullable=False, server_default=sa.text("'English'")),
        sa.Column(
            "created",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            comment="Upstream publication timestamp",
        ),
        sa.Column("specialty", sa.String(200), nullable=False),
        sa.Column(
            "spec_code",
            sa.String(100),
            nullable=False,
            server_default=sa.text("''"),
            comment="Comma-separated subspecialty codes",
        ),
        sa.Column("tlap_approved", sa.String(10), nullable=True),
        sa.Column("views", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("downloads", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("author", sa.String(100), nullable=True),
        sa.Column("firstname", sa.String(100), nullable=True),
        sa.Column("lastname", sa.String(100), nullable=True),
        sa.Column("data_type", sa.String(20), nullable=False, server_default=sa.text("'html'")),
        sa.Column(
            "template_data",
            sa.Text(),
            nullable=True,
            comment="Rendered report-template document; NULL until enriched",
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("template_id"),
    )
    op.create_index("idx_templates_spec_code", "templates", ["spec_code"])
    op.create_index("idx_templates_title", "templates", ["title"])
    op.create_index("idx_templates_specialty", "templates", ["specialty"])
    # Refresh and generation walk templates most-viewed first
    op.create_index("idx_templates_views", "templates", ["views"])

    op.create_table(
        "subspecialty_templates",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("subspecialty_id", sa.Integer(), nullable=False),
        sa.Column(
            "template_id",
            sa.Integer(),
            nullable=False,
            comment="References templates.id (surrogate key), not the upstream template_id",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["subspecialty_id"], ["subspecialties.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["template_id"], ["templates.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("subspecialty_id", "template_id", name="uq_subspecialty_template"),
    )
    op.create_index(
        "idx_subspecialty_templates_subspecialty", "subspecialty_templates", ["subspecialty_id"]
    )
    op.create_index(
        "idx_subspecialty_templates_template", "subspecialty_templates", ["template_id"]
    )


def downgrade() -> None:
    """Drop the catalog tables, association table first."""
    op.drop_index("idx_subspecialty_templates_template", table_name="subspecialty_templates")
    op.drop_index("idx_subspecialty_templates_subspecialty", table_name="subspecialty_templates")
    op.drop_table("subspecialty_templates")

    op.drop_index("idx_templates_views", table_name="templates")
    op.drop_index("idx_templates_specialty", table_name="templates")
    op.drop_index("idx_templates_title", table_name="templates")
    op.drop_index("idx_templates_spec_code", table_name="templates")
    op.drop_table("templates")

    op.drop_index("idx_subspecialties_name", table_name="subspecialties")
    op.drop_table("subspecialties")
