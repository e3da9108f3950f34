"""Create proposal, template, template page and pricing tables.

Revision ID: 0001_proposal_documents
Revises: None
Create Date: 2026-10-18
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "0001_proposal_documents"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def _pricing_columns() -> list[sa.Column]:
    return [
        sa.Column(
            "id",
            UUID(),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("company_id", UUID(), nullable=True),
        sa.Column("enabled", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("position", sa.Integer(), server_default="-1", nullable=False),
        sa.Column("title", sa.Text(), server_default="Pricing", nullable=False),
        sa.Column("intro_text", sa.Text(), nullable=True),
        sa.Column("items", JSONB(), server_default="[]", nullable=False),
        sa.Column("optional_items", JSONB(), server_default="[]", nullable=False),
        sa.Column("payment_schedule", JSONB(), nullable=True),
        sa.Column("tax_enabled", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("tax_rate", sa.Numeric(6, 3), server_default="0", nullable=False),
        sa.Column("tax_label", sa.Text(), server_default="GST", nullable=False),
        sa.Column("validity_days", sa.Integer(), server_default="30", nullable=False),
        sa.Column("proposal_date", sa.Date(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "proposals",
        sa.Column(
            "id",
            UUID(),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("company_id", UUID(), nullable=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("client_name", sa.Text(), nullable=False),
        sa.Column("client_email", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("file_path", sa.Text(), nullable=False),
        sa.Column("file_size_bytes", sa.BigInteger(), nullable=True),
        sa.Column("page_names", JSONB(), server_default="[]", nullable=False),
        sa.Column("share_token", sa.Text(), nullable=False, unique=True),
        sa.Column("status", sa.Text(), server_default="draft", nullable=False),
        sa.Column("version", sa.Integer(), server_default="1", nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('draft','sent','viewed','accepted','declined')",
            name="proposals_status_check",
        ),
    )
    op.create_index("idx_proposals_company", "proposals", ["company_id"])

    op.create_table(
        "proposal_templates",
        sa.Column(
            "id",
            UUID(),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("company_id", UUID(), nullable=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("page_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("version", sa.Integer(), server_default="1", nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "template_pages",
        sa.Column(
            "id",
            UUID(),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column(
            "template_id",
            UUID(),
            sa.ForeignKey("proposal_templates.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("company_id", UUID(), nullable=True),
        sa.Column("page_number", sa.Integer(), nullable=False),
        sa.Column("file_path", sa.Text(), nullable=False),
        sa.Column("label", sa.Text(), server_default="", nullable=False),
        sa.Column("indent", sa.Integer(), server_default="0", nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "template_id", "page_number", name="uq_template_pages_number"
        ),
    )

    op.create_table(
        "proposal_pricing",
        *_pricing_columns(),
        sa.Column(
            "proposal_id",
            UUID(),
            sa.ForeignKey("proposals.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        *_timestamps(),
    )

    op.create_table(
        "template_pricing",
        *_pricing_columns(),
        sa.Column(
            "template_id",
            UUID(),
            sa.ForeignKey("proposal_templates.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table("template_pricing")
    op.drop_table("proposal_pricing")
    op.drop_table("template_pages")
    op.drop_table("proposal_templates")
    op.drop_index("idx_proposals_company", table_name="proposals")
    op.drop_table("proposals")
