"""create email summaries

Revision ID: 3c1e7a9b52d4
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "3c1e7a9b52d4"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "summaries_email_summary",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sender", sa.String(length=255), nullable=False),
        sa.Column("subject", sa.Text(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("summary", sa.Text(), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("keywords", sa.JSON(), nullable=False),
        sa.Column("invoice_data", sa.JSON(), nullable=True),
        sa.Column(
            "financial_status",
            sa.String(length=50),
            nullable=False,
            server_default="no_financial_data",
        ),
        sa.Column("attachment_filename", sa.String(length=512), nullable=True),
        sa.Column("attachment_key", sa.String(length=1024), nullable=True),
    )
    op.create_index(
        "ix_summaries_email_summary_created_at",
        "summaries_email_summary",
        ["created_at"],
    )
    op.create_index(
        "ix_summaries_email_summary_category",
        "summaries_email_summary",
        ["category"],
    )


def downgrade() -> None:
    op.drop_index("ix_summaries_email_summary_category", table_name="summaries_email_summary")
    op.drop_index("ix_summaries_email_summary_created_at", table_name="summaries_email_summary")
    op.drop_table("summaries_email_summary")
