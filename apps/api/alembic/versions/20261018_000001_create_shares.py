"""create shares table

Revision ID: 20261018_000001
Revises:
Create Date: 2026-10-18 00:00:01.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261018_000001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "shares",
        sa.Column("share_id", sa.String(length=32), nullable=False),
        sa.Column("owner_id", sa.String(), nullable=True),
        sa.Column("payload_kind", sa.String(), nullable=False),
        sa.Column("text_content", sa.Text(), nullable=True),
        sa.Column("file_name", sa.String(), nullable=True),
        sa.Column("storage_path", sa.String(), nullable=True),
        sa.Column("cached_file_url", sa.String(), nullable=True),
        sa.Column("file_size", sa.BigInteger(), nullable=True),
        sa.Column("mime_type", sa.String(), nullable=True),
        sa.Column("password_hash", sa.String(), nullable=True),
        sa.Column("password_protected", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("one_time_view", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("view_limit", sa.Integer(), nullable=True),
        sa.Column("view_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "(text_content IS NULL) <> (storage_path IS NULL)",
            name="ck_shares_single_payload",
        ),
        sa.CheckConstraint("view_count >= 0", name="ck_shares_view_count_non_negative"),
        sa.CheckConstraint("view_limit IS NULL OR view_limit > 0", name="ck_shares_view_limit_positive"),
        sa.PrimaryKeyConstraint("share_id"),
    )
    op.create_index(op.f("ix_shares_owner_id"), "shares", ["owner_id"], unique=False)
    op.create_index(op.f("ix_shares_expires_at"), "shares", ["expires_at"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_shares_expires_at"), table_name="shares")
    op.drop_index(op.f("ix_shares_owner_id"), table_name="shares")
    op.drop_table("shares")
