"""Add sponsorships and custodial_key_records tables.

Revision ID: 2026_10_01_0001
Revises: 2026_10_01_0000
Create Date: 2026-10-01

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "2026_10_01_0001"
down_revision: str | None = "2026_10_01_0000"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create sponsorship workflow and key custody tables."""
    op.create_table(
        "sponsorships",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "lite_user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "sponsor_user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("hive_username", sa.String(16), nullable=False),
        sa.Column("cost_type", sa.String(20), nullable=False),
        sa.Column("cost_amount", sa.Numeric(12, 3), nullable=False),
        sa.Column("hive_tx_id", sa.String(128), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="ck_sponsorships_status_valid",
        ),
        sa.CheckConstraint(
            "cost_type IN ('hive_transfer', 'account_token')",
            name="ck_sponsorships_cost_type_valid",
        ),
        sa.CheckConstraint("cost_amount >= 0", name="ck_sponsorships_cost_non_negative"),
        sa.CheckConstraint("lite_user_id <> sponsor_user_id", name="ck_sponsorships_not_self"),
    )
    op.create_index(
        "uq_sponsorships_active_recipient",
        "sponsorships",
        ["lite_user_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'processing', 'completed')"),
    )
    op.create_index("idx_sponsorships_sponsor_user_id", "sponsorships", ["sponsor_user_id"])
    op.create_index("idx_sponsorships_status", "sponsorships", ["status"])

    op.create_table(
        "custodial_key_records",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("hive_username", sa.String(16), nullable=False),
        sa.Column("encrypted_posting_key", sa.Text(), nullable=False),
        sa.Column("encryption_iv", sa.String(32), nullable=False),
        sa.Column("encryption_auth_tag", sa.String(32), nullable=False),
        sa.Column("key_type", sa.String(20), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "key_type IN ('sponsored', 'user_provided')",
            name="ck_custodial_key_records_key_type_valid",
        ),
    )
    op.create_index(
        "idx_custodial_key_records_hive_username", "custodial_key_records", ["hive_username"]
    )


def downgrade() -> None:
    """Drop key custody and sponsorship tables."""
    op.drop_index("idx_custodial_key_records_hive_username", table_name="custodial_key_records")
    op.drop_table("custodial_key_records")
    op.drop_index("idx_sponsorships_status", table_name="sponsorships")
    op.drop_index("idx_sponsorships_sponsor_user_id", table_name="sponsorships")
    op.drop_index("uq_sponsorships_active_recipient", table_name="sponsorships")
    op.drop_table("sponsorships")
