"""create escrow_payments and audit_logs tables

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "001"
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


def upgrade() -> None:
    op.create_table(
        "escrow_payments",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("payment_id", sa.String(128), nullable=False),
        sa.Column("buyer", sa.String(128), nullable=False),
        sa.Column("seller", sa.String(128), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("fee_rate_bps", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("fee_amount", sa.BigInteger(), nullable=False, server_default="0"),
        # Asset
        sa.Column("asset_kind", sa.String(16), nullable=False, server_default="native"),
        sa.Column("asset_contract", sa.String(256), nullable=True),
        sa.Column("asset_token_id", sa.String(128), nullable=True),
        # Lifecycle
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("created_height", sa.BigInteger(), nullable=False),
        sa.Column("completed_height", sa.BigInteger(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("listing_id", sa.String(128), nullable=True),
        # Dispute
        sa.Column("disputed_by", sa.String(128), nullable=True),
        sa.Column("disputed_height", sa.BigInteger(), nullable=True),
        sa.Column("dispute_reason", sa.Text(), nullable=True),
        # Settlement
        sa.Column("seller_payout", sa.BigInteger(), nullable=True),
        sa.Column("buyer_refund", sa.BigInteger(), nullable=True),
        sa.Column("fee_collected", sa.BigInteger(), nullable=True),
        sa.Column("seller_share_bps", sa.Integer(), nullable=True),
        sa.Column("resolution", sa.String(32), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_escrow_payments_payment_id", "escrow_payments", ["payment_id"], unique=True,
    )
    op.create_index("ix_escrow_payments_buyer", "escrow_payments", ["buyer"])
    op.create_index("ix_escrow_payments_seller", "escrow_payments", ["seller"])
    op.create_index(
        "ix_escrow_payments_status_created", "escrow_payments", ["status", "created_height"],
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("payment_id", sa.String(128), nullable=False),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("actor", sa.String(128), nullable=True),
        sa.Column("from_status", sa.String(20), nullable=True),
        sa.Column("to_status", sa.String(20), nullable=False),
        sa.Column("details", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_payment", "audit_logs", ["payment_id", "id"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_payment", table_name="audit_logs")
    op.drop_index("ix_audit_logs_action", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_escrow_payments_status_created", table_name="escrow_payments")
    op.drop_index("ix_escrow_payments_seller", table_name="escrow_payments")
    op.drop_index("ix_escrow_payments_buyer", table_name="escrow_payments")
    op.drop_index("ix_escrow_payments_payment_id", table_name="escrow_payments")
    op.drop_table("escrow_payments")
