"""initial_parking_wallet_schema

Revision ID: 4f2a9c1d7e30
Revises:
Create Date: 2026-10-16 09:12:40.118204

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "4f2a9c1d7e30"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "subjects",
        sa.Column("subject_id", sa.String(length=64), nullable=False),
        sa.Column("username", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("credential", sa.String(length=128), nullable=True),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("vehicles", sa.JSON(), nullable=False),
        sa.Column("vehicle_plates", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("subject_id"),
        sa.UniqueConstraint("email"),
        sa.UniqueConstraint("credential"),
    )

    op.create_table(
        "wallets",
        sa.Column("wallet_id", sa.String(length=64), nullable=False),
        sa.Column("subject_id", sa.String(length=64), nullable=False),
        sa.Column("current_balance", sa.Integer(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("current_balance >= 0", name="check_balance_non_negative"),
        sa.PrimaryKeyConstraint("wallet_id"),
        sa.UniqueConstraint("subject_id"),
    )

    op.create_table(
        "wallet_transactions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("wallet_id", sa.String(length=64), nullable=False),
        sa.Column("delta", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("reference", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("kind IN ('top_up', 'deduction')", name="check_kind"),
        sa.ForeignKeyConstraint(["wallet_id"], ["wallets.wallet_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "parking_sessions",
        sa.Column("session_id", sa.String(length=64), nullable=False),
        sa.Column("subject_id", sa.String(length=64), nullable=False),
        sa.Column("vehicle_tag", sa.String(length=32), nullable=False),
        sa.Column("entered_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("exited_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("amount_due", sa.Integer(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("payment_state", sa.String(length=16), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "payment_state IN ('pending', 'paid', 'cancelled')", name="check_payment_state"
        ),
        sa.CheckConstraint("amount_due >= 0", name="check_amount_due_non_negative"),
        sa.PrimaryKeyConstraint("session_id"),
    )

    # Create indexes for better query performance
    op.create_index("ix_wallet_transactions_wallet_id", "wallet_transactions", ["wallet_id"])
    op.create_index("ix_wallet_transactions_reference", "wallet_transactions", ["reference"])
    op.create_index("ix_parking_sessions_subject_id", "parking_sessions", ["subject_id"])
    op.create_index("ix_parking_sessions_vehicle_tag", "parking_sessions", ["vehicle_tag"])

    # One open session per plate
    op.create_index(
        "uq_parking_sessions_active_vehicle",
        "parking_sessions",
        ["vehicle_tag"],
        unique=True,
        postgresql_where=sa.text("exited_at IS NULL"),
    )


def downgrade() -> None:
    # Drop indexes
    op.drop_index("uq_parking_sessions_active_vehicle", table_name="parking_sessions")
    op.drop_index("ix_parking_sessions_vehicle_tag", table_name="parking_sessions")
    op.drop_index("ix_parking_sessions_subject_id", table_name="parking_sessions")
    op.drop_index("ix_wallet_transactions_reference", table_name="wallet_transactions")
    op.drop_index("ix_wallet_transactions_wallet_id", table_name="wallet_transactions")

    # Drop tables
    op.drop_table("parking_sessions")
    op.drop_table("wallet_transactions")
    op.drop_table("wallets")
    op.drop_table("subjects")
