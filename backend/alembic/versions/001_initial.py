"""Initial migration

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PERCENT_FIELDS = ("profit_target", "max_drawdown", "daily_drawdown", "profit_split")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("first_name", sa.String(128), nullable=True),
        sa.Column("last_name", sa.String(128), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("country", sa.String(64), nullable=True),
        sa.Column("trading_experience", sa.String(64), nullable=True),
        sa.Column("role", sa.String(32), nullable=False, server_default="user"),
        sa.Column("is_blocked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"])
    op.create_index("ix_users_role", "users", ["role"])

    op.create_table(
        "trading_plans",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("account_size", sa.Numeric(18, 2), nullable=False),
        sa.Column("price", sa.Numeric(18, 6), nullable=False),
        sa.Column("profit_target", sa.Numeric(5, 2), nullable=False, server_default="8.00"),
        sa.Column("max_drawdown", sa.Numeric(5, 2), nullable=False, server_default="10.00"),
        sa.Column("daily_drawdown", sa.Numeric(5, 2), nullable=False, server_default="5.00"),
        sa.Column("profit_split", sa.Numeric(5, 2), nullable=False, server_default="80.00"),
        sa.Column("evaluation_period", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("min_trading_days", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("price > 0", name="ck_trading_plans_price_positive"),
        sa.CheckConstraint("account_size > 0", name="ck_trading_plans_account_size_positive"),
        *(
            sa.CheckConstraint(f"{f} >= 0 AND {f} <= 100", name=f"ck_trading_plans_{f}_pct")
            for f in PERCENT_FIELDS
        ),
    )
    op.create_index("ix_trading_plans_active", "trading_plans", ["is_active"])
    op.create_index("ix_trading_plans_account_size", "trading_plans", ["account_size"])

    op.create_table(
        "payments",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("plan_id", sa.Uuid(), sa.ForeignKey("trading_plans.id"), nullable=False),
        sa.Column("amount", sa.Numeric(18, 6), nullable=False),
        sa.Column("currency", sa.String(16), nullable=False, server_default="USDT"),
        sa.Column("wallet_address", sa.String(64), nullable=False),
        sa.Column("memo", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("transaction_hash", sa.String(128), nullable=True, unique=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "(status = 'confirmed') = (confirmed_at IS NOT NULL)",
            name="ck_payments_confirmed_at",
        ),
        sa.CheckConstraint(
            "status != 'confirmed' OR transaction_hash IS NOT NULL",
            name="ck_payments_confirmed_tx_hash",
        ),
    )
    op.create_index("ix_payments_user_id", "payments", ["user_id"])
    op.create_index("ix_payments_plan_id", "payments", ["plan_id"])
    op.create_index("ix_payments_status", "payments", ["status"])
    op.create_index("ix_payments_user_status", "payments", ["user_id", "status"])

    op.create_table(
        "user_challenges",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("plan_id", sa.Uuid(), sa.ForeignKey("trading_plans.id"), nullable=False),
        sa.Column("payment_id", sa.Uuid(), sa.ForeignKey("payments.id"), nullable=True, unique=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_balance", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("highest_balance", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("lowest_balance", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("total_profit", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("trading_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_user_challenges_user_id", "user_challenges", ["user_id"])
    op.create_index("ix_user_challenges_plan_id", "user_challenges", ["plan_id"])
    op.create_index("ix_user_challenges_status", "user_challenges", ["status"])
    op.create_index("ix_user_challenges_user_status", "user_challenges", ["user_id", "status"])

    op.create_table(
        "trading_history",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "challenge_id", sa.Uuid(),
            sa.ForeignKey("user_challenges.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("trade_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("profit_loss", sa.Numeric(18, 2), nullable=False),
        sa.Column("balance_after", sa.Numeric(18, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_trading_history_challenge_id", "trading_history", ["challenge_id"])
    op.create_index("ix_trading_history_trade_date", "trading_history", ["trade_date"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(64), nullable=False),
        sa.Column("title", sa.String(256), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_is_read", "notifications", ["is_read"])
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("trading_history")
    op.drop_table("user_challenges")
    op.drop_table("payments")
    op.drop_table("trading_plans")
    op.drop_table("users")
