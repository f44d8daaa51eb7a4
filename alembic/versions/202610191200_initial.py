"""initial schema

Revision ID: 202610191200
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610191200"
down_revision = None
branch_labels = None
depends_on = None


def _money():
    return sa.Numeric(precision=12, scale=2)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column(
            "is_onboarded", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("monthly_income", _money(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=10), nullable=False, server_default="KES"),
        sa.Column("financial_goals", sa.JSON(), nullable=False, server_default="[]"),
        *_timestamps(),
    )

    op.create_table(
        "wallets",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column(
            "type",
            sa.Enum(
                "Mobile Money", "Bank", "Cash", "Credit", "Savings", name="wallettype"
            ),
            nullable=False,
        ),
        sa.Column("balance", _money(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=10), nullable=False, server_default="KES"),
        sa.Column("color", sa.String(length=20), nullable=False),
        sa.Column("account_number", sa.String(length=100)),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_synced", sa.DateTime()),
        sa.Column("deleted_at", sa.DateTime()),
        *_timestamps(),
    )
    op.create_index("ix_wallets_user_id", "wallets", ["user_id"])
    op.create_index("ix_wallets_deleted_at", "wallets", ["deleted_at"])
    op.create_index(
        "uq_wallet_user_default",
        "wallets",
        ["user_id"],
        unique=True,
        sqlite_where=sa.text("is_default = 1 AND deleted_at IS NULL"),
        postgresql_where=sa.text("is_default AND deleted_at IS NULL"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("wallet_id", sa.Uuid(), sa.ForeignKey("wallets.id")),
        sa.Column("amount", _money(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("method", sa.String(length=100), nullable=False, server_default=""),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column(
            "status",
            sa.Enum("Completed", "Pending", "Failed", name="transactionstatus"),
            nullable=False,
            server_default="Completed",
        ),
        sa.Column("notes", sa.Text()),
        sa.Column("receipt_url", sa.String(length=500)),
        sa.Column("transaction_date", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime()),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
    )
    op.create_index("ix_transactions_wallet_id", "transactions", ["wallet_id"])
    op.create_index("ix_transactions_deleted_at", "transactions", ["deleted_at"])
    op.create_index(
        "ix_transactions_user_date", "transactions", ["user_id", "transaction_date"]
    )
    op.create_index(
        "ix_transactions_user_category", "transactions", ["user_id", "category"]
    )

    op.create_table(
        "saving_goals",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("target_amount", _money(), nullable=False),
        sa.Column("current_amount", _money(), nullable=False, server_default="0"),
        sa.Column("color", sa.String(length=20), nullable=False),
        sa.Column("icon", sa.String(length=50)),
        sa.Column("deadline", sa.Date()),
        sa.Column(
            "priority",
            sa.Enum("High", "Medium", "Low", name="goalpriority"),
            nullable=False,
            server_default="Medium",
        ),
        sa.Column("category", sa.String(length=100)),
        sa.Column(
            "status",
            sa.Enum("Active", "Paused", "Completed", name="goalstatus"),
            nullable=False,
            server_default="Active",
        ),
        sa.Column("deleted_at", sa.DateTime()),
        *_timestamps(),
        sa.CheckConstraint("target_amount > 0", name="ck_goal_target_positive"),
        sa.CheckConstraint(
            "current_amount >= 0 AND current_amount <= target_amount",
            name="ck_goal_current_within_target",
        ),
    )
    op.create_index("ix_saving_goals_user_id", "saving_goals", ["user_id"])
    op.create_index("ix_saving_goals_status", "saving_goals", ["status"])
    op.create_index("ix_saving_goals_deleted_at", "saving_goals", ["deleted_at"])

    op.create_table(
        "budgets",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("limit_amount", _money(), nullable=False),
        sa.Column("color", sa.String(length=20), nullable=False),
        sa.Column("icon", sa.String(length=50)),
        sa.Column(
            "is_rollover", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "type",
            sa.Enum("Fixed", "Variable", name="budgettype"),
            nullable=False,
            server_default="Variable",
        ),
        sa.Column("alert_threshold", sa.Integer(), nullable=False, server_default="80"),
        sa.Column("deleted_at", sa.DateTime()),
        *_timestamps(),
        sa.CheckConstraint("limit_amount > 0", name="ck_budget_limit_positive"),
        sa.CheckConstraint(
            "alert_threshold >= 0 AND alert_threshold <= 100",
            name="ck_budget_alert_threshold_range",
        ),
    )
    op.create_index("ix_budgets_deleted_at", "budgets", ["deleted_at"])
    op.create_index(
        "uq_budget_user_category",
        "budgets",
        ["user_id", "category"],
        unique=True,
        sqlite_where=sa.text("deleted_at IS NULL"),
        postgresql_where=sa.text("deleted_at IS NULL"),
    )


def downgrade():
    op.drop_index("uq_budget_user_category", table_name="budgets")
    op.drop_index("ix_budgets_deleted_at", table_name="budgets")
    op.drop_table("budgets")

    op.drop_index("ix_saving_goals_deleted_at", table_name="saving_goals")
    op.drop_index("ix_saving_goals_status", table_name="saving_goals")
    op.drop_index("ix_saving_goals_user_id", table_name="saving_goals")
    op.drop_table("saving_goals")

    op.drop_index("ix_transactions_user_category", table_name="transactions")
    op.drop_index("ix_transactions_user_date", table_name="transactions")
    op.drop_index("ix_transactions_deleted_at", table_name="transactions")
    op.drop_index("ix_transactions_wallet_id", table_name="transactions")
    op.drop_table("transactions")

    op.drop_index("uq_wallet_user_default", table_name="wallets")
    op.drop_index("ix_wallets_deleted_at", table_name="wallets")
    op.drop_index("ix_wallets_user_id", table_name="wallets")
    op.drop_table("wallets")

    op.drop_table("users")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for enum_name in (
            "budgettype",
            "goalstatus",
            "goalpriority",
            "transactionstatus",
            "wallettype",
        ):
            sa.Enum(name=enum_name).drop(bind, checkfirst=True)
