"""Initial schema: tenancy, credit ledger, pricing, usage, audit

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

FEATURE_TYPES = (
    "KEYWORD_RESEARCH",
    "RANK_CHECK",
    "GEO_GRID",
    "SENTIMENT_ANALYSIS",
    "REVIEW_IMPORT",
    "LLM_VISIBILITY",
)

# Shared by three tables, so created once up front
featuretype = postgresql.ENUM(*FEATURE_TYPES, name="featuretype", create_type=False)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def upgrade() -> None:
    featuretype.create(op.get_bind(), checkfirst=True)

    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("hashed_password", sa.String(128), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default="false"),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # --- accounts ---
    op.create_table(
        "accounts",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("owner_id", sa.UUID(), nullable=False),
        sa.Column("plan", sa.String(64), nullable=False, server_default="free"),
        sa.Column(
            "subscription_status",
            sa.Enum("NONE", "ACTIVE", "PAST_DUE", "CANCELED", name="subscriptionstatus"),
            nullable=False,
            server_default="NONE",
        ),
        _created_at(),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_accounts_owner_id", "accounts", ["owner_id"])

    # --- account_members ---
    op.create_table(
        "account_members",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("account_id", sa.UUID(), nullable=False),
        sa.Column(
            "role",
            sa.Enum("OWNER", "ADMIN", "MEMBER", name="memberrole"),
            nullable=False,
        ),
        _created_at(),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "account_id", name="uq_user_account"),
    )
    op.create_index("ix_account_members_user_id", "account_members", ["user_id"])
    op.create_index("ix_account_members_account_id", "account_members", ["account_id"])

    # --- credit_balances ---
    op.create_table(
        "credit_balances",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("account_id", sa.UUID(), nullable=False),
        sa.Column("subscription_credits", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("purchased_credits", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("bonus_credits", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("subscription_credits_expire_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_monthly_grant_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("account_id"),
        sa.CheckConstraint("subscription_credits >= 0", name="ck_balance_subscription_non_negative"),
        sa.CheckConstraint("purchased_credits >= 0", name="ck_balance_purchased_non_negative"),
        sa.CheckConstraint("bonus_credits >= 0", name="ck_balance_bonus_non_negative"),
    )

    # --- credit_transactions ---
    op.create_table(
        "credit_transactions",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("account_id", sa.UUID(), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("balance_after", sa.BigInteger(), nullable=False),
        sa.Column(
            "credit_type",
            sa.Enum("SUBSCRIPTION", "PURCHASED", "BONUS", name="credittype"),
            nullable=False,
        ),
        sa.Column(
            "transaction_type",
            sa.Enum(
                "PURCHASE",
                "CONSUMPTION",
                "REFUND",
                "ADJUSTMENT",
                "GRANT",
                name="transactiontype",
            ),
            nullable=False,
        ),
        sa.Column("feature_type", featuretype, nullable=True),
        sa.Column("idempotency_key", sa.String(255), nullable=True),
        sa.Column("external_reference", sa.String(255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("created_by", sa.UUID(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "account_id", "idempotency_key", name="uq_credit_tx_account_idempotency"
        ),
    )
    op.create_index("ix_credit_transactions_account_id", "credit_transactions", ["account_id"])
    op.create_index(
        "ix_credit_tx_account_created", "credit_transactions", ["account_id", "created_at"]
    )

    # --- feature_pricing_rules ---
    op.create_table(
        "feature_pricing_rules",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("feature_type", featuretype, nullable=False),
        sa.Column("rule_key", sa.String(64), nullable=False),
        sa.Column("credit_cost", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_pricing_feature_rule",
        "feature_pricing_rules",
        ["feature_type", "rule_key"],
        unique=True,
    )

    # --- credit_packs ---
    op.create_table(
        "credit_packs",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("credits", sa.Integer(), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("provider_price_id", sa.String(255), nullable=True),
        sa.Column("provider_price_id_recurring", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )

    # --- tier_credits ---
    op.create_table(
        "tier_credits",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("tier", sa.String(64), nullable=False),
        sa.Column("monthly_credits", sa.Integer(), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tier"),
    )

    # --- feature_usage ---
    op.create_table(
        "feature_usage",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("account_id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("feature_type", featuretype, nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("credits_charged", sa.BigInteger(), nullable=False),
        sa.Column("request_id", sa.String(200), nullable=False),
        sa.Column(
            "status",
            sa.Enum("CHARGED", "REFUNDED", name="usagestatus"),
            nullable=False,
            server_default="CHARGED",
        ),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("account_id", "request_id", name="uq_usage_account_request"),
    )
    op.create_index(
        "ix_usage_account_created", "feature_usage", ["account_id", "created_at"]
    )

    # --- audit_logs ---
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("account_id", sa.UUID(), nullable=False),
        sa.Column("actor_user_id", sa.UUID(), nullable=True),
        sa.Column("event_type", sa.String(128), nullable=False),
        sa.Column("resource_type", sa.String(64), nullable=True),
        sa.Column("resource_id", sa.String(64), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_account_id", "audit_logs", ["account_id"])
    op.create_index("ix_audit_created_at", "audit_logs", ["created_at"])
    op.create_index("ix_audit_logs_event_type", "audit_logs", ["event_type"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("feature_usage")
    op.drop_table("tier_credits")
    op.drop_table("credit_packs")
    op.drop_table("feature_pricing_rules")
    op.drop_table("credit_transactions")
    op.drop_table("credit_balances")
    op.drop_table("account_members")
    op.drop_table("accounts")
    op.drop_table("users")
    op.execute("DROP TYPE IF EXISTS usagestatus")
    op.execute("DROP TYPE IF EXISTS featuretype")
    op.execute("DROP TYPE IF EXISTS transactiontype")
    op.execute("DROP TYPE IF EXISTS credittype")
    op.execute("DROP TYPE IF EXISTS memberrole")
    op.execute("DROP TYPE IF EXISTS subscriptionstatus")
