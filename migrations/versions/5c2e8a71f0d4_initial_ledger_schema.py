"""initial ledger schema

Revision ID: 5c2e8a71f0d4
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = "5c2e8a71f0d4"
down_revision = None
branch_labels = None
depends_on = None

LEDGER_REASONS = (
    "login",
    "referral_bonus",
    "redemption",
    "transfer",
    "payment",
    "activation",
    "refund",
    "carry_forward",
)


def upgrade():
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("public_id", sa.String(length=16), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=120), nullable=False),
        sa.Column("phone", sa.String(length=20), nullable=False),
        sa.Column("password_hash", sa.String(length=256), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False),
        sa.Column("blocked", sa.Boolean(), nullable=False),
        sa.Column("balance", sa.Integer(), nullable=False),
        sa.Column("tier", sa.String(length=10), nullable=False),
        sa.Column("login_count", sa.Integer(), nullable=False),
        sa.Column("login_streak", sa.Integer(), nullable=False),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
        sa.Column("referral_code", sa.String(length=12), nullable=True),
        sa.Column("referred_by_id", sa.Integer(), nullable=True),
        sa.Column("account_holder_name", sa.String(length=120), nullable=True),
        sa.Column("account_number", sa.String(length=20), nullable=True),
        sa.Column("ifsc", sa.String(length=11), nullable=True),
        sa.Column("bank_name", sa.String(length=120), nullable=True),
        sa.Column("upi_id", sa.String(length=120), nullable=True),
        sa.Column("service_activated", sa.Boolean(), nullable=False),
        sa.Column("payment_status", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),
        sa.ForeignKeyConstraint(["referred_by_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("public_id"),
        sa.UniqueConstraint("referral_code"),
    )
    op.create_index("ix_accounts_email", "accounts", ["email"], unique=True)

    op.create_table(
        "services",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("points_required", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=10), nullable=False),
        sa.Column("category", sa.String(length=60), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("points_required >= 1", name="ck_services_points_positive"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_services_status", "services", ["status"], unique=False)

    op.create_table(
        "payment_orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.String(length=80), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("payment_id", sa.String(length=80), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_id"),
        sa.UniqueConstraint("payment_id"),
    )
    op.create_index("ix_payment_orders_account_id", "payment_orders", ["account_id"], unique=False)
    op.create_index("ix_payment_orders_status", "payment_orders", ["status"], unique=False)

    op.create_table(
        "referrals",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("referrer_id", sa.Integer(), nullable=False),
        sa.Column("referred_id", sa.Integer(), nullable=True),
        sa.Column("code", sa.String(length=12), nullable=False),
        sa.Column(
            "status",
            sa.Enum("pending", "completed", name="referralstatus", native_enum=False, length=10),
            nullable=False,
        ),
        sa.Column("coins_earned", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["referred_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["referrer_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
        sa.UniqueConstraint("referred_id"),
    )
    op.create_index("ix_referrals_referrer_id", "referrals", ["referrer_id"], unique=False)
    op.create_index("ix_referrals_status", "referrals", ["status"], unique=False)

    op.create_table(
        "withdrawals",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "PENDING", "APPROVED", "SUCCESS", "FAILED",
                name="withdrawalstatus", native_enum=False, length=10,
            ),
            nullable=False,
        ),
        sa.Column("account_holder_name", sa.String(length=120), nullable=False),
        sa.Column("account_number", sa.String(length=20), nullable=False),
        sa.Column("ifsc", sa.String(length=11), nullable=False),
        sa.Column("bank_name", sa.String(length=120), nullable=False),
        sa.Column("upi_id", sa.String(length=120), nullable=True),
        sa.Column("payout_id", sa.String(length=80), nullable=True),
        sa.Column("notes", sa.String(length=255), nullable=True),
        sa.Column("needs_reconciliation", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_withdrawals_account_id", "withdrawals", ["account_id"], unique=False)
    op.create_index("ix_withdrawals_status", "withdrawals", ["status"], unique=False)
    op.create_index(
        "ix_withdrawals_needs_reconciliation", "withdrawals", ["needs_reconciliation"], unique=False
    )

    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column(
            "reason",
            sa.Enum(*LEDGER_REASONS, name="ledgerreason", native_enum=False, length=20),
            nullable=False,
        ),
        sa.Column("tier_at_time", sa.String(length=10), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("correlation_id", sa.String(length=36), nullable=True),
        sa.Column("idempotency_key", sa.String(length=120), nullable=True),
        sa.Column("note", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("idempotency_key"),
    )
    op.create_index("ix_ledger_entries_account_id", "ledger_entries", ["account_id"], unique=False)
    op.create_index("ix_ledger_entries_reason", "ledger_entries", ["reason"], unique=False)
    op.create_index("ix_ledger_entries_correlation_id", "ledger_entries", ["correlation_id"], unique=False)
    op.create_index("ix_ledger_entries_created_at", "ledger_entries", ["created_at"], unique=False)

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "kind",
            sa.Enum("payout", "payment", name="transactionkind", native_enum=False, length=10),
            nullable=False,
        ),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("withdrawal_id", sa.Integer(), nullable=True),
        sa.Column("payment_order_id", sa.Integer(), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False),
        sa.Column(
            "status",
            sa.Enum("SUCCESS", "FAILED", name="transactionstatus", native_enum=False, length=10),
            nullable=False,
        ),
        sa.Column("raw_response", sa.JSON(), nullable=True),
        sa.Column("external_id", sa.String(length=80), nullable=True),
        sa.Column("error_message", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["payment_order_id"], ["payment_orders.id"]),
        sa.ForeignKeyConstraint(["withdrawal_id"], ["withdrawals.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_transactions_account_id", "transactions", ["account_id"], unique=False)
    op.create_index("ix_transactions_withdrawal_id", "transactions", ["withdrawal_id"], unique=False)
    op.create_index("ix_transactions_payment_order_id", "transactions", ["payment_order_id"], unique=False)
    op.create_index("ix_transactions_status", "transactions", ["status"], unique=False)
    op.create_index("ix_transactions_external_id", "transactions", ["external_id"], unique=False)


def downgrade():
    op.drop_table("transactions")
    op.drop_table("ledger_entries")
    op.drop_table("withdrawals")
    op.drop_table("referrals")
    op.drop_table("payment_orders")
    op.drop_table("services")
    op.drop_index("ix_accounts_email", table_name="accounts")
    op.drop_table("accounts")
