"""Reconciliation schema: customers, invoices, bank transactions, payments, logs."""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_reconciliation_schema"
down_revision = None
branch_labels = None
depends_on = None

MONEY = sa.Numeric(18, 2)


def upgrade() -> None:
    invoice_status_enum = sa.Enum(
        "SENT",
        "PARTIALLY_PAID",
        "PAID",
        "OVERDUE",
        "CANCELLED",
        name="invoice_status_enum",
    )
    bank_status_enum = sa.Enum(
        "PENDING",
        "MATCHED",
        "PARTIALLY_MATCHED",
        "UNMATCHED",
        "REJECTED",
        name="bank_transaction_status_enum",
    )
    payment_status_enum = sa.Enum("CONFIRMED", "REFUNDED", name="payment_status_enum")
    payment_method_enum = sa.Enum(
        "BANK_TRANSFER",
        "CASH",
        "CHEQUE",
        "OTHER",
        name="payment_method_enum",
    )
    action_enum = sa.Enum(
        "AUTO_MATCHED",
        "MANUAL_MATCHED",
        "UNMATCHED",
        "REJECTED",
        "FAILED",
        "REFUNDED",
        name="reconciliation_action_enum",
    )
    tier_enum = sa.Enum("EXACT", "FUZZY", "PARTIAL", "NONE", "MANUAL", name="match_tier_enum")

    op.create_table(
        "customers",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("customer_code", sa.String(length=32), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("current_balance", MONEY, nullable=False, server_default="0"),
        sa.Column("total_paid", MONEY, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "invoices",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("invoice_number", sa.String(length=64), nullable=False, unique=True),
        sa.Column(
            "customer_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("customers.id"),
            nullable=False,
        ),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("total_amount", MONEY, nullable=False),
        sa.Column("paid_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("balance_amount", MONEY, nullable=False),
        sa.Column("status", invoice_status_enum, nullable=False),
        sa.Column("paid_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("balance_amount >= 0", name="ck_invoices_balance_non_negative"),
        sa.CheckConstraint("paid_amount >= 0", name="ck_invoices_paid_non_negative"),
        sa.CheckConstraint(
            "balance_amount = total_amount - paid_amount",
            name="ck_invoices_balance_consistent",
        ),
    )
    op.create_index("ix_invoices_customer_id", "invoices", ["customer_id"])
    op.create_index("ix_invoices_status", "invoices", ["status"])

    op.create_table(
        "bank_transactions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("external_transaction_id", sa.String(length=128), nullable=False, unique=True),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("value_date", sa.Date(), nullable=True),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("reference", sa.Text(), nullable=False, server_default=""),
        sa.Column("payer_name", sa.String(length=255), nullable=True),
        sa.Column("balance_after", MONEY, nullable=True),
        sa.Column("status", bank_status_enum, nullable=False),
        sa.Column("attempt", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("matched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("matched_by", sa.String(length=100), nullable=True),
        sa.Column("statement_upload_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("row_number", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_bank_transactions_amount_positive"),
    )
    op.create_index(
        "ix_bank_transactions_transaction_date", "bank_transactions", ["transaction_date"]
    )
    op.create_index("ix_bank_transactions_status", "bank_transactions", ["status"])
    op.create_index(
        "ix_bank_transactions_statement_upload_id", "bank_transactions", ["statement_upload_id"]
    )

    op.create_table(
        "payments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "customer_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("customers.id"),
            nullable=False,
        ),
        sa.Column(
            "invoice_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("invoices.id"),
            nullable=True,
        ),
        sa.Column(
            "bank_transaction_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("bank_transactions.id"),
            nullable=True,
        ),
        sa.Column(
            "refund_of_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("payments.id"),
            nullable=True,
        ),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("payment_method", payment_method_enum, nullable=False),
        sa.Column("reference", sa.String(length=255), nullable=True),
        sa.Column("status", payment_status_enum, nullable=False),
        sa.Column("is_reconciled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reconciled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reconciled_by", sa.String(length=100), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_payments_customer_id", "payments", ["customer_id"])
    op.create_index("ix_payments_invoice_id", "payments", ["invoice_id"])
    op.create_index(
        "uq_payments_bank_transaction_confirmed",
        "payments",
        ["bank_transaction_id"],
        unique=True,
        postgresql_where=sa.text("status = 'CONFIRMED'"),
    )

    op.create_table(
        "reconciliation_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "bank_transaction_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("bank_transactions.id"),
            nullable=False,
        ),
        sa.Column("attempt", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("action", action_enum, nullable=False),
        sa.Column("tier", tier_enum, nullable=True),
        sa.Column("confidence", sa.Float(), nullable=True),
        sa.Column("score_breakdown", postgresql.JSONB(), nullable=True),
        sa.Column("needs_review", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("matched_customer_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("matched_invoice_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("matched_amount", MONEY, nullable=True),
        sa.Column("payment_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("performed_by", sa.String(length=100), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_reconciliation_logs_bank_transaction_id",
        "reconciliation_logs",
        ["bank_transaction_id"],
    )


def downgrade() -> None:
    op.drop_index("ix_reconciliation_logs_bank_transaction_id", table_name="reconciliation_logs")
    op.drop_table("reconciliation_logs")
    op.drop_index("uq_payments_bank_transaction_confirmed", table_name="payments")
    op.drop_index("ix_payments_invoice_id", table_name="payments")
    op.drop_index("ix_payments_customer_id", table_name="payments")
    op.drop_table("payments")
    op.drop_index("ix_bank_transactions_statement_upload_id", table_name="bank_transactions")
    op.drop_index("ix_bank_transactions_status", table_name="bank_transactions")
    op.drop_index("ix_bank_transactions_transaction_date", table_name="bank_transactions")
    op.drop_table("bank_transactions")
    op.drop_index("ix_invoices_status", table_name="invoices")
    op.drop_index("ix_invoices_customer_id", table_name="invoices")
    op.drop_table("invoices")
    op.drop_table("customers")

    for enum_name in (
        "match_tier_enum",
        "reconciliation_action_enum",
        "payment_method_enum",
        "payment_status_enum",
        "bank_transaction_status_enum",
        "invoice_status_enum",
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
