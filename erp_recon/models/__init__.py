"""SQLAlchemy models package."""

from erp_recon.models.bank_transaction import BankTransaction, BankTransactionStatus
from erp_recon.models.customer import Customer
from erp_recon.models.invoice import OPEN_INVOICE_STATUSES, Invoice, InvoiceStatus
from erp_recon.models.payment import Payment, PaymentMethod, PaymentStatus
from erp_recon.models.reconciliation import (
    MatchTier,
    ReconciliationAction,
    ReconciliationLog,
)

__all__ = [
    "BankTransaction",
    "BankTransactionStatus",
    "Customer",
    "Invoice",
    "InvoiceStatus",
    "MatchTier",
    "OPEN_INVOICE_STATUSES",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "ReconciliationAction",
    "ReconciliationLog",
]
