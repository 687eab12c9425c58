"""Invoice payment status derivation.

``derive_invoice_status`` is the single rule for an invoice's status, and
``apply_payment_amount`` is the only place invoice aggregates are changed.
Posting, refunds and recomputation all go through it, so
``balance_amount == total_amount - paid_amount`` always holds.

Stored status is refreshed only when one of those paths touches the invoice.
An unpaid SENT invoice past its due date stays SENT until then; run
``recompute_customer_aggregates`` (``POST /reconciliation/customers/{id}/recompute``)
to bring every invoice of a customer up to date, OVERDUE included.
"""

from datetime import date
from decimal import Decimal

from erp_recon.models import Invoice, InvoiceStatus
from erp_recon.services.exceptions import ConsistencyError, ValidationError


def derive_invoice_status(
    total_amount: Decimal,
    paid_amount: Decimal,
    due_date: date,
    today: date,
    current: InvoiceStatus | None = None,
) -> InvoiceStatus:
    """Derive the invoice status from (total, paid, due date, today).

    Cancelled invoices stay cancelled whatever their amounts are.
    """
    if current == InvoiceStatus.CANCELLED:
        return InvoiceStatus.CANCELLED
    if paid_amount >= total_amount:
        return InvoiceStatus.PAID
    if paid_amount > 0:
        return InvoiceStatus.PARTIALLY_PAID
    if today > due_date:
        return InvoiceStatus.OVERDUE
    return InvoiceStatus.SENT


def apply_payment_amount(invoice: Invoice, delta: Decimal, on_date: date) -> InvoiceStatus:
    """Add ``delta`` (negative for refunds) to the invoice's paid amount.

    Recomputes balance, status and paid date from the post-increment values
    and returns the new status.
    """
    if invoice.status == InvoiceStatus.CANCELLED and delta > 0:
        raise ValidationError(
            "Cannot apply payment to a cancelled invoice",
            invoice_id=str(invoice.id),
        )

    new_paid = invoice.paid_amount + delta
    new_balance = invoice.total_amount - new_paid
    if new_paid < 0:
        raise ConsistencyError(
            "Invoice paid amount would become negative",
            invoice_id=str(invoice.id),
            paid_amount=str(new_paid),
        )
    if new_balance < 0:
        raise ConsistencyError(
            "Invoice balance would become negative",
            invoice_id=str(invoice.id),
            balance_amount=str(new_balance),
        )

    previous = invoice.status
    status = derive_invoice_status(
        invoice.total_amount, new_paid, invoice.due_date, on_date, current=previous
    )

    invoice.paid_amount = new_paid
    invoice.balance_amount = new_balance
    invoice.status = status
    if status == InvoiceStatus.PAID and previous != InvoiceStatus.PAID:
        invoice.paid_date = on_date
    elif status != InvoiceStatus.PAID:
        invoice.paid_date = None
    return status
