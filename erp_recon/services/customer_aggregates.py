"""Customer running totals and their recomputation.

Postings adjust ``total_paid``/``current_balance`` with SQL-side arithmetic and
no row lock, so concurrent postings for one customer never serialize on the
customer row. The aggregates are therefore best-effort; ``recompute_*``
rebuilds them from invoices and confirmed payments.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from erp_recon.logger import get_logger
from erp_recon.models import Customer, Invoice, InvoiceStatus, Payment, PaymentStatus
from erp_recon.services.exceptions import NotFoundError
from erp_recon.services.invoice_status import apply_payment_amount

logger = get_logger(__name__)


async def increment_customer_aggregates(
    db: AsyncSession, customer_id: UUID, paid_delta: Decimal
) -> None:
    """Add ``paid_delta`` to total_paid and subtract it from current_balance."""
    await db.execute(
        update(Customer)
        .where(Customer.id == customer_id)
        .values(
            total_paid=Customer.total_paid + paid_delta,
            current_balance=Customer.current_balance - paid_delta,
        )
        .execution_options(synchronize_session=False)
    )


async def recompute_invoice(db: AsyncSession, invoice_id: UUID, today: date) -> Invoice:
    """Rebuild an invoice's paid amount from its confirmed payments."""
    invoice = (
        await db.execute(
            select(Invoice)
            .where(Invoice.id == invoice_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if invoice is None:
        raise NotFoundError("Invoice not found", invoice_id=str(invoice_id))

    paid = (
        await db.execute(
            select(func.coalesce(func.sum(Payment.amount), 0)).where(
                Payment.invoice_id == invoice_id,
                Payment.status == PaymentStatus.CONFIRMED,
            )
        )
    ).scalar_one()
    paid = Decimal(str(paid)).quantize(Decimal("0.01"))

    apply_payment_amount(invoice, paid - invoice.paid_amount, today)
    await db.flush()
    return invoice


async def recompute_customer_aggregates(
    db: AsyncSession, customer_id: UUID, today: date | None = None
) -> Customer:
    """Rebuild a customer's invoices and running totals from confirmed payments.

    current_balance is the outstanding balance of non-cancelled invoices minus
    unapplied credit (confirmed payments not tied to an invoice).
    """
    today = today or date.today()
    customer = await db.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer not found", customer_id=str(customer_id))

    invoice_ids = (
        await db.execute(
            select(Invoice.id)
            .where(Invoice.customer_id == customer_id)
            .order_by(Invoice.invoice_number)
        )
    ).scalars().all()
    for invoice_id in invoice_ids:
        await recompute_invoice(db, invoice_id, today)

    total_paid = (
        await db.execute(
            select(func.coalesce(func.sum(Payment.amount), 0)).where(
                Payment.customer_id == customer_id,
                Payment.status == PaymentStatus.CONFIRMED,
            )
        )
    ).scalar_one()
    unapplied = (
        await db.execute(
            select(func.coalesce(func.sum(Payment.amount), 0)).where(
                Payment.customer_id == customer_id,
                Payment.status == PaymentStatus.CONFIRMED,
                Payment.invoice_id.is_(None),
            )
        )
    ).scalar_one()
    outstanding = (
        await db.execute(
            select(func.coalesce(func.sum(Invoice.balance_amount), 0)).where(
                Invoice.customer_id == customer_id,
                Invoice.status != InvoiceStatus.CANCELLED,
            )
        )
    ).scalar_one()

    cents = Decimal("0.01")
    customer.total_paid = Decimal(str(total_paid)).quantize(cents)
    customer.current_balance = (
        Decimal(str(outstanding)) - Decimal(str(unapplied))
    ).quantize(cents)
    await db.flush()
    await db.refresh(customer)

    logger.info(
        "Customer aggregates recomputed",
        customer_id=str(customer_id),
        total_paid=str(customer.total_paid),
        current_balance=str(customer.current_balance),
        invoices=len(invoice_ids),
    )
    return customer
