"""Atomic payment posting and refunds.

Each posting is one unit of work: lock the bank transaction and the target
invoice, insert the payment, update the invoice through the status function,
bump customer aggregates, transition the transaction and append the audit
row. Either all of it commits or none of it does.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from erp_recon.logger import get_logger
from erp_recon.models import (
    BankTransaction,
    BankTransactionStatus,
    Customer,
    Invoice,
    InvoiceStatus,
    MatchTier,
    Payment,
    PaymentMethod,
    PaymentStatus,
    ReconciliationAction,
    ReconciliationLog,
)
from erp_recon.services.customer_aggregates import increment_customer_aggregates
from erp_recon.services.exceptions import (
    ConflictError,
    ConsistencyError,
    InvalidAmountError,
    NotFoundError,
    ValidationError,
)
from erp_recon.services.invoice_status import apply_payment_amount
from erp_recon.services.state_machine import assert_can_transition, lock_transaction, transition
from erp_recon.services.unit_of_work import run_in_transaction

logger = get_logger(__name__)


@dataclass
class PostingRequest:
    transaction_id: UUID
    customer_id: UUID
    invoice_id: UUID | None
    amount: Decimal
    actor: str = "system"
    manual: bool = False
    tier: MatchTier = MatchTier.EXACT
    confidence: float | None = None
    needs_review: bool = False
    breakdown: dict[str, float] = field(default_factory=dict)
    notes: str | None = None


@dataclass
class PostingResult:
    payment_id: UUID
    transaction_id: UUID
    transaction_status: BankTransactionStatus
    invoice_id: UUID | None = None
    invoice_status: InvoiceStatus | None = None
    balance_amount: Decimal | None = None


@dataclass
class RefundResult:
    refund_payment_id: UUID
    original_payment_id: UUID
    amount: Decimal
    invoice_id: UUID | None = None
    invoice_status: InvoiceStatus | None = None
    balance_amount: Decimal | None = None


class PaymentPoster:
    """Create payments from bank transactions under one transaction each."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        clock: Callable[[], date] = date.today,
    ) -> None:
        self.session_maker = session_maker
        self.clock = clock

    async def post(self, request: PostingRequest) -> PostingResult:
        return await run_in_transaction(
            self.session_maker, lambda db: self.post_in_session(db, request)
        )

    async def refund(self, payment_id: UUID, reason: str, actor: str) -> RefundResult:
        return await run_in_transaction(
            self.session_maker, lambda db: self.refund_in_session(db, payment_id, reason, actor)
        )

    async def post_in_session(self, db: AsyncSession, request: PostingRequest) -> PostingResult:
        """Posting steps; the caller owns the surrounding transaction."""
        txn = await lock_transaction(db, request.transaction_id)
        assert_can_transition(txn, BankTransactionStatus.MATCHED, manual=request.manual)

        if request.amount <= 0:
            raise InvalidAmountError("Amount must be positive", amount=str(request.amount))
        if request.amount > txn.amount:
            raise InvalidAmountError(
                "Amount exceeds bank transaction amount",
                amount=str(request.amount),
                transaction_amount=str(txn.amount),
            )

        existing = await db.execute(
            select(Payment.id).where(
                Payment.bank_transaction_id == txn.id,
                Payment.status == PaymentStatus.CONFIRMED,
            )
        )
        if existing.first() is not None:
            raise ConsistencyError(
                "Bank transaction already has a confirmed payment",
                transaction_id=str(txn.id),
            )

        customer = await db.get(Customer, request.customer_id)
        if customer is None:
            raise NotFoundError("Customer not found", customer_id=str(request.customer_id))

        invoice = None
        if request.invoice_id is not None:
            invoice = await self._lock_invoice(db, request.invoice_id)
            self._check_invoice(invoice, customer, request.amount)

        now = datetime.now(UTC)
        payment = Payment(
            customer_id=customer.id,
            invoice_id=invoice.id if invoice else None,
            bank_transaction_id=txn.id,
            amount=request.amount,
            payment_date=txn.transaction_date,
            payment_method=PaymentMethod.BANK_TRANSFER,
            reference=txn.reference[:255] if txn.reference else None,
            status=PaymentStatus.CONFIRMED,
            is_reconciled=True,
            reconciled_at=now,
            reconciled_by=request.actor,
            notes=request.notes,
        )
        db.add(payment)
        try:
            await db.flush()
        except IntegrityError as exc:
            raise ConflictError(
                "Bank transaction was posted concurrently",
                transaction_id=str(txn.id),
            ) from exc

        today = self.clock()
        if invoice is not None:
            apply_payment_amount(invoice, request.amount, today)
        await increment_customer_aggregates(db, customer.id, request.amount)

        partial = (invoice is not None and invoice.is_open) or request.amount < txn.amount
        target = (
            BankTransactionStatus.PARTIALLY_MATCHED if partial else BankTransactionStatus.MATCHED
        )
        attempt = transition(txn, target, actor=request.actor, manual=request.manual)

        db.add(
            ReconciliationLog(
                bank_transaction_id=txn.id,
                attempt=attempt,
                action=(
                    ReconciliationAction.MANUAL_MATCHED
                    if request.manual
                    else ReconciliationAction.AUTO_MATCHED
                ),
                tier=request.tier,
                confidence=request.confidence,
                score_breakdown=request.breakdown,
                needs_review=request.needs_review,
                matched_customer_id=customer.id,
                matched_invoice_id=invoice.id if invoice else None,
                matched_amount=request.amount,
                payment_id=payment.id,
                reason=request.notes,
                performed_by=request.actor,
            )
        )
        await db.flush()

        logger.info(
            "Payment posted",
            txn_id=str(txn.id),
            payment_id=str(payment.id),
            customer_id=str(customer.id),
            invoice_id=str(invoice.id) if invoice else None,
            amount=str(request.amount),
            tier=request.tier.value,
            transaction_status=target.value,
            needs_review=request.needs_review,
        )
        return PostingResult(
            payment_id=payment.id,
            transaction_id=txn.id,
            transaction_status=target,
            invoice_id=invoice.id if invoice else None,
            invoice_status=invoice.status if invoice else None,
            balance_amount=invoice.balance_amount if invoice else None,
        )

    async def refund_in_session(
        self, db: AsyncSession, payment_id: UUID, reason: str, actor: str
    ) -> RefundResult:
        if not reason or not reason.strip():
            raise ValidationError("Refund reason is required")

        original = (
            await db.execute(
                select(Payment)
                .where(Payment.id == payment_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        if original is None:
            raise NotFoundError("Payment not found", payment_id=str(payment_id))
        if original.status != PaymentStatus.CONFIRMED or original.amount <= 0:
            raise ConflictError(
                "Only confirmed payments can be refunded", payment_id=str(payment_id)
            )

        today = self.clock()
        refund = Payment(
            id=uuid4(),
            customer_id=original.customer_id,
            invoice_id=original.invoice_id,
            bank_transaction_id=original.bank_transaction_id,
            refund_of_id=original.id,
            amount=-original.amount,
            payment_date=today,
            payment_method=original.payment_method,
            reference=original.reference,
            status=PaymentStatus.REFUNDED,
            notes=reason.strip(),
        )
        original.status = PaymentStatus.REFUNDED
        db.add(refund)

        invoice = None
        if original.invoice_id is not None:
            invoice = await self._lock_invoice(db, original.invoice_id)
            apply_payment_amount(invoice, -original.amount, today)
        await increment_customer_aggregates(db, original.customer_id, -original.amount)

        if original.bank_transaction_id is not None:
            txn = await db.get(BankTransaction, original.bank_transaction_id)
            db.add(
                ReconciliationLog(
                    bank_transaction_id=original.bank_transaction_id,
                    attempt=txn.attempt if txn else 0,
                    action=ReconciliationAction.REFUNDED,
                    matched_customer_id=original.customer_id,
                    matched_invoice_id=original.invoice_id,
                    matched_amount=-original.amount,
                    payment_id=refund.id,
                    reason=reason.strip(),
                    performed_by=actor,
                )
            )
        await db.flush()

        logger.info(
            "Payment refunded",
            payment_id=str(original.id),
            refund_payment_id=str(refund.id),
            amount=str(original.amount),
            invoice_id=str(original.invoice_id) if original.invoice_id else None,
            actor=actor,
        )
        return RefundResult(
            refund_payment_id=refund.id,
            original_payment_id=original.id,
            amount=original.amount,
            invoice_id=invoice.id if invoice else None,
            invoice_status=invoice.status if invoice else None,
            balance_amount=invoice.balance_amount if invoice else None,
        )

    @staticmethod
    async def _lock_invoice(db: AsyncSession, invoice_id: UUID) -> Invoice:
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
        return invoice

    @staticmethod
    def _check_invoice(invoice: Invoice, customer: Customer, amount: Decimal) -> None:
        if invoice.customer_id != customer.id:
            raise ValidationError(
                "Invoice does not belong to customer",
                invoice_id=str(invoice.id),
                customer_id=str(customer.id),
            )
        if not invoice.is_open:
            raise ValidationError(
                f"Invoice is {invoice.status.value} and cannot receive payments",
                invoice_id=str(invoice.id),
            )
        if amount > invoice.balance_amount:
            raise InvalidAmountError(
                "Amount exceeds invoice balance",
                invoice_id=str(invoice.id),
                amount=str(amount),
                balance_amount=str(invoice.balance_amount),
            )
