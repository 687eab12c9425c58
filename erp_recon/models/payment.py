"""Payment model."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, String, Text, Uuid, text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_recon.database import Base
from erp_recon.models.base import Money, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from erp_recon.models.bank_transaction import BankTransaction
    from erp_recon.models.customer import Customer
    from erp_recon.models.invoice import Invoice


class PaymentStatus(str, Enum):
    CONFIRMED = "confirmed"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"
    CHEQUE = "cheque"
    OTHER = "other"


# Enum columns persist member names, hence 'CONFIRMED' in the predicate.
_CONFIRMED_ONLY = text("status = 'CONFIRMED'")


class Payment(Base, UUIDMixin, TimestampMixin):
    """Money received from a customer, optionally applied to one invoice.

    A payment without an invoice is unapplied customer credit. Refunds are
    stored as negative-amount rows pointing at the refunded payment.
    """

    __tablename__ = "payments"
    __table_args__ = (
        # At most one non-refunded payment per bank transaction.
        Index(
            "uq_payments_bank_transaction_confirmed",
            "bank_transaction_id",
            unique=True,
            postgresql_where=_CONFIRMED_ONLY,
            sqlite_where=_CONFIRMED_ONLY,
        ),
    )

    customer_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("customers.id"), nullable=False, index=True
    )
    invoice_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("invoices.id"), nullable=True, index=True
    )
    bank_transaction_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("bank_transactions.id"), nullable=True
    )
    refund_of_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("payments.id"), nullable=True
    )

    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(
        SQLEnum(PaymentMethod, name="payment_method_enum"),
        nullable=False,
        default=PaymentMethod.BANK_TRANSFER,
    )
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus, name="payment_status_enum"),
        nullable=False,
        default=PaymentStatus.CONFIRMED,
    )

    is_reconciled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reconciled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reconciled_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    customer: Mapped["Customer"] = relationship("Customer", back_populates="payments")
    invoice: Mapped["Invoice | None"] = relationship("Invoice", back_populates="payments")
    bank_transaction: Mapped["BankTransaction | None"] = relationship(
        "BankTransaction", back_populates="payments"
    )

    def __repr__(self) -> str:
        return f"<Payment {self.id} {self.amount} {self.status.value}>"
