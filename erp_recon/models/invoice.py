"""Invoice model."""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, String, Uuid
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_recon.database import Base
from erp_recon.models.base import ZERO, Money, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from erp_recon.models.customer import Customer
    from erp_recon.models.payment import Payment


class InvoiceStatus(str, Enum):
    """Payment status of an invoice, derived from its amounts and dates."""

    SENT = "sent"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


# Statuses that can still receive payments.
OPEN_INVOICE_STATUSES = (
    InvoiceStatus.SENT,
    InvoiceStatus.PARTIALLY_PAID,
    InvoiceStatus.OVERDUE,
)


class Invoice(Base, UUIDMixin, TimestampMixin):
    """Customer invoice.

    Only services/invoice_status.py mutates paid_amount, balance_amount,
    status and paid_date.
    """

    __tablename__ = "invoices"
    __table_args__ = (
        CheckConstraint("balance_amount >= 0", name="ck_invoices_balance_non_negative"),
        CheckConstraint("paid_amount >= 0", name="ck_invoices_paid_non_negative"),
        # Exact NUMERIC arithmetic is only available on PostgreSQL.
        CheckConstraint(
            "balance_amount = total_amount - paid_amount",
            name="ck_invoices_balance_consistent",
        ).ddl_if(dialect="postgresql"),
    )

    invoice_number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    customer_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("customers.id"),
        nullable=False,
        index=True,
    )
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    total_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    balance_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)

    status: Mapped[InvoiceStatus] = mapped_column(
        SQLEnum(InvoiceStatus, name="invoice_status_enum"),
        nullable=False,
        default=InvoiceStatus.SENT,
        index=True,
    )
    paid_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    customer: Mapped["Customer"] = relationship("Customer", back_populates="invoices")
    payments: Mapped[list["Payment"]] = relationship("Payment", back_populates="invoice")

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_INVOICE_STATUSES

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number} {self.status.value} balance={self.balance_amount}>"
