"""Bank transaction model."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, DateTime, Integer, String, Text, Uuid
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_recon.database import Base
from erp_recon.models.base import Money, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from erp_recon.models.payment import Payment
    from erp_recon.models.reconciliation import ReconciliationLog


class BankTransactionStatus(str, Enum):
    """Reconciliation status of an incoming bank transaction."""

    PENDING = "pending"
    MATCHED = "matched"
    PARTIALLY_MATCHED = "partially_matched"
    UNMATCHED = "unmatched"
    REJECTED = "rejected"


class BankTransaction(Base, UUIDMixin, TimestampMixin):
    """Incoming credit line from a bank statement. Never deleted."""

    __tablename__ = "bank_transactions"
    __table_args__ = (CheckConstraint("amount > 0", name="ck_bank_transactions_amount_positive"),)

    external_transaction_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    value_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="SGD")
    reference: Mapped[str] = mapped_column(Text, nullable=False, default="")
    payer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    balance_after: Mapped[Decimal | None] = mapped_column(Money, nullable=True)

    status: Mapped[BankTransactionStatus] = mapped_column(
        SQLEnum(BankTransactionStatus, name="bank_transaction_status_enum"),
        nullable=False,
        default=BankTransactionStatus.PENDING,
        index=True,
    )
    attempt: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    matched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    matched_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Provenance
    statement_upload_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), nullable=True, index=True
    )
    row_number: Mapped[int | None] = mapped_column(Integer, nullable=True)

    payments: Mapped[list["Payment"]] = relationship(
        "Payment", back_populates="bank_transaction"
    )
    logs: Mapped[list["ReconciliationLog"]] = relationship(
        "ReconciliationLog",
        back_populates="transaction",
        order_by="ReconciliationLog.created_at",
    )

    def __repr__(self) -> str:
        return f"<BankTransaction {self.external_transaction_id} {self.amount} {self.status.value}>"
