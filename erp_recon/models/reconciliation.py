"""Reconciliation audit log model."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_recon.database import Base
from erp_recon.models.base import JSONType, Money, utcnow

if TYPE_CHECKING:
    from erp_recon.models.bank_transaction import BankTransaction


class ReconciliationAction(str, Enum):
    AUTO_MATCHED = "auto_matched"
    MANUAL_MATCHED = "manual_matched"
    UNMATCHED = "unmatched"
    REJECTED = "rejected"
    FAILED = "failed"
    REFUNDED = "refunded"


class MatchTier(str, Enum):
    """Confidence tier of a match decision."""

    EXACT = "exact"
    FUZZY = "fuzzy"
    PARTIAL = "partial"
    NONE = "none"
    MANUAL = "manual"


class ReconciliationLog(Base):
    """One row per reconciliation attempt. Rows are never updated."""

    __tablename__ = "reconciliation_logs"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    bank_transaction_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("bank_transactions.id"),
        nullable=False,
        index=True,
    )
    attempt: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    action: Mapped[ReconciliationAction] = mapped_column(
        SQLEnum(ReconciliationAction, name="reconciliation_action_enum"),
        nullable=False,
    )
    tier: Mapped[MatchTier | None] = mapped_column(
        SQLEnum(MatchTier, name="match_tier_enum"), nullable=True
    )
    # Scores are non-monetary; floats are acceptable for display/analysis.
    confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    score_breakdown: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    needs_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    matched_customer_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    matched_invoice_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    matched_amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    payment_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)

    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    performed_by: Mapped[str] = mapped_column(String(100), nullable=False, default="system")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    transaction: Mapped["BankTransaction"] = relationship(
        "BankTransaction",
        back_populates="logs",
    )
