"""Operator actions on bank transactions: manual match and rejection."""

from decimal import Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from erp_recon.models import BankTransaction, MatchTier
from erp_recon.services.exceptions import ValidationError
from erp_recon.services.posting import PaymentPoster, PostingRequest, PostingResult
from erp_recon.services.state_machine import mark_rejected
from erp_recon.services.unit_of_work import run_in_transaction

MAX_NOTES_LENGTH = 1000
MAX_REASON_LENGTH = 500


class ManualOverrideHandler:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        poster: PaymentPoster | None = None,
    ) -> None:
        self.session_maker = session_maker
        self.poster = poster or PaymentPoster(session_maker)

    async def manual_match(
        self,
        transaction_id: UUID,
        customer_id: UUID,
        invoice_id: UUID | None,
        amount: Decimal,
        actor: str,
        notes: str | None = None,
    ) -> PostingResult:
        """Post an operator-chosen match.

        Allowed from PENDING, UNMATCHED and REJECTED. Without ``invoice_id``
        the payment is recorded as unapplied customer credit, the explicit
        path for money no invoice can absorb.
        """
        if amount <= 0:
            raise ValidationError("Amount must be positive", amount=str(amount))
        if notes is not None and len(notes) > MAX_NOTES_LENGTH:
            raise ValidationError(f"Notes must be at most {MAX_NOTES_LENGTH} characters")

        # The poster rejects amounts above the transaction amount under the row lock.
        return await self.poster.post(
            PostingRequest(
                transaction_id=transaction_id,
                customer_id=customer_id,
                invoice_id=invoice_id,
                amount=amount,
                actor=actor,
                manual=True,
                tier=MatchTier.MANUAL,
                confidence=1.0,
                notes=notes,
            )
        )

    async def reject(self, transaction_id: UUID, reason: str, actor: str) -> BankTransaction:
        """Reject a PENDING or UNMATCHED transaction with a reason."""
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Rejection reason is required")
        if len(reason) > MAX_REASON_LENGTH:
            raise ValidationError(f"Reason must be at most {MAX_REASON_LENGTH} characters")

        return await run_in_transaction(
            self.session_maker,
            lambda db: mark_rejected(db, transaction_id, reason=reason, actor=actor),
        )
