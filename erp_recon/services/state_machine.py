"""Bank transaction reconciliation state machine."""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from erp_recon.logger import get_logger
from erp_recon.models import (
    BankTransaction,
    BankTransactionStatus,
    MatchTier,
    ReconciliationAction,
    ReconciliationLog,
)
from erp_recon.services.exceptions import ConflictError, NotFoundError

logger = get_logger(__name__)

S = BankTransactionStatus

AUTOMATIC_TRANSITIONS: dict[BankTransactionStatus, frozenset[BankTransactionStatus]] = {
    S.PENDING: frozenset({S.MATCHED, S.PARTIALLY_MATCHED, S.UNMATCHED}),
}

MANUAL_TRANSITIONS: dict[BankTransactionStatus, frozenset[BankTransactionStatus]] = {
    S.PENDING: frozenset({S.MATCHED, S.PARTIALLY_MATCHED, S.REJECTED}),
    S.UNMATCHED: frozenset({S.MATCHED, S.PARTIALLY_MATCHED, S.REJECTED}),
    S.REJECTED: frozenset({S.MATCHED, S.PARTIALLY_MATCHED}),
}

# Manual actions on these states start a new attempt.
REOPENED_STATES = frozenset({S.UNMATCHED, S.REJECTED})


def can_transition(
    current: BankTransactionStatus, target: BankTransactionStatus, *, manual: bool
) -> bool:
    table = MANUAL_TRANSITIONS if manual else AUTOMATIC_TRANSITIONS
    return target in table.get(current, frozenset())


def assert_can_transition(
    txn: BankTransaction, target: BankTransactionStatus, *, manual: bool
) -> None:
    if not can_transition(txn.status, target, manual=manual):
        raise ConflictError(
            f"Cannot move transaction from {txn.status.value} to {target.value}",
            transaction_id=str(txn.id),
            current=txn.status.value,
            target=target.value,
        )


def transition(
    txn: BankTransaction,
    target: BankTransactionStatus,
    *,
    actor: str,
    manual: bool,
) -> int:
    """Move ``txn`` to ``target`` and return the attempt number it belongs to."""
    assert_can_transition(txn, target, manual=manual)
    if manual and txn.status in REOPENED_STATES:
        txn.attempt += 1
    txn.status = target
    if target in (S.MATCHED, S.PARTIALLY_MATCHED):
        txn.matched_at = datetime.now(UTC)
        txn.matched_by = actor
    return txn.attempt


async def lock_transaction(db: AsyncSession, transaction_id: UUID) -> BankTransaction:
    """Load a bank transaction with a row lock held until commit."""
    result = await db.execute(
        select(BankTransaction)
        .where(BankTransaction.id == transaction_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    txn = result.scalar_one_or_none()
    if txn is None:
        raise NotFoundError("Bank transaction not found", transaction_id=str(transaction_id))
    return txn


async def mark_unmatched(
    db: AsyncSession,
    transaction_id: UUID,
    *,
    confidence: float,
    reason: str | None,
    breakdown: dict[str, float] | None = None,
    actor: str = "system",
) -> BankTransaction:
    """Move a PENDING transaction to UNMATCHED and log the attempt."""
    txn = await lock_transaction(db, transaction_id)
    attempt = transition(txn, S.UNMATCHED, actor=actor, manual=False)
    db.add(
        ReconciliationLog(
            bank_transaction_id=txn.id,
            attempt=attempt,
            action=ReconciliationAction.UNMATCHED,
            tier=MatchTier.NONE,
            confidence=confidence,
            score_breakdown=breakdown or {},
            reason=reason,
            performed_by=actor,
        )
    )
    await db.flush()
    logger.info(
        "Bank transaction marked unmatched",
        txn_id=str(txn.id),
        confidence=confidence,
        reason=reason,
    )
    return txn


async def mark_rejected(
    db: AsyncSession,
    transaction_id: UUID,
    *,
    reason: str,
    actor: str,
) -> BankTransaction:
    """Move a PENDING or UNMATCHED transaction to REJECTED and log the attempt."""
    txn = await lock_transaction(db, transaction_id)
    attempt = transition(txn, S.REJECTED, actor=actor, manual=True)
    db.add(
        ReconciliationLog(
            bank_transaction_id=txn.id,
            attempt=attempt,
            action=ReconciliationAction.REJECTED,
            reason=reason,
            performed_by=actor,
        )
    )
    await db.flush()
    logger.info("Bank transaction rejected", txn_id=str(txn.id), reason=reason, actor=actor)
    return txn
