"""Bank transaction state transitions."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from erp_recon.models import BankTransactionStatus, ReconciliationAction, ReconciliationLog
from erp_recon.services.exceptions import ConflictError, NotFoundError
from erp_recon.services.state_machine import (
    can_transition,
    mark_rejected,
    mark_unmatched,
    transition,
)
from tests.factories import BankTransactionFactory

S = BankTransactionStatus


@pytest.mark.parametrize(
    ("current", "target", "manual", "allowed"),
    [
        (S.PENDING, S.MATCHED, False, True),
        (S.PENDING, S.UNMATCHED, False, True),
        (S.PENDING, S.REJECTED, False, False),
        (S.PENDING, S.REJECTED, True, True),
        (S.UNMATCHED, S.MATCHED, False, False),
        (S.UNMATCHED, S.PARTIALLY_MATCHED, True, True),
        (S.REJECTED, S.MATCHED, True, True),
        (S.REJECTED, S.UNMATCHED, True, False),
        (S.MATCHED, S.MATCHED, True, False),
        (S.PARTIALLY_MATCHED, S.REJECTED, True, False),
    ],
)
def test_can_transition(current, target, manual, allowed):
    assert can_transition(current, target, manual=manual) is allowed


def test_manual_transition_from_rejected_starts_new_attempt():
    txn = BankTransactionFactory.build(status=S.REJECTED, attempt=0)

    attempt = transition(txn, S.MATCHED, actor="alice", manual=True)

    assert attempt == 1
    assert txn.status == S.MATCHED
    assert txn.matched_by == "alice"
    assert txn.matched_at is not None


def test_automatic_transition_keeps_attempt():
    txn = BankTransactionFactory.build(status=S.PENDING, attempt=0)

    assert transition(txn, S.UNMATCHED, actor="system", manual=False) == 0
    assert txn.matched_at is None


def test_illegal_transition_raises_conflict():
    txn = BankTransactionFactory.build(status=S.MATCHED)

    with pytest.raises(ConflictError):
        transition(txn, S.PARTIALLY_MATCHED, actor="system", manual=False)
    assert txn.status == S.MATCHED


@pytest.mark.asyncio
async def test_mark_unmatched_then_rejected_logs_each_attempt(db):
    txn = await BankTransactionFactory.create_async(db, amount=Decimal("777.00"))
    await db.commit()

    await mark_unmatched(db, txn.id, confidence=0.2, reason="no candidates")
    await mark_rejected(db, txn.id, reason="unrecognized payer", actor="alice")
    await db.commit()

    await db.refresh(txn)
    assert txn.status == S.REJECTED
    assert txn.attempt == 1

    logs = (
        await db.execute(
            select(ReconciliationLog)
            .where(ReconciliationLog.bank_transaction_id == txn.id)
            .order_by(ReconciliationLog.attempt)
        )
    ).scalars().all()
    assert [(log.action, log.attempt) for log in logs] == [
        (ReconciliationAction.UNMATCHED, 0),
        (ReconciliationAction.REJECTED, 1),
    ]
    assert logs[1].performed_by == "alice"


@pytest.mark.asyncio
async def test_lock_missing_transaction_raises_not_found(db):
    with pytest.raises(NotFoundError):
        await mark_rejected(db, uuid4(), reason="gone", actor="alice")
