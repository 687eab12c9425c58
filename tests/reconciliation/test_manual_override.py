"""Operator rejection and manual matching."""

from decimal import Decimal

import pytest
from sqlalchemy import select

from erp_recon.models import (
    BankTransactionStatus,
    InvoiceStatus,
    MatchTier,
    ReconciliationAction,
    ReconciliationLog,
)
from erp_recon.services.exceptions import ConflictError, InvalidAmountError, ValidationError
from erp_recon.services.manual_override import ManualOverrideHandler
from tests.factories import BankTransactionFactory, CustomerFactory, InvoiceFactory


@pytest.mark.asyncio
async def test_rejected_transaction_can_be_matched_manually(db, session_maker):
    customer = await CustomerFactory.create_async(db)
    invoice = await InvoiceFactory.create_async(db, customer_id=customer.id)
    txn = await BankTransactionFactory.create_async(db, amount=Decimal("1000.00"))
    await db.commit()

    handler = ManualOverrideHandler(session_maker)
    rejected = await handler.reject(txn.id, "  unrecognized payer ", "alice")
    assert rejected.status == BankTransactionStatus.REJECTED

    result = await handler.manual_match(
        transaction_id=txn.id,
        customer_id=customer.id,
        invoice_id=invoice.id,
        amount=Decimal("1000.00"),
        actor="bob",
        notes="confirmed by phone",
    )

    assert result.transaction_status == BankTransactionStatus.MATCHED
    assert result.invoice_status == InvoiceStatus.PAID

    await db.refresh(txn)
    assert txn.status == BankTransactionStatus.MATCHED
    assert txn.matched_by == "bob"
    assert txn.attempt == 1

    logs = (
        await db.execute(
            select(ReconciliationLog)
            .where(ReconciliationLog.bank_transaction_id == txn.id)
            .order_by(ReconciliationLog.created_at)
        )
    ).scalars().all()
    assert [log.action for log in logs] == [
        ReconciliationAction.REJECTED,
        ReconciliationAction.MANUAL_MATCHED,
    ]
    assert logs[0].reason == "unrecognized payer"
    assert logs[0].attempt == 0
    assert logs[1].tier == MatchTier.MANUAL
    assert logs[1].confidence == 1.0
    assert logs[1].performed_by == "bob"
    assert logs[1].attempt == 1


@pytest.mark.asyncio
async def test_partial_manual_amount_marks_partially_matched(db, session_maker):
    customer = await CustomerFactory.create_async(db)
    txn = await BankTransactionFactory.create_async(db, amount=Decimal("500.00"))
    await db.commit()

    result = await ManualOverrideHandler(session_maker).manual_match(
        transaction_id=txn.id,
        customer_id=customer.id,
        invoice_id=None,
        amount=Decimal("200.00"),
        actor="alice",
    )

    assert result.transaction_status == BankTransactionStatus.PARTIALLY_MATCHED


@pytest.mark.asyncio
async def test_matched_transaction_cannot_be_rejected(db, session_maker):
    txn = await BankTransactionFactory.create_async(db, status=BankTransactionStatus.MATCHED)
    await db.commit()

    with pytest.raises(ConflictError):
        await ManualOverrideHandler(session_maker).reject(txn.id, "wrong", "alice")


@pytest.mark.asyncio
async def test_rejected_transaction_cannot_be_rejected_again(db, session_maker):
    txn = await BankTransactionFactory.create_async(db, status=BankTransactionStatus.REJECTED)
    await db.commit()

    with pytest.raises(ConflictError):
        await ManualOverrideHandler(session_maker).reject(txn.id, "still wrong", "alice")


@pytest.mark.asyncio
@pytest.mark.parametrize("reason", ["", "   ", "x" * 501])
async def test_reject_validates_reason(db, session_maker, reason):
    txn = await BankTransactionFactory.create_async(db)
    await db.commit()

    with pytest.raises(ValidationError):
        await ManualOverrideHandler(session_maker).reject(txn.id, reason, "alice")


@pytest.mark.asyncio
async def test_manual_match_validates_input(db, session_maker):
    customer = await CustomerFactory.create_async(db)
    txn = await BankTransactionFactory.create_async(db, amount=Decimal("100.00"))
    await db.commit()
    handler = ManualOverrideHandler(session_maker)

    with pytest.raises(ValidationError):
        await handler.manual_match(txn.id, customer.id, None, Decimal("0.00"), "alice")
    with pytest.raises(ValidationError):
        await handler.manual_match(
            txn.id, customer.id, None, Decimal("10.00"), "alice", notes="n" * 1001
        )
    with pytest.raises(InvalidAmountError):
        await handler.manual_match(txn.id, customer.id, None, Decimal("100.50"), "alice")
