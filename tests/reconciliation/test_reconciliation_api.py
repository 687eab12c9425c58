"""Reconciliation HTTP endpoints."""

from decimal import Decimal
from uuid import uuid4

import pytest
from httpx import AsyncClient

from erp_recon.models import BankTransactionStatus, InvoiceStatus
from tests.factories import BankTransactionFactory, CustomerFactory, InvoiceFactory


@pytest.mark.asyncio
async def test_import_then_auto_match(client: AsyncClient, db):
    customer = await CustomerFactory.create_async(db)
    invoice = await InvoiceFactory.create_async(
        db, customer_id=customer.id, total_amount=Decimal("5000.00")
    )
    await db.commit()

    response = await client.post(
        "/reconciliation/transactions/import",
        json={
            "rows": [
                {
                    "external_transaction_id": "API-1",
                    "transaction_date": invoice.issue_date.isoformat(),
                    "amount": "5000.00",
                    "reference": f"Payment {invoice.invoice_number}",
                },
                {"external_transaction_id": "API-2", "amount": "1.00"},
            ]
        },
    )
    assert response.status_code == 200
    assert response.json()["imported"] == 1
    assert response.json()["failed"] == 1

    response = await client.post("/reconciliation/auto-match")
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["matched"] == 1
    assert body["details"][0]["match_type"] == "exact"

    await db.refresh(invoice)
    assert invoice.status == InvoiceStatus.PAID

    response = await client.get("/reconciliation/transactions", params={"status": "matched"})
    assert response.status_code == 200
    listing = response.json()
    assert listing["total"] == 1
    assert listing["items"][0]["matched_by"] == "operator-1"

    txn_id = listing["items"][0]["id"]
    response = await client.get(f"/reconciliation/transactions/{txn_id}/logs")
    assert response.status_code == 200
    logs = response.json()["items"]
    assert [log["action"] for log in logs] == ["auto_matched"]
    assert logs[0]["tier"] == "exact"


@pytest.mark.asyncio
async def test_preview_endpoint(client: AsyncClient, db):
    customer = await CustomerFactory.create_async(db)
    invoice = await InvoiceFactory.create_async(db, customer_id=customer.id)
    txn = await BankTransactionFactory.create_async(
        db, amount=Decimal("400.00"), reference=invoice.invoice_number
    )
    await db.commit()

    response = await client.get(f"/reconciliation/transactions/{txn.id}/preview")

    assert response.status_code == 200
    body = response.json()
    assert body["match_type"] == "partial"
    assert body["invoice_id"] == str(invoice.id)
    assert body["candidates"][0]["sources"][0] == "reference"

    response = await client.get(f"/reconciliation/transactions/{uuid4()}/preview")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_reject_and_manual_match_endpoints(client: AsyncClient, db):
    customer = await CustomerFactory.create_async(db)
    invoice = await InvoiceFactory.create_async(db, customer_id=customer.id)
    txn = await BankTransactionFactory.create_async(db, amount=Decimal("1000.00"))
    await db.commit()

    response = await client.post(
        "/reconciliation/reject",
        json={"bank_transaction_id": str(txn.id), "reason": "unrecognized payer"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "rejected"

    response = await client.post(
        "/reconciliation/reject",
        json={"bank_transaction_id": str(txn.id), "reason": "again"},
    )
    assert response.status_code == 409

    payload = {
        "bank_transaction_id": str(txn.id),
        "customer_id": str(customer.id),
        "invoice_id": str(invoice.id),
        "amount": "1000.00",
    }
    response = await client.post(
        "/reconciliation/manual-match", json=payload, headers={"X-User-Id": "bob"}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["transaction_status"] == "matched"
    assert body["invoice_status"] == "paid"

    response = await client.post("/reconciliation/manual-match", json=payload)
    assert response.status_code == 409

    await db.refresh(txn)
    assert txn.status == BankTransactionStatus.MATCHED
    assert txn.matched_by == "bob"


@pytest.mark.asyncio
async def test_manual_match_errors_map_to_http(client: AsyncClient, db):
    customer = await CustomerFactory.create_async(db)
    invoice = await InvoiceFactory.create_async(db, customer_id=customer.id)
    txn = await BankTransactionFactory.create_async(db, amount=Decimal("1500.00"))
    await db.commit()

    response = await client.post(
        "/reconciliation/manual-match",
        json={
            "bank_transaction_id": str(txn.id),
            "customer_id": str(customer.id),
            "invoice_id": str(invoice.id),
            "amount": "1500.00",
        },
    )
    assert response.status_code == 400
    assert "exceeds invoice balance" in response.json()["detail"]

    response = await client.post(
        "/reconciliation/manual-match",
        json={
            "bank_transaction_id": str(uuid4()),
            "customer_id": str(customer.id),
            "amount": "10.00",
        },
    )
    assert response.status_code == 404

    response = await client.post(
        "/reconciliation/manual-match",
        json={
            "bank_transaction_id": str(txn.id),
            "customer_id": str(customer.id),
            "amount": "-1.00",
        },
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_refund_and_recompute_endpoints(client: AsyncClient, db):
    customer = await CustomerFactory.create_async(db)
    invoice = await InvoiceFactory.create_async(db, customer_id=customer.id)
    txn = await BankTransactionFactory.create_async(db, amount=Decimal("1000.00"))
    await db.commit()

    response = await client.post(
        "/reconciliation/manual-match",
        json={
            "bank_transaction_id": str(txn.id),
            "customer_id": str(customer.id),
            "invoice_id": str(invoice.id),
            "amount": "1000.00",
        },
    )
    payment_id = response.json()["payment_id"]

    response = await client.post(
        f"/reconciliation/payments/{payment_id}/refund", json={"reason": "sent in error"}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["original_payment_id"] == payment_id
    assert body["invoice_status"] == "sent"
    assert Decimal(body["balance_amount"]) == Decimal("1000.00")

    response = await client.post(f"/reconciliation/customers/{customer.id}/recompute")
    assert response.status_code == 200
    body = response.json()
    assert Decimal(body["total_paid"]) == Decimal("0.00")
    assert Decimal(body["current_balance"]) == Decimal("1000.00")

    response = await client.post(f"/reconciliation/customers/{uuid4()}/recompute")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_stats_endpoint(client: AsyncClient, db):
    customer = await CustomerFactory.create_async(db)
    await InvoiceFactory.create_async(db, customer_id=customer.id)
    await BankTransactionFactory.create_async(db, status=BankTransactionStatus.MATCHED)
    await BankTransactionFactory.create_async(
        db, status=BankTransactionStatus.UNMATCHED, amount=Decimal("77.70")
    )
    await BankTransactionFactory.create_async(db)
    await db.commit()

    response = await client.get("/reconciliation/stats")

    assert response.status_code == 200
    body = response.json()
    assert body["total_transactions"] == 3
    assert body["matched"] == 1
    assert body["unmatched"] == 1
    assert body["pending"] == 1
    assert body["match_rate"] == pytest.approx(0.3333)
    assert Decimal(body["unmatched_amount"]) == Decimal("77.70")
    assert body["open_invoices"] == 1
    assert Decimal(body["outstanding_balance"]) == Decimal("1000.00")


@pytest.mark.asyncio
async def test_logs_for_unknown_transaction(client: AsyncClient):
    response = await client.get(f"/reconciliation/transactions/{uuid4()}/logs")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_import_reports_malformed_row_number(client: AsyncClient):
    response = await client.post(
        "/reconciliation/transactions/import",
        json={
            "rows": [
                {
                    "external_transaction_id": "API-ROW-1",
                    "transaction_date": "2024-03-15",
                    "amount": "10.00",
                },
                {
                    "external_transaction_id": 42,
                    "transaction_date": "2024-03-15",
                    "amount": "10.00",
                    "row_number": "abc",
                },
            ]
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert (body["imported"], body["failed"]) == (1, 1)
    error = body["errors"][0]
    assert error["row_number"] == 2
    assert error["external_transaction_id"] is None
    assert "row_number" in error["error"]
