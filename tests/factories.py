"""Test data factories using factory_boy pattern.

Provides reusable factories for creating test data with sensible defaults.

Usage:
    # Simple creation
    customer = CustomerFactory.build()

    # With overrides
    invoice = InvoiceFactory.build(customer_id=customer.id, total_amount=Decimal("250.00"))

    # Create and flush to DB (transaction not committed)
    txn = await BankTransactionFactory.create_async(db, reference="INV-2024-0001")
"""

from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from typing import TypeVar
from uuid import UUID, uuid4

import factory
from sqlalchemy.ext.asyncio import AsyncSession

from erp_recon.models import (
    BankTransaction,
    BankTransactionStatus,
    Customer,
    Invoice,
    InvoiceStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
)

T = TypeVar("T")


class AsyncFactoryMixin:
    """Mixin providing async database persistence for factories.

    Subclasses override _build_kwargs() when they need required foreign keys.
    """

    @classmethod
    def _build_kwargs(cls, *args, **kwargs) -> dict:
        return kwargs

    @classmethod
    async def create_async(cls, db: AsyncSession, *args, **kwargs) -> T:
        """Create and flush to database (transaction not committed)."""
        build_kwargs = cls._build_kwargs(*args, **kwargs)
        instance = cls.build(**build_kwargs)
        db.add(instance)
        await db.flush()
        await db.refresh(instance)
        return instance


class CustomerFactory(factory.Factory, AsyncFactoryMixin):
    class Meta:
        model = Customer

    id = factory.LazyFunction(uuid4)
    customer_code = factory.Sequence(lambda n: f"CUST-{n:04d}")
    name = factory.Sequence(lambda n: f"Customer {n} Pte Ltd")
    is_active = True
    current_balance = Decimal("0.00")
    total_paid = Decimal("0.00")
    created_at = factory.LazyFunction(lambda: datetime.now(UTC))
    updated_at = factory.LazyFunction(lambda: datetime.now(UTC))


class InvoiceFactory(factory.Factory, AsyncFactoryMixin):
    class Meta:
        model = Invoice

    id = factory.LazyFunction(uuid4)
    invoice_number = factory.Sequence(lambda n: f"INV-2024-{n:04d}")
    issue_date = factory.LazyFunction(lambda: date.today() - timedelta(days=10))
    due_date = factory.LazyFunction(lambda: date.today() + timedelta(days=20))
    total_amount = Decimal("1000.00")
    paid_amount = Decimal("0.00")
    balance_amount = factory.LazyAttribute(lambda o: o.total_amount - o.paid_amount)
    status = InvoiceStatus.SENT
    paid_date = None
    created_at = factory.LazyFunction(lambda: datetime.now(UTC))
    updated_at = factory.LazyFunction(lambda: datetime.now(UTC))

    @classmethod
    def _build_kwargs(cls, customer_id: UUID, **kwargs) -> dict:
        return {"customer_id": customer_id, **kwargs}


class BankTransactionFactory(factory.Factory, AsyncFactoryMixin):
    class Meta:
        model = BankTransaction

    id = factory.LazyFunction(uuid4)
    external_transaction_id = factory.Sequence(lambda n: f"BANK-TXN-{n:06d}")
    transaction_date = factory.LazyFunction(lambda: date.today())
    amount = Decimal("100.00")
    currency = "SGD"
    reference = ""
    payer_name = None
    status = BankTransactionStatus.PENDING
    attempt = 0
    created_at = factory.LazyFunction(lambda: datetime.now(UTC))
    updated_at = factory.LazyFunction(lambda: datetime.now(UTC))


class PaymentFactory(factory.Factory, AsyncFactoryMixin):
    class Meta:
        model = Payment

    id = factory.LazyFunction(uuid4)
    invoice_id = None
    bank_transaction_id = None
    amount = Decimal("100.00")
    payment_date = factory.LazyFunction(lambda: date.today())
    payment_method = PaymentMethod.BANK_TRANSFER
    status = PaymentStatus.CONFIRMED
    is_reconciled = True
    created_at = factory.LazyFunction(lambda: datetime.now(UTC))
    updated_at = factory.LazyFunction(lambda: datetime.now(UTC))

    @classmethod
    def _build_kwargs(cls, customer_id: UUID, **kwargs) -> dict:
        return {"customer_id": customer_id, **kwargs}
