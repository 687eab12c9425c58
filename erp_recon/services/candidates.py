"""Candidate generation for bank transaction matching.

Open invoices and active customers are loaded once per batch into a
``MatchingSnapshot``; each transaction is then resolved against in-memory
indexes (reference keys, sorted balances, customer names) instead of
querying the database per transaction.
"""

from __future__ import annotations

import re
from bisect import bisect_left, bisect_right, insort
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from difflib import SequenceMatcher
from enum import Enum
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from erp_recon.logger import get_logger
from erp_recon.models import (
    OPEN_INVOICE_STATUSES,
    BankTransaction,
    Customer,
    Invoice,
    InvoiceStatus,
)
from erp_recon.services.matching_config import MatchingConfig

logger = get_logger(__name__)

# Alphanumeric reference tokens such as INV-2024-0001, INV 2024 0001, CUST/0042.
REFERENCE_TOKEN = re.compile(r"[A-Z]+(?:[-/ ]?\d+)+")
# Words ignored when comparing customer names.
NAME_STOP_WORDS = frozenset(
    {"the", "co", "company", "corp", "corporation", "inc", "llc", "ltd", "limited", "pte", "plc"}
)


class ReferenceKind(str, Enum):
    INVOICE_NUMBER = "invoice_number"
    CUSTOMER_CODE = "customer_code"


@dataclass(frozen=True)
class InvoiceView:
    id: UUID
    customer_id: UUID
    invoice_number: str
    issue_date: date
    due_date: date
    balance_amount: Decimal
    status: InvoiceStatus


@dataclass(frozen=True)
class CustomerView:
    id: UUID
    customer_code: str
    name: str


@dataclass(frozen=True)
class Candidate:
    """A (customer, invoice?) pair worth scoring, with its raw evidence."""

    customer_id: UUID
    invoice_id: UUID | None
    reference_kind: ReferenceKind | None = None
    name_similarity: float = 0.0
    sources: tuple[str, ...] = ()

    @property
    def key(self) -> tuple[UUID, UUID | None]:
        return (self.customer_id, self.invoice_id)


def normalize_text(value: str) -> str:
    """Normalize text for similarity comparison."""
    cleaned = re.sub(r"[^a-z0-9]+", " ", value.lower()).strip()
    return re.sub(r"\s+", " ", cleaned)


def compact_key(value: str) -> str:
    """Uppercase and drop separators: 'inv-2024/0001' -> 'INV20240001'."""
    return re.sub(r"[^A-Z0-9]", "", value.upper())


def extract_reference_keys(text: str | None) -> list[str]:
    """Extract lookup keys for invoice numbers and customer codes.

    Every prefix of a token that ends on a digit group is a key, so
    'INV-2024-0001 20240115' yields INV2024, INV20240001 and
    INV2024000120240115.
    """
    if not text:
        return []
    keys: list[str] = []
    for match in REFERENCE_TOKEN.finditer(text.upper()):
        parts = re.findall(r"[A-Z]+|\d+", match.group(0))
        prefix = parts[0]
        for part in parts[1:]:
            prefix += part
            if prefix not in keys:
                keys.append(prefix)
    return keys


def _significant_tokens(value: str) -> list[str]:
    return [t for t in normalize_text(value).split() if len(t) > 1 and t not in NAME_STOP_WORDS]


def name_similarity(customer_name: str, *texts: str | None) -> float:
    """Similarity (0.0-1.0) between a customer name and free-text fields.

    Takes the best of token containment (share of the customer's significant
    name tokens present in the text) and a character-level ratio.
    """
    name_tokens = _significant_tokens(customer_name)
    if not name_tokens:
        return 0.0
    name_norm = " ".join(name_tokens)

    best = 0.0
    for text in texts:
        if not text:
            continue
        text_tokens = _significant_tokens(text)
        if not text_tokens:
            continue
        present = set(text_tokens)
        containment = sum(1 for t in name_tokens if t in present) / len(name_tokens)
        ratio = SequenceMatcher(None, name_norm, " ".join(text_tokens)).ratio()
        best = max(best, containment, ratio)
    return round(best, 4)


def _balance_of(entry: tuple[Decimal, str]) -> Decimal:
    return entry[0]


@dataclass
class MatchingSnapshot:
    """In-memory view of open invoices and active customers for one batch."""

    invoices: dict[UUID, InvoiceView] = field(default_factory=dict)
    customers: dict[UUID, CustomerView] = field(default_factory=dict)
    invoice_by_key: dict[str, UUID] = field(default_factory=dict)
    customer_by_code_key: dict[str, UUID] = field(default_factory=dict)
    invoices_by_customer: dict[UUID, list[UUID]] = field(
        default_factory=lambda: defaultdict(list)
    )
    balances: list[tuple[Decimal, str]] = field(default_factory=list)

    @classmethod
    def build(
        cls, invoices: list[InvoiceView], customers: list[CustomerView]
    ) -> MatchingSnapshot:
        snapshot = cls()
        for customer in customers:
            snapshot.customers[customer.id] = customer
            snapshot.customer_by_code_key[compact_key(customer.customer_code)] = customer.id
        for invoice in invoices:
            snapshot._add_invoice(invoice)
        return snapshot

    def _add_invoice(self, invoice: InvoiceView) -> None:
        self.invoices[invoice.id] = invoice
        self.invoice_by_key[compact_key(invoice.invoice_number)] = invoice.id
        self.invoices_by_customer[invoice.customer_id].append(invoice.id)
        insort(self.balances, (invoice.balance_amount, str(invoice.id)))

    def _remove_invoice(self, invoice_id: UUID) -> InvoiceView | None:
        invoice = self.invoices.pop(invoice_id, None)
        if invoice is None:
            return None
        self.invoice_by_key.pop(compact_key(invoice.invoice_number), None)
        self.invoices_by_customer[invoice.customer_id].remove(invoice_id)
        self.balances.remove((invoice.balance_amount, str(invoice.id)))
        return invoice

    def apply_posting(
        self, invoice_id: UUID, balance_amount: Decimal, status: InvoiceStatus
    ) -> None:
        """Reflect a committed posting so later items in the batch see it."""
        invoice = self._remove_invoice(invoice_id)
        if invoice is None or status not in OPEN_INVOICE_STATUSES:
            return
        self._add_invoice(
            InvoiceView(
                id=invoice.id,
                customer_id=invoice.customer_id,
                invoice_number=invoice.invoice_number,
                issue_date=invoice.issue_date,
                due_date=invoice.due_date,
                balance_amount=balance_amount,
                status=status,
            )
        )

    def invoices_with_balance_near(self, amount: Decimal, tolerance: Decimal) -> list[InvoiceView]:
        lo = bisect_left(self.balances, amount - tolerance, key=_balance_of)
        hi = bisect_right(self.balances, amount + tolerance, key=_balance_of)
        return [self.invoices[UUID(invoice_id)] for _, invoice_id in self.balances[lo:hi]]

    def open_invoices_for(self, customer_id: UUID) -> list[InvoiceView]:
        return [self.invoices[i] for i in self.invoices_by_customer.get(customer_id, [])]


async def load_matching_snapshot(db: AsyncSession) -> MatchingSnapshot:
    """Load open invoices and active customers in two queries."""
    invoice_rows = (
        await db.execute(select(Invoice).where(Invoice.status.in_(OPEN_INVOICE_STATUSES)))
    ).scalars()
    customer_rows = (
        await db.execute(select(Customer).where(Customer.is_active.is_(True)))
    ).scalars()

    invoices = [
        InvoiceView(
            id=inv.id,
            customer_id=inv.customer_id,
            invoice_number=inv.invoice_number,
            issue_date=inv.issue_date,
            due_date=inv.due_date,
            balance_amount=inv.balance_amount,
            status=inv.status,
        )
        for inv in invoice_rows
    ]
    customers = [
        CustomerView(id=c.id, customer_code=c.customer_code, name=c.name) for c in customer_rows
    ]
    snapshot = MatchingSnapshot.build(invoices, customers)
    logger.debug(
        "Matching snapshot loaded",
        open_invoices=len(snapshot.invoices),
        active_customers=len(snapshot.customers),
    )
    return snapshot


class CandidateGenerator:
    """Produce a bounded, ordered list of match candidates for one transaction."""

    def __init__(self, config: MatchingConfig) -> None:
        self.config = config

    def generate(self, txn: BankTransaction, snapshot: MatchingSnapshot) -> list[Candidate]:
        ordered: list[tuple[UUID, UUID | None]] = []
        sources: dict[tuple[UUID, UUID | None], list[str]] = defaultdict(list)

        def add(customer_id: UUID, invoice_id: UUID | None, source: str) -> None:
            key = (customer_id, invoice_id)
            if key not in sources:
                ordered.append(key)
            if source not in sources[key]:
                sources[key].append(source)

        def by_due_proximity(invoices: list[InvoiceView]) -> list[InvoiceView]:
            # Invoices that can absorb the amount first, then nearest due date.
            return sorted(
                invoices,
                key=lambda inv: (
                    inv.balance_amount + self.config.amount_tolerance < txn.amount,
                    abs((inv.due_date - txn.transaction_date).days),
                    inv.balance_amount,
                    str(inv.id),
                ),
            )

        invoice_hits: set[UUID] = set()
        code_hits: set[UUID] = set()
        for key in extract_reference_keys(txn.reference):
            invoice_id = snapshot.invoice_by_key.get(key)
            if invoice_id is not None:
                invoice_hits.add(invoice_id)
                add(snapshot.invoices[invoice_id].customer_id, invoice_id, "reference")
            customer_id = snapshot.customer_by_code_key.get(key)
            if customer_id is not None:
                code_hits.add(customer_id)

        for customer_id in sorted(code_hits, key=str):
            for inv in by_due_proximity(snapshot.open_invoices_for(customer_id)):
                add(customer_id, inv.id, "customer_code")
            add(customer_id, None, "customer_code")

        for inv in sorted(
            snapshot.invoices_with_balance_near(txn.amount, self.config.amount_tolerance),
            key=lambda inv: (abs((inv.due_date - txn.transaction_date).days), str(inv.id)),
        ):
            add(inv.customer_id, inv.id, "amount")

        similarities: dict[UUID, float] = {}
        for customer in snapshot.customers.values():
            similarity = name_similarity(customer.name, txn.payer_name, txn.reference)
            similarities[customer.id] = similarity
        name_hits = sorted(
            (cid for cid, sim in similarities.items() if sim >= self.config.name_threshold),
            key=lambda cid: (-similarities[cid], str(cid)),
        )
        for customer_id in name_hits:
            for inv in by_due_proximity(snapshot.open_invoices_for(customer_id)):
                if inv.balance_amount + self.config.amount_tolerance >= txn.amount:
                    add(customer_id, inv.id, "name")
            add(customer_id, None, "name")

        candidates: list[Candidate] = []
        for customer_id, invoice_id in ordered[: self.config.max_candidates]:
            if invoice_id is not None and invoice_id in invoice_hits:
                reference_kind: ReferenceKind | None = ReferenceKind.INVOICE_NUMBER
            elif customer_id in code_hits:
                reference_kind = ReferenceKind.CUSTOMER_CODE
            else:
                reference_kind = None
            similarity = similarities.get(customer_id)
            if similarity is None:
                customer = snapshot.customers.get(customer_id)
                similarity = (
                    name_similarity(customer.name, txn.payer_name, txn.reference)
                    if customer
                    else 0.0
                )
            candidates.append(
                Candidate(
                    customer_id=customer_id,
                    invoice_id=invoice_id,
                    reference_kind=reference_kind,
                    name_similarity=similarity,
                    sources=tuple(sources[(customer_id, invoice_id)]),
                )
            )
        return candidates
