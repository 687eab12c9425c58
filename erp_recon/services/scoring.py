"""Confidence scoring for match candidates."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from erp_recon.models import BankTransaction, MatchTier
from erp_recon.services.candidates import (
    Candidate,
    InvoiceView,
    MatchingSnapshot,
    ReferenceKind,
)
from erp_recon.services.matching_config import MatchingConfig

EXCEEDS_BALANCE_REASON = "amount exceeds invoice balance"


@dataclass(frozen=True)
class ScoredCandidate:
    candidate: Candidate
    score: float
    tier: MatchTier
    # Score components are 0.0-1.0 evidence strengths, not monetary values.
    breakdown: dict[str, float]
    invoice: InvoiceView | None = None
    reason: str | None = None

    @property
    def feasible(self) -> bool:
        return self.reason != EXCEEDS_BALANCE_REASON


@dataclass
class MatchResult:
    """Decision for one transaction: the winning candidate, or why none won."""

    success: bool
    match_type: MatchTier
    confidence: float
    customer_id: UUID | None = None
    invoice_id: UUID | None = None
    matched_amount: Decimal | None = None
    reason: str | None = None
    needs_review: bool = False
    breakdown: dict[str, float] = field(default_factory=dict)
    candidates: list[ScoredCandidate] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "match_type": self.match_type.value,
            "confidence": self.confidence,
            "customer_id": str(self.customer_id) if self.customer_id else None,
            "invoice_id": str(self.invoice_id) if self.invoice_id else None,
            "matched_amount": str(self.matched_amount) if self.matched_amount is not None else None,
            "reason": self.reason,
            "needs_review": self.needs_review,
            "breakdown": self.breakdown,
        }


def score_reference(candidate: Candidate) -> float:
    """Score reference evidence (0.0-1.0)."""
    if candidate.reference_kind == ReferenceKind.INVOICE_NUMBER:
        return 1.0
    if candidate.reference_kind == ReferenceKind.CUSTOMER_CODE:
        return 0.8
    return 0.0


def score_amount(amount: Decimal, balance: Decimal, tolerance: Decimal) -> float | None:
    """Score amount evidence against an invoice balance.

    Returns None when the amount is larger than the balance; overpayments
    are never posted automatically.
    """
    diff = balance - amount
    if diff < 0:
        return None
    if diff == 0:
        return 1.0
    if diff <= tolerance:
        return 0.9
    return 0.5


def score_date(txn_date: date, issue_date: date, due_date: date, config: MatchingConfig) -> float:
    """Score how plausible the transaction date is for the invoice (0.0-1.0)."""
    if txn_date < issue_date:
        return 0.0
    window_end = due_date.toordinal() + config.date_grace_days
    late_days = txn_date.toordinal() - window_end
    if late_days <= 0:
        return 1.0
    if config.date_decay_days <= 0 or late_days >= config.date_decay_days:
        return 0.0
    return round(1.0 - late_days / config.date_decay_days, 4)


def score_name(similarity: float, config: MatchingConfig) -> float:
    return similarity if similarity >= config.name_threshold else 0.0


def weighted_total(breakdown: dict[str, float], config: MatchingConfig) -> float:
    weights = {
        "reference": config.weight_reference,
        "amount": config.weight_amount,
        "date": config.weight_date,
        "name": config.weight_name,
    }
    total_weight = sum(weights.values())
    total = sum(breakdown.get(key, 0.0) * weight for key, weight in weights.items())
    return round(min(1.0, total / total_weight), 4)


class ConfidenceScorer:
    """Score candidates and pick the winner for a transaction."""

    def __init__(self, config: MatchingConfig) -> None:
        self.config = config

    def score_candidate(
        self, txn: BankTransaction, candidate: Candidate, snapshot: MatchingSnapshot
    ) -> ScoredCandidate:
        invoice = snapshot.invoices.get(candidate.invoice_id) if candidate.invoice_id else None
        breakdown = {
            "reference": score_reference(candidate),
            "amount": 0.0,
            "date": 0.0,
            "name": score_name(candidate.name_similarity, self.config),
        }

        if invoice is not None:
            amount_score = score_amount(
                txn.amount, invoice.balance_amount, self.config.amount_tolerance
            )
            if amount_score is None:
                return ScoredCandidate(
                    candidate=candidate,
                    score=0.0,
                    tier=MatchTier.NONE,
                    breakdown=breakdown,
                    invoice=invoice,
                    reason=EXCEEDS_BALANCE_REASON,
                )
            breakdown["amount"] = amount_score
            breakdown["date"] = score_date(
                txn.transaction_date, invoice.issue_date, invoice.due_date, self.config
            )

        score = weighted_total(breakdown, self.config)
        if breakdown["reference"] == 1.0 and breakdown["amount"] == 1.0:
            # Invoice number plus its exact balance is a full match on its own;
            # date and name evidence can only raise it.
            score = max(score, self.config.exact_threshold)
        return ScoredCandidate(
            candidate=candidate,
            score=score,
            tier=self._tier(txn, invoice, breakdown, score),
            breakdown=breakdown,
            invoice=invoice,
        )

    def _tier(
        self,
        txn: BankTransaction,
        invoice: InvoiceView | None,
        breakdown: dict[str, float],
        score: float,
    ) -> MatchTier:
        if invoice is None:
            # Customer-only credit is a manual decision.
            return MatchTier.NONE
        supported = breakdown["reference"] > 0 or breakdown["name"] > 0
        if (
            txn.amount < invoice.balance_amount - self.config.amount_tolerance
            and supported
            and score >= self.config.partial_threshold
        ):
            return MatchTier.PARTIAL
        if score >= self.config.exact_threshold:
            return MatchTier.EXACT
        if score >= self.config.fuzzy_threshold:
            return MatchTier.FUZZY
        return MatchTier.NONE

    def rank(self, txn: BankTransaction, scored: list[ScoredCandidate]) -> list[ScoredCandidate]:
        """Order by score, then nearest due date, smallest balance, invoice id.

        Invoice candidates precede customer-only candidates on equal score.
        """

        def sort_key(item: ScoredCandidate) -> tuple:
            invoice = item.invoice
            if invoice is None:
                return (-item.score, 1, 0, Decimal(0), "", str(item.candidate.customer_id))
            return (
                -item.score,
                0,
                abs((invoice.due_date - txn.transaction_date).days),
                invoice.balance_amount,
                str(invoice.id),
                str(item.candidate.customer_id),
            )

        return sorted(scored, key=sort_key)

    def evaluate(
        self,
        txn: BankTransaction,
        candidates: list[Candidate],
        snapshot: MatchingSnapshot,
    ) -> MatchResult:
        if not candidates:
            return MatchResult(
                success=False,
                match_type=MatchTier.NONE,
                confidence=0.0,
                reason="no candidates",
            )

        ranked = self.rank(txn, [self.score_candidate(txn, c, snapshot) for c in candidates])
        best = next((item for item in ranked if item.tier != MatchTier.NONE), None)
        if best is None:
            top = ranked[0]
            return MatchResult(
                success=False,
                match_type=MatchTier.NONE,
                confidence=top.score,
                customer_id=top.candidate.customer_id,
                invoice_id=top.candidate.invoice_id,
                reason=top.reason or "confidence below thresholds",
                breakdown=top.breakdown,
                candidates=ranked,
            )

        return MatchResult(
            success=True,
            match_type=best.tier,
            confidence=best.score,
            customer_id=best.candidate.customer_id,
            invoice_id=best.candidate.invoice_id,
            matched_amount=txn.amount,
            needs_review=best.tier == MatchTier.FUZZY,
            breakdown=best.breakdown,
            candidates=ranked,
        )
