"""Auto-reconciliation batch driver.

Selects PENDING transactions, generates and scores candidates against a
snapshot loaded once per batch, then posts or marks each transaction
UNMATCHED in its own unit of work. Items run on a bounded worker pool;
a failure is recorded for that item and the batch carries on.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from erp_recon.logger import async_log_timing, get_logger, log_exception, log_timing
from erp_recon.models import (
    BankTransaction,
    BankTransactionStatus,
    MatchTier,
    ReconciliationAction,
    ReconciliationLog,
)
from erp_recon.services.candidates import (
    CandidateGenerator,
    MatchingSnapshot,
    load_matching_snapshot,
)
from erp_recon.services.exceptions import NotFoundError, ReconciliationError
from erp_recon.services.matching_config import MatchingConfig, load_matching_config
from erp_recon.services.posting import PaymentPoster, PostingRequest
from erp_recon.services.scoring import ConfidenceScorer, MatchResult
from erp_recon.services.state_machine import mark_unmatched
from erp_recon.services.unit_of_work import run_in_transaction

logger = get_logger(__name__)

OUTCOME_STATUSES = frozenset({"matched", "partially_matched", "unmatched", "failed", "skipped"})


@dataclass
class ReconcileScope:
    """Which PENDING transactions a batch run picks up."""

    statement_upload_id: UUID | None = None
    transaction_ids: list[UUID] | None = None
    date_from: date | None = None
    date_to: date | None = None
    limit: int | None = None


@dataclass
class ItemOutcome:
    transaction_id: str
    external_transaction_id: str
    status: str
    match_type: str | None = None
    confidence: float | None = None
    needs_review: bool = False
    payment_id: str | None = None
    reason: str | None = None
    error: str | None = None
    error_type: str | None = None


@dataclass
class AutoReconcileResults:
    """Counters and per-item details for one batch run."""

    total: int = 0
    matched: int = 0
    partially_matched: int = 0
    unmatched: int = 0
    failed: int = 0
    skipped: int = 0
    details: list[ItemOutcome] = field(default_factory=list)

    def record(self, outcome: ItemOutcome) -> None:
        if outcome.status not in OUTCOME_STATUSES:
            raise ValueError(f"Unknown outcome status: {outcome.status}")
        setattr(self, outcome.status, getattr(self, outcome.status) + 1)
        self.details.append(outcome)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class AutoReconcileOrchestrator:
    """Run automatic reconciliation over a set of PENDING transactions."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        config: MatchingConfig | None = None,
        *,
        max_workers: int = 4,
        deadline_seconds: float | None = None,
        poster: PaymentPoster | None = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.session_maker = session_maker
        self.config = config or load_matching_config()
        self.max_workers = max_workers
        self.deadline_seconds = deadline_seconds
        self.poster = poster or PaymentPoster(session_maker)
        self.generator = CandidateGenerator(self.config)
        self.scorer = ConfidenceScorer(self.config)

    async def load_pending(self, scope: ReconcileScope) -> list[BankTransaction]:
        async with self.session_maker() as db:
            query = select(BankTransaction).where(
                BankTransaction.status == BankTransactionStatus.PENDING
            )
            if scope.statement_upload_id is not None:
                query = query.where(
                    BankTransaction.statement_upload_id == scope.statement_upload_id
                )
            if scope.transaction_ids:
                query = query.where(BankTransaction.id.in_(scope.transaction_ids))
            if scope.date_from is not None:
                query = query.where(BankTransaction.transaction_date >= scope.date_from)
            if scope.date_to is not None:
                query = query.where(BankTransaction.transaction_date <= scope.date_to)
            query = query.order_by(
                BankTransaction.transaction_date,
                BankTransaction.external_transaction_id,
            )
            if scope.limit:
                query = query.limit(scope.limit)
            return list((await db.execute(query)).scalars().all())

    async def load_snapshot(self) -> MatchingSnapshot:
        async with self.session_maker() as db:
            return await load_matching_snapshot(db)

    async def run(
        self, scope: ReconcileScope | None = None, actor: str = "system"
    ) -> AutoReconcileResults:
        scope = scope or ReconcileScope()
        results = AutoReconcileResults()
        async with async_log_timing("auto_reconcile", logger=logger, actor=actor) as timing:
            items = await self.load_pending(scope)
            snapshot = await self.load_snapshot()
            await self.process_batch(items, snapshot, results, actor=actor)
            timing.update(
                total=results.total,
                matched=results.matched,
                partially_matched=results.partially_matched,
                unmatched=results.unmatched,
                failed=results.failed,
                skipped=results.skipped,
            )
        return results

    async def process_batch(
        self,
        items: list[BankTransaction],
        snapshot: MatchingSnapshot,
        results: AutoReconcileResults,
        *,
        actor: str = "system",
    ) -> AutoReconcileResults:
        """Process already-selected transactions into ``results``."""
        results.total += len(items)
        semaphore = asyncio.Semaphore(self.max_workers)
        deadline = (
            time.monotonic() + self.deadline_seconds if self.deadline_seconds is not None else None
        )

        async def worker(txn: BankTransaction) -> None:
            async with semaphore:
                if deadline is not None and time.monotonic() >= deadline:
                    results.record(
                        ItemOutcome(
                            transaction_id=str(txn.id),
                            external_transaction_id=txn.external_transaction_id,
                            status="skipped",
                            reason="batch deadline reached",
                        )
                    )
                    return
                results.record(await self.process_item(txn, snapshot, actor))

        await asyncio.gather(*(worker(txn) for txn in items))
        return results

    def evaluate(self, txn: BankTransaction, snapshot: MatchingSnapshot) -> MatchResult:
        with log_timing(
            "score_candidates", logger=logger, level="debug", txn_id=str(txn.id)
        ) as timing:
            candidates = self.generator.generate(txn, snapshot)
            match = self.scorer.evaluate(txn, candidates, snapshot)
            timing.update(
                candidates=len(candidates),
                match_type=match.match_type.value,
                confidence=match.confidence,
            )
        return match

    async def preview(self, transaction_id: UUID) -> MatchResult:
        """Score a transaction against current data without writing anything."""
        async with self.session_maker() as db:
            txn = await db.get(BankTransaction, transaction_id)
            if txn is None:
                raise NotFoundError(
                    "Bank transaction not found", transaction_id=str(transaction_id)
                )
            snapshot = await load_matching_snapshot(db)
        return self.evaluate(txn, snapshot)

    async def process_item(
        self, txn: BankTransaction, snapshot: MatchingSnapshot, actor: str
    ) -> ItemOutcome:
        outcome = ItemOutcome(
            transaction_id=str(txn.id),
            external_transaction_id=txn.external_transaction_id,
            status="failed",
        )
        try:
            match = self.evaluate(txn, snapshot)
            outcome.match_type = match.match_type.value
            outcome.confidence = match.confidence

            if not match.success:
                await run_in_transaction(
                    self.session_maker,
                    lambda db: mark_unmatched(
                        db,
                        txn.id,
                        confidence=match.confidence,
                        reason=match.reason,
                        breakdown=match.breakdown,
                        actor=actor,
                    ),
                )
                outcome.status = "unmatched"
                outcome.reason = match.reason
                return outcome

            posted = await self.poster.post(
                PostingRequest(
                    transaction_id=txn.id,
                    customer_id=match.customer_id,
                    invoice_id=match.invoice_id,
                    amount=txn.amount,
                    actor=actor,
                    manual=False,
                    tier=match.match_type,
                    confidence=match.confidence,
                    needs_review=match.needs_review,
                    breakdown=match.breakdown,
                )
            )
            if posted.invoice_id is not None:
                snapshot.apply_posting(
                    posted.invoice_id, posted.balance_amount, posted.invoice_status
                )
            outcome.status = posted.transaction_status.value
            outcome.payment_id = str(posted.payment_id)
            outcome.needs_review = match.needs_review
            return outcome
        except (ReconciliationError, SQLAlchemyError) as exc:
            log_exception(
                logger,
                exc,
                "Auto-reconcile item failed",
                level="warning" if isinstance(exc, ReconciliationError) else "error",
                include_traceback=not isinstance(exc, ReconciliationError),
                txn_id=str(txn.id),
            )
            outcome.error = str(exc)
            outcome.error_type = type(exc).__name__
            await self._record_failure(txn, outcome, actor)
            return outcome
        except Exception as exc:
            # Fatal to this item only; the rest of the batch carries on.
            log_exception(
                logger,
                exc,
                "Auto-reconcile item crashed",
                include_traceback=True,
                txn_id=str(txn.id),
            )
            outcome.error = str(exc)
            outcome.error_type = type(exc).__name__
            await self._record_failure(txn, outcome, actor)
            return outcome

    async def _record_failure(self, txn: BankTransaction, outcome: ItemOutcome, actor: str) -> None:
        """Best-effort FAILED audit row; the store may be what failed."""

        async def write(db: AsyncSession) -> None:
            current = await db.get(BankTransaction, txn.id)
            db.add(
                ReconciliationLog(
                    bank_transaction_id=txn.id,
                    attempt=current.attempt if current else txn.attempt,
                    action=ReconciliationAction.FAILED,
                    tier=MatchTier(outcome.match_type) if outcome.match_type else None,
                    confidence=outcome.confidence,
                    reason=f"{outcome.error_type}: {outcome.error}",
                    performed_by=actor,
                )
            )

        try:
            await run_in_transaction(self.session_maker, write)
        except Exception as exc:
            log_exception(logger, exc, "Could not record failed attempt", txn_id=str(txn.id))
