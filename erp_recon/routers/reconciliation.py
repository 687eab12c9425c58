"""Reconciliation API router."""

from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Query
from sqlalchemy import func, select

from erp_recon.config import settings
from erp_recon.deps import Actor, DbSession, SessionMaker
from erp_recon.models import (
    OPEN_INVOICE_STATUSES,
    BankTransaction,
    BankTransactionStatus,
    Invoice,
    ReconciliationLog,
)
from erp_recon.schemas.reconciliation import (
    AutoMatchDetail,
    AutoMatchRequest,
    AutoMatchResponse,
    BankTransactionListResponse,
    BankTransactionResponse,
    CandidateResponse,
    CustomerAggregatesResponse,
    ImportTransactionsRequest,
    IngestErrorResponse,
    IngestResultResponse,
    ManualMatchRequest,
    MatchPreviewResponse,
    PostingResponse,
    ReconciliationLogListResponse,
    ReconciliationLogResponse,
    ReconciliationStatsResponse,
    RefundRequest,
    RefundResponse,
    RejectRequest,
)
from erp_recon.services.customer_aggregates import recompute_customer_aggregates
from erp_recon.services.exceptions import ReconciliationError
from erp_recon.services.manual_override import ManualOverrideHandler
from erp_recon.services.normalizer import TransactionNormalizer
from erp_recon.services.orchestrator import AutoReconcileOrchestrator, ReconcileScope
from erp_recon.services.posting import PaymentPoster
from erp_recon.services.unit_of_work import run_in_transaction
from erp_recon.utils.exceptions import raise_domain_error, raise_not_found

router = APIRouter(prefix="/reconciliation", tags=["reconciliation"])


def _orchestrator(session_maker: SessionMaker) -> AutoReconcileOrchestrator:
    return AutoReconcileOrchestrator(
        session_maker,
        max_workers=settings.reconciliation_max_workers,
        deadline_seconds=settings.reconciliation_batch_deadline_seconds,
    )


@router.post("/transactions/import", response_model=IngestResultResponse)
async def import_transactions(
    payload: ImportTransactionsRequest,
    session_maker: SessionMaker,
) -> IngestResultResponse:
    """Import normalized statement rows as PENDING bank transactions."""
    try:
        result = await TransactionNormalizer(session_maker).ingest(
            payload.rows, statement_upload_id=payload.statement_upload_id
        )
    except ReconciliationError as exc:
        raise_domain_error(exc)
    return IngestResultResponse(
        total=result.total,
        imported=result.imported,
        duplicates=result.duplicates,
        failed=result.failed,
        errors=[
            IngestErrorResponse(
                row_number=err.row_number,
                external_transaction_id=err.external_transaction_id,
                error=err.error,
            )
            for err in result.errors
        ],
    )


@router.get("/transactions", response_model=BankTransactionListResponse)
async def list_transactions(
    db: DbSession,
    status: BankTransactionStatus | None = Query(default=None),
    statement_upload_id: UUID | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> BankTransactionListResponse:
    """List bank transactions, newest first."""
    query = select(BankTransaction)
    count_query = select(func.count(BankTransaction.id))
    if status is not None:
        query = query.where(BankTransaction.status == status)
        count_query = count_query.where(BankTransaction.status == status)
    if statement_upload_id is not None:
        query = query.where(BankTransaction.statement_upload_id == statement_upload_id)
        count_query = count_query.where(
            BankTransaction.statement_upload_id == statement_upload_id
        )

    total = (await db.execute(count_query)).scalar_one()
    rows = (
        await db.execute(
            query.order_by(
                BankTransaction.transaction_date.desc(),
                BankTransaction.external_transaction_id,
            )
            .limit(limit)
            .offset(offset)
        )
    ).scalars()
    return BankTransactionListResponse(
        items=[BankTransactionResponse.model_validate(txn) for txn in rows],
        total=total,
    )


@router.get("/transactions/{transaction_id}/logs", response_model=ReconciliationLogListResponse)
async def list_transaction_logs(
    transaction_id: UUID, db: DbSession
) -> ReconciliationLogListResponse:
    """Full reconciliation history of one transaction, oldest first."""
    if await db.get(BankTransaction, transaction_id) is None:
        raise_not_found("Bank transaction")
    logs = (
        await db.execute(
            select(ReconciliationLog)
            .where(ReconciliationLog.bank_transaction_id == transaction_id)
            .order_by(ReconciliationLog.created_at, ReconciliationLog.attempt)
        )
    ).scalars().all()
    return ReconciliationLogListResponse(
        items=[ReconciliationLogResponse.model_validate(log) for log in logs],
        total=len(logs),
    )


@router.get("/transactions/{transaction_id}/preview", response_model=MatchPreviewResponse)
async def preview_transaction(
    transaction_id: UUID, session_maker: SessionMaker
) -> MatchPreviewResponse:
    """Show how the engine would score a transaction, without posting."""
    try:
        match = await _orchestrator(session_maker).preview(transaction_id)
    except ReconciliationError as exc:
        raise_domain_error(exc)
    return MatchPreviewResponse(
        transaction_id=transaction_id,
        success=match.success,
        match_type=match.match_type,
        confidence=match.confidence,
        customer_id=match.customer_id,
        invoice_id=match.invoice_id,
        matched_amount=match.matched_amount,
        needs_review=match.needs_review,
        reason=match.reason,
        breakdown=match.breakdown,
        candidates=[
            CandidateResponse(
                customer_id=item.candidate.customer_id,
                invoice_id=item.candidate.invoice_id,
                score=item.score,
                tier=item.tier,
                breakdown=item.breakdown,
                sources=list(item.candidate.sources),
                reason=item.reason,
            )
            for item in match.candidates
        ],
    )


@router.post("/auto-match", response_model=AutoMatchResponse)
async def auto_match(
    session_maker: SessionMaker,
    actor: Actor,
    payload: AutoMatchRequest | None = None,
) -> AutoMatchResponse:
    """Run automatic reconciliation over PENDING transactions."""
    payload = payload or AutoMatchRequest()
    scope = ReconcileScope(
        statement_upload_id=payload.statement_upload_id,
        transaction_ids=payload.transaction_ids,
        date_from=payload.date_from,
        date_to=payload.date_to,
        limit=payload.limit or settings.reconciliation_batch_limit,
    )
    results = await _orchestrator(session_maker).run(scope, actor=actor)
    return AutoMatchResponse(
        total=results.total,
        matched=results.matched,
        partially_matched=results.partially_matched,
        unmatched=results.unmatched,
        failed=results.failed,
        skipped=results.skipped,
        details=[
            AutoMatchDetail.model_validate(detail, from_attributes=True)
            for detail in results.details
        ],
    )


@router.post("/manual-match", response_model=PostingResponse)
async def manual_match(
    payload: ManualMatchRequest,
    session_maker: SessionMaker,
    actor: Actor,
) -> PostingResponse:
    """Match a transaction to a customer, and optionally an invoice, by hand."""
    try:
        result = await ManualOverrideHandler(session_maker).manual_match(
            transaction_id=payload.bank_transaction_id,
            customer_id=payload.customer_id,
            invoice_id=payload.invoice_id,
            amount=payload.amount,
            actor=actor,
            notes=payload.notes,
        )
    except ReconciliationError as exc:
        raise_domain_error(exc)
    return PostingResponse(
        payment_id=result.payment_id,
        transaction_id=result.transaction_id,
        transaction_status=result.transaction_status,
        invoice_id=result.invoice_id,
        invoice_status=result.invoice_status,
        balance_amount=result.balance_amount,
    )


@router.post("/reject", response_model=BankTransactionResponse)
async def reject_transaction(
    payload: RejectRequest,
    session_maker: SessionMaker,
    actor: Actor,
) -> BankTransactionResponse:
    """Reject a transaction that should not be reconciled."""
    try:
        txn = await ManualOverrideHandler(session_maker).reject(
            payload.bank_transaction_id, payload.reason, actor
        )
    except ReconciliationError as exc:
        raise_domain_error(exc)
    return BankTransactionResponse.model_validate(txn)


@router.post("/payments/{payment_id}/refund", response_model=RefundResponse)
async def refund_payment(
    payment_id: UUID,
    payload: RefundRequest,
    session_maker: SessionMaker,
    actor: Actor,
) -> RefundResponse:
    """Refund a confirmed payment and reopen its invoice balance."""
    try:
        result = await PaymentPoster(session_maker).refund(payment_id, payload.reason, actor)
    except ReconciliationError as exc:
        raise_domain_error(exc)
    return RefundResponse(
        refund_payment_id=result.refund_payment_id,
        original_payment_id=result.original_payment_id,
        amount=result.amount,
        invoice_id=result.invoice_id,
        invoice_status=result.invoice_status,
        balance_amount=result.balance_amount,
    )


@router.post("/customers/{customer_id}/recompute", response_model=CustomerAggregatesResponse)
async def recompute_customer(
    customer_id: UUID, session_maker: SessionMaker
) -> CustomerAggregatesResponse:
    """Rebuild a customer's invoice amounts and running totals from payments."""
    try:
        customer = await run_in_transaction(
            session_maker, lambda db: recompute_customer_aggregates(db, customer_id)
        )
    except ReconciliationError as exc:
        raise_domain_error(exc)
    return CustomerAggregatesResponse.model_validate(customer)


@router.get("/stats", response_model=ReconciliationStatsResponse)
async def get_reconciliation_stats(db: DbSession) -> ReconciliationStatsResponse:
    """Transaction counts by status and outstanding invoice balance."""
    rows = (
        await db.execute(
            select(
                BankTransaction.status,
                func.count(BankTransaction.id),
                func.coalesce(func.sum(BankTransaction.amount), 0),
            ).group_by(BankTransaction.status)
        )
    ).all()
    counts = {status: 0 for status in BankTransactionStatus}
    amounts = {status: Decimal("0.00") for status in BankTransactionStatus}
    for status, count, amount in rows:
        counts[status] = count
        amounts[status] = Decimal(str(amount))

    invoice_count, outstanding = (
        await db.execute(
            select(
                func.count(Invoice.id),
                func.coalesce(func.sum(Invoice.balance_amount), 0),
            ).where(Invoice.status.in_(OPEN_INVOICE_STATUSES))
        )
    ).one()

    total = sum(counts.values())
    reconciled = (
        counts[BankTransactionStatus.MATCHED] + counts[BankTransactionStatus.PARTIALLY_MATCHED]
    )
    cents = Decimal("0.01")
    return ReconciliationStatsResponse(
        total_transactions=total,
        pending=counts[BankTransactionStatus.PENDING],
        matched=counts[BankTransactionStatus.MATCHED],
        partially_matched=counts[BankTransactionStatus.PARTIALLY_MATCHED],
        unmatched=counts[BankTransactionStatus.UNMATCHED],
        rejected=counts[BankTransactionStatus.REJECTED],
        match_rate=round(reconciled / total, 4) if total else 0.0,
        unmatched_amount=amounts[BankTransactionStatus.UNMATCHED].quantize(cents),
        open_invoices=invoice_count,
        outstanding_balance=Decimal(str(outstanding)).quantize(cents),
    )
