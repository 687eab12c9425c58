"""Pydantic schemas for the reconciliation API."""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from erp_recon.models import (
    BankTransactionStatus,
    InvoiceStatus,
    MatchTier,
    ReconciliationAction,
)
from erp_recon.schemas.base import BaseResponse, ListResponse

# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


class StatementRow(BaseModel):
    """One normalized bank statement credit line."""

    external_transaction_id: str = Field(min_length=1, max_length=128)
    transaction_date: date
    value_date: date | None = None
    amount: Decimal = Field(gt=0, decimal_places=2)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    reference: str = ""
    payer_name: str | None = Field(default=None, max_length=255)
    balance: Decimal | None = Field(default=None, decimal_places=2)
    row_number: int | None = Field(default=None, ge=1)

    @field_validator("external_transaction_id")
    @classmethod
    def strip_external_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("external_transaction_id must not be blank")
        return value

    @field_validator("reference")
    @classmethod
    def collapse_reference(cls, value: str) -> str:
        return " ".join(value.split())

    @field_validator("payer_name")
    @classmethod
    def strip_payer_name(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = " ".join(value.split())
        return value or None

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, value: str | None) -> str | None:
        return value.upper() if value else None


class ImportTransactionsRequest(BaseModel):
    statement_upload_id: UUID | None = None
    # Rows are validated one by one so a bad row does not reject the batch.
    rows: list[dict] = Field(min_length=1, max_length=10000)


class IngestErrorResponse(BaseModel):
    row_number: int | None = None
    external_transaction_id: str | None = None
    error: str


class IngestResultResponse(BaseModel):
    total: int
    imported: int
    duplicates: int
    failed: int
    errors: list[IngestErrorResponse] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Transactions and logs
# ---------------------------------------------------------------------------


class BankTransactionResponse(BaseResponse):
    id: UUID
    external_transaction_id: str
    transaction_date: date
    value_date: date | None
    amount: Decimal
    currency: str
    reference: str
    payer_name: str | None
    status: BankTransactionStatus
    attempt: int
    matched_at: datetime | None
    matched_by: str | None
    statement_upload_id: UUID | None
    row_number: int | None
    created_at: datetime


BankTransactionListResponse = ListResponse[BankTransactionResponse]


class ReconciliationLogResponse(BaseResponse):
    id: UUID
    bank_transaction_id: UUID
    attempt: int
    action: ReconciliationAction
    tier: MatchTier | None
    confidence: float | None
    score_breakdown: dict[str, float]
    needs_review: bool
    matched_customer_id: UUID | None
    matched_invoice_id: UUID | None
    matched_amount: Decimal | None
    payment_id: UUID | None
    reason: str | None
    performed_by: str
    created_at: datetime


ReconciliationLogListResponse = ListResponse[ReconciliationLogResponse]


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


class CandidateResponse(BaseModel):
    customer_id: UUID
    invoice_id: UUID | None
    score: float
    tier: MatchTier
    breakdown: dict[str, float]
    sources: list[str]
    reason: str | None = None


class MatchPreviewResponse(BaseModel):
    transaction_id: UUID
    success: bool
    match_type: MatchTier
    confidence: float
    customer_id: UUID | None
    invoice_id: UUID | None
    matched_amount: Decimal | None
    needs_review: bool
    reason: str | None
    breakdown: dict[str, float]
    candidates: list[CandidateResponse]


class AutoMatchRequest(BaseModel):
    statement_upload_id: UUID | None = None
    transaction_ids: list[UUID] | None = None
    date_from: date | None = None
    date_to: date | None = None
    limit: int | None = Field(default=None, ge=1, le=10000)


class AutoMatchDetail(BaseModel):
    transaction_id: UUID
    external_transaction_id: str
    status: str
    match_type: MatchTier | None = None
    confidence: float | None = None
    needs_review: bool = False
    payment_id: UUID | None = None
    reason: str | None = None
    error: str | None = None
    error_type: str | None = None


class AutoMatchResponse(BaseModel):
    total: int
    matched: int
    partially_matched: int
    unmatched: int
    failed: int
    skipped: int
    details: list[AutoMatchDetail]


class ManualMatchRequest(BaseModel):
    bank_transaction_id: UUID
    customer_id: UUID
    invoice_id: UUID | None = None
    amount: Decimal = Field(gt=0, decimal_places=2)
    notes: str | None = Field(default=None, max_length=1000)


class RejectRequest(BaseModel):
    bank_transaction_id: UUID
    reason: str = Field(min_length=1, max_length=500)


class PostingResponse(BaseModel):
    payment_id: UUID
    transaction_id: UUID
    transaction_status: BankTransactionStatus
    invoice_id: UUID | None = None
    invoice_status: InvoiceStatus | None = None
    balance_amount: Decimal | None = None


class RefundRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class RefundResponse(BaseModel):
    refund_payment_id: UUID
    original_payment_id: UUID
    amount: Decimal
    invoice_id: UUID | None = None
    invoice_status: InvoiceStatus | None = None
    balance_amount: Decimal | None = None


# ---------------------------------------------------------------------------
# Customers and stats
# ---------------------------------------------------------------------------


class CustomerAggregatesResponse(BaseResponse):
    id: UUID
    customer_code: str
    name: str
    total_paid: Decimal
    current_balance: Decimal


class ReconciliationStatsResponse(BaseModel):
    total_transactions: int
    pending: int
    matched: int
    partially_matched: int
    unmatched: int
    rejected: int
    match_rate: float
    unmatched_amount: Decimal
    open_invoices: int
    outstanding_balance: Decimal
