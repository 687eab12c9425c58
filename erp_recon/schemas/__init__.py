from erp_recon.schemas.base import BaseResponse, ListResponse
from erp_recon.schemas.reconciliation import (
    AutoMatchRequest,
    AutoMatchResponse,
    BankTransactionListResponse,
    BankTransactionResponse,
    CustomerAggregatesResponse,
    ImportTransactionsRequest,
    IngestResultResponse,
    ManualMatchRequest,
    MatchPreviewResponse,
    PostingResponse,
    ReconciliationLogListResponse,
    ReconciliationStatsResponse,
    RefundRequest,
    RefundResponse,
    RejectRequest,
    StatementRow,
)

__all__ = [
    "AutoMatchRequest",
    "AutoMatchResponse",
    "BankTransactionListResponse",
    "BankTransactionResponse",
    "BaseResponse",
    "CustomerAggregatesResponse",
    "ImportTransactionsRequest",
    "IngestResultResponse",
    "ListResponse",
    "ManualMatchRequest",
    "MatchPreviewResponse",
    "PostingResponse",
    "ReconciliationLogListResponse",
    "ReconciliationStatsResponse",
    "RefundRequest",
    "RefundResponse",
    "RejectRequest",
    "StatementRow",
]
