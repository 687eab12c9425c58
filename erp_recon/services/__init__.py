"""Services package."""

from erp_recon.services.candidates import (
    Candidate,
    CandidateGenerator,
    MatchingSnapshot,
    load_matching_snapshot,
)
from erp_recon.services.customer_aggregates import (
    recompute_customer_aggregates,
    recompute_invoice,
)
from erp_recon.services.exceptions import (
    ConflictError,
    ConsistencyError,
    InvalidAmountError,
    NotFoundError,
    ReconciliationError,
    ValidationError,
)
from erp_recon.services.invoice_status import apply_payment_amount, derive_invoice_status
from erp_recon.services.manual_override import ManualOverrideHandler
from erp_recon.services.matching_config import MatchingConfig, load_matching_config
from erp_recon.services.normalizer import IngestResult, TransactionNormalizer
from erp_recon.services.orchestrator import (
    AutoReconcileOrchestrator,
    AutoReconcileResults,
    ReconcileScope,
)
from erp_recon.services.posting import PaymentPoster, PostingRequest, PostingResult
from erp_recon.services.scoring import ConfidenceScorer, MatchResult
from erp_recon.services.unit_of_work import run_in_transaction

__all__ = [
    "AutoReconcileOrchestrator",
    "AutoReconcileResults",
    "Candidate",
    "CandidateGenerator",
    "ConfidenceScorer",
    "ConflictError",
    "ConsistencyError",
    "IngestResult",
    "InvalidAmountError",
    "ManualOverrideHandler",
    "MatchResult",
    "MatchingConfig",
    "MatchingSnapshot",
    "NotFoundError",
    "PaymentPoster",
    "PostingRequest",
    "PostingResult",
    "ReconcileScope",
    "ReconciliationError",
    "TransactionNormalizer",
    "ValidationError",
    "apply_payment_amount",
    "derive_invoice_status",
    "load_matching_config",
    "load_matching_snapshot",
    "recompute_customer_aggregates",
    "recompute_invoice",
    "run_in_transaction",
]
