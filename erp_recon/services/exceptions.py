"""Domain errors raised by the reconciliation services.

Routers translate them to HTTP responses; the batch orchestrator records them
per item and keeps going.
"""


class ReconciliationError(Exception):
    """Base class for reconciliation domain errors."""

    code = "reconciliation_error"

    def __init__(self, message: str, **context: object) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class ValidationError(ReconciliationError):
    """Input is malformed or violates a business rule."""

    code = "validation_error"


class InvalidAmountError(ValidationError):
    """Amount is non-positive or larger than what the target can absorb."""

    code = "invalid_amount"


class NotFoundError(ReconciliationError):
    code = "not_found"


class ConflictError(ReconciliationError):
    """Requested state transition is not allowed from the current state."""

    code = "conflict"


class ConsistencyError(ReconciliationError):
    """Persisted data would violate an accounting invariant."""

    code = "consistency_error"
