"""Bank reconciliation and payment-matching engine."""

__version__ = "0.1.0"
