"""API routers package."""

from erp_recon.routers import reconciliation

__all__ = ["reconciliation"]
