"""Common exception utilities for FastAPI routers."""

from typing import NoReturn

from fastapi import HTTPException, status

from erp_recon.services.exceptions import (
    ConflictError,
    ConsistencyError,
    NotFoundError,
    ReconciliationError,
    ValidationError,
)


def raise_not_found(resource_name: str, *, cause: Exception | None = None) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"{resource_name} not found",
    ) from cause


def raise_bad_request(detail: str, *, cause: Exception | None = None) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=detail,
    ) from cause


def raise_conflict(detail: str, *, cause: Exception | None = None) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=detail,
    ) from cause


def raise_internal_error(detail: str, *, cause: Exception | None = None) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=detail,
    ) from cause


def raise_domain_error(exc: ReconciliationError) -> NoReturn:
    """Translate a reconciliation domain error into the matching HTTP error."""
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message) from exc
    if isinstance(exc, ValidationError):
        raise_bad_request(exc.message, cause=exc)
    if isinstance(exc, ConflictError):
        raise_conflict(exc.message, cause=exc)
    if isinstance(exc, ConsistencyError):
        raise_internal_error(exc.message, cause=exc)
    raise_bad_request(exc.message, cause=exc)
