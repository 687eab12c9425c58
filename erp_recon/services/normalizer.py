"""Bank statement row ingestion.

Rows arrive already parsed (one dict per credit line). Each row is validated
on its own, duplicates are skipped by ``external_transaction_id`` within the
batch and against stored transactions, and the rest are inserted as PENDING.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from erp_recon.config import settings
from erp_recon.logger import get_logger
from erp_recon.models import BankTransaction, BankTransactionStatus
from erp_recon.schemas.reconciliation import StatementRow
from erp_recon.services.exceptions import ConflictError
from erp_recon.services.unit_of_work import run_in_transaction

logger = get_logger(__name__)


@dataclass
class IngestError:
    row_number: int | None
    external_transaction_id: str | None
    error: str


@dataclass
class IngestResult:
    total: int = 0
    imported: int = 0
    duplicates: int = 0
    failed: int = 0
    errors: list[IngestError] = field(default_factory=list)
    transaction_ids: list[UUID] = field(default_factory=list)


def _describe(exc: PydanticValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'row'}: {err['msg']}" for err in exc.errors()
    )


def _reported_row_number(value: Any, index: int) -> int:
    # Echo the caller's row number only when it is usable as one.
    if isinstance(value, int) and not isinstance(value, bool) and value >= 1:
        return value
    return index


def _reported_external_id(value: Any) -> str | None:
    return value if isinstance(value, str) else None


class TransactionNormalizer:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self.session_maker = session_maker

    def validate_rows(
        self, rows: Iterable[Mapping[str, Any] | StatementRow], result: IngestResult
    ) -> list[StatementRow]:
        valid: list[StatementRow] = []
        for index, raw in enumerate(rows, start=1):
            result.total += 1
            if isinstance(raw, StatementRow):
                valid.append(raw)
                continue
            if not isinstance(raw, Mapping):
                result.failed += 1
                result.errors.append(
                    IngestError(
                        row_number=index,
                        external_transaction_id=None,
                        error=f"row: expected an object, got {type(raw).__name__}",
                    )
                )
                continue
            try:
                row = StatementRow.model_validate(raw)
            except PydanticValidationError as exc:
                result.failed += 1
                result.errors.append(
                    IngestError(
                        row_number=_reported_row_number(raw.get("row_number"), index),
                        external_transaction_id=_reported_external_id(
                            raw.get("external_transaction_id")
                        ),
                        error=_describe(exc),
                    )
                )
                continue
            if row.row_number is None:
                row = row.model_copy(update={"row_number": index})
            valid.append(row)
        return valid

    async def ingest(
        self,
        rows: Iterable[Mapping[str, Any] | StatementRow],
        statement_upload_id: UUID | None = None,
    ) -> IngestResult:
        result = IngestResult()
        valid = self.validate_rows(rows, result)

        async def work(db: AsyncSession) -> IngestResult:
            ids = {row.external_transaction_id for row in valid}
            existing: set[str] = set()
            if ids:
                existing = set(
                    (
                        await db.execute(
                            select(BankTransaction.external_transaction_id).where(
                                BankTransaction.external_transaction_id.in_(ids)
                            )
                        )
                    ).scalars()
                )

            seen: set[str] = set()
            new_rows: list[BankTransaction] = []
            for row in valid:
                if row.external_transaction_id in existing or row.external_transaction_id in seen:
                    result.duplicates += 1
                    continue
                seen.add(row.external_transaction_id)
                new_rows.append(
                    BankTransaction(
                        external_transaction_id=row.external_transaction_id,
                        transaction_date=row.transaction_date,
                        value_date=row.value_date,
                        amount=row.amount,
                        currency=row.currency or settings.base_currency,
                        reference=row.reference,
                        payer_name=row.payer_name,
                        balance_after=row.balance,
                        status=BankTransactionStatus.PENDING,
                        attempt=0,
                        statement_upload_id=statement_upload_id,
                        row_number=row.row_number,
                    )
                )

            db.add_all(new_rows)
            try:
                await db.flush()
            except IntegrityError as exc:
                raise ConflictError(
                    "Statement rows were imported concurrently; retry the import",
                    statement_upload_id=str(statement_upload_id) if statement_upload_id else None,
                ) from exc
            result.imported = len(new_rows)
            result.transaction_ids = [txn.id for txn in new_rows]
            return result

        await run_in_transaction(self.session_maker, work)
        logger.info(
            "Statement rows ingested",
            statement_upload_id=str(statement_upload_id) if statement_upload_id else None,
            total=result.total,
            imported=result.imported,
            duplicates=result.duplicates,
            failed=result.failed,
        )
        return result
