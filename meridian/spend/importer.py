"""
Meridian - Cost Importer
========================

Loads billing exports (CSV) into cost_records.

Required columns: date, provider, service, amount
Optional columns: currency, resource, usage_type

Headers are matched case-insensitively after trimming. Each file is tracked
as a JobRun keyed by its content hash, so importing the same bytes twice is a
no-op. Rows are upserted by record hash, so a corrected export replaces the
amounts it previously imported.
"""

import io
import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, BinaryIO
from uuid import UUID

import pandas as pd
from sqlalchemy.orm import Session

from ..core.db import (
    compute_content_hash,
    get_or_create_job,
    mark_job_failed,
    mark_job_started,
    mark_job_success,
    resolve_environment,
)
from ..core.models import CostRecord, JobStatusEnum, JobTypeEnum, Resource, compute_cost_record_hash
from ..observability import OperationLogger
from ..resilience.error_handler import SpendImportError

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("date", "provider", "service", "amount")
OPTIONAL_COLUMNS = ("currency", "resource", "usage_type")

CostSource = bytes | str | os.PathLike | BinaryIO


@dataclass
class ImportResult:
    """Outcome of one cost import."""

    source: str
    content_hash: str
    job_id: UUID | None = None
    skipped: bool = False
    rows_total: int = 0
    rows_created: int = 0
    rows_updated: int = 0
    rows_rejected: int = 0
    total_amount: Decimal = Decimal("0")
    errors: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "content_hash": self.content_hash,
            "job_id": str(self.job_id) if self.job_id else None,
            "skipped": self.skipped,
            "rows_total": self.rows_total,
            "rows_created": self.rows_created,
            "rows_updated": self.rows_updated,
            "rows_rejected": self.rows_rejected,
            "total_amount": str(self.total_amount),
            "errors": self.errors,
        }


@dataclass
class _Row:
    usage_date: Any
    provider: str
    service: str
    amount: Decimal
    currency: str
    resource_address: str | None
    usage_type: str | None


def _read_bytes(source: CostSource) -> bytes:
    if isinstance(source, bytes):
        return source
    if isinstance(source, str):
        return source.encode()
    if isinstance(source, os.PathLike):
        return Path(source).read_bytes()
    data = source.read()
    return data.encode() if isinstance(data, str) else data


def _parse_amount(raw: str) -> Decimal:
    cleaned = raw.strip().replace(",", "").replace("$", "")
    if cleaned.startswith("(") and cleaned.endswith(")"):
        cleaned = "-" + cleaned[1:-1]
    value = Decimal(cleaned)
    if not value.is_finite():
        raise InvalidOperation(raw)
    return value


def _optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class CostImporter:
    """Imports cost CSVs for an environment."""

    def __init__(self, session: Session, max_errors: int = 100):
        self.session = session
        self.max_errors = max_errors

    def import_csv(self, environment_id: str | UUID, source: CostSource, source_name: str | None = None) -> ImportResult:
        """
        Import one CSV export.

        Raises:
            NotFoundError: unknown environment
            SpendImportError: unreadable file, missing columns, or too many bad rows
        """
        env = resolve_environment(self.session, environment_id)
        content = _read_bytes(source)
        if source_name is None:
            source_name = Path(source).name if isinstance(source, os.PathLike) else "upload.csv"

        content_hash = compute_content_hash(content)
        result = ImportResult(source=source_name, content_hash=content_hash)

        job, created = get_or_create_job(
            self.session,
            JobTypeEnum.COST_IMPORT,
            {"environment_id": str(env.id), "content_hash": content_hash},
            environment_id=env.id,
        )
        result.job_id = job.id
        if not created and job.status == JobStatusEnum.SUCCESS:
            logger.info(f"Cost file {source_name} already imported (job {job.id}), skipping")
            result.skipped = True
            outputs = job.outputs or {}
            result.rows_total = outputs.get("rows_total", 0)
            return result

        mark_job_started(job)
        with OperationLogger(logger, "cost_import", environment_id=str(env.id), source=source_name):
            try:
                self._import(env, content, result)
            except Exception as e:
                mark_job_failed(job, str(e))
                if isinstance(e, SpendImportError):
                    raise
                raise SpendImportError(f"Cost import of '{source_name}' failed: {e}") from e

        mark_job_success(job, outputs=result.to_dict())
        self.session.flush()
        return result

    def _import(self, env, content: bytes, result: ImportResult) -> None:
        try:
            df = pd.read_csv(
                io.BytesIO(content), dtype=str, keep_default_na=False, skipinitialspace=True, skip_blank_lines=False
            )
        except pd.errors.EmptyDataError as e:
            raise SpendImportError("Cost file is empty") from e
        except pd.errors.ParserError as e:
            raise SpendImportError(f"Cost file is not valid CSV: {e}") from e

        df.columns = [str(c).strip().lower() for c in df.columns]
        missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise SpendImportError(f"Cost file is missing required columns: {', '.join(missing)}")

        # Blank lines stay in the frame so positions match physical lines
        df = df.fillna("")
        blank = [not any(str(value).strip() for value in values) for values in df.itertuples(index=False)]
        dates = pd.to_datetime(df["date"].str.strip(), errors="coerce", format="ISO8601")
        result.rows_total = len(df) - sum(blank)

        rows: dict[str, _Row] = {}
        for position, record in enumerate(df.to_dict("records")):
            if blank[position]:
                continue
            line = position + 2  # header is line 1
            error = None
            usage_date = dates.iloc[position]
            provider = (record.get("provider") or "").strip().lower()
            service = (record.get("service") or "").strip()

            if pd.isna(usage_date):
                error = f"invalid date '{record['date']}'"
            elif not provider or not service:
                error = "provider and service are required"
            else:
                try:
                    amount = _parse_amount(record["amount"])
                except (InvalidOperation, ValueError):
                    error = f"invalid amount '{record['amount']}'"

            if error:
                result.rows_rejected += 1
                result.errors.append({"line": line, "error": error})
                if result.rows_rejected > self.max_errors:
                    raise SpendImportError(
                        f"Aborting import after {result.rows_rejected} bad rows (max {self.max_errors})"
                    )
                continue

            row = _Row(
                usage_date=usage_date.date(),
                provider=provider,
                service=service,
                amount=amount,
                currency=(_optional(record.get("currency")) or env.currency).upper(),
                resource_address=_optional(record.get("resource")),
                usage_type=_optional(record.get("usage_type")),
            )
            record_hash = compute_cost_record_hash(
                row.provider, row.service, row.usage_date, row.resource_address, row.usage_type, row.currency
            )
            # Repeated line items within one file add up when they share a currency
            if record_hash in rows:
                rows[record_hash].amount += row.amount
            else:
                rows[record_hash] = row

        self._upsert(env, rows, result)

    def _upsert(self, env, rows: dict[str, _Row], result: ImportResult) -> None:
        existing: dict[str, CostRecord] = {}
        hashes = list(rows)
        for start in range(0, len(hashes), 500):
            chunk = hashes[start:start + 500]
            for record in (
                self.session.query(CostRecord)
                .filter(CostRecord.environment_id == env.id, CostRecord.record_hash.in_(chunk))
                .all()
            ):
                existing[record.record_hash] = record

        addresses = {
            r.address: r.id
            for r in self.session.query(Resource.address, Resource.id).filter(Resource.environment_id == env.id)
        }

        for record_hash, row in rows.items():
            record = existing.get(record_hash)
            if record is None:
                record = CostRecord(environment_id=env.id, record_hash=record_hash)
                self.session.add(record)
                result.rows_created += 1
            else:
                result.rows_updated += 1
            record.usage_date = row.usage_date
            record.provider = row.provider
            record.service = row.service
            record.usage_type = row.usage_type
            record.resource_address = row.resource_address
            record.resource_id = addresses.get(row.resource_address) if row.resource_address else None
            record.amount = row.amount
            record.currency = row.currency
            record.source = result.source
            result.total_amount += row.amount

        self.session.flush()
        logger.info(
            f"Imported {result.source}: {result.rows_created} created, {result.rows_updated} updated, "
            f"{result.rows_rejected} rejected"
        )
