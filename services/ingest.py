"""Background ingestion of measurement CSV files into the record store."""

from __future__ import annotations

import csv
import io
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import uuid4

from fastapi import BackgroundTasks, UploadFile

from app.schemas import IngestError, IngestJob, IngestStatus, MeasurementRecord, to_sensor_local
from datastore.record_store import MEASUREMENTS, RecordStore, build_default_store
from settings import get_settings
from storage.table_cache import TableCache, build_default_cache

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("device_id", "metric_id", "type_id", "timestamp", "value")


class IngestService:
    """Accepts measurement uploads and appends validated rows to the store."""

    def __init__(
        self,
        store: RecordStore,
        cache: TableCache,
        workers: int = 4,
    ) -> None:
        self.store = store
        self.cache = cache
        self.executor = ThreadPoolExecutor(max_workers=workers)
        self._futures: Dict[str, Future[None]] = {}
        self._futures_lock = Lock()

    def enqueue_file(self, background_tasks: BackgroundTasks, file: UploadFile) -> str:
        """Accept an uploaded CSV and parse it on the worker pool."""
        job_id = str(uuid4())
        filename = Path(file.filename or "measurements.csv").name

        file.file.seek(0)
        contents = file.file.read()
        if isinstance(contents, str):
            contents = contents.encode("utf-8")
        if not contents:
            raise ValueError("Uploaded file is empty.")

        uploaded_at = datetime.now(timezone.utc)
        self.store.put_job(
            IngestJob(job_id=job_id, status=IngestStatus.uploaded, uploaded_at=uploaded_at)
        )

        future = self.executor.submit(
            self._process_file,
            job_id=job_id,
            filename=filename,
            contents=contents,
            uploaded_at=uploaded_at,
        )
        with self._futures_lock:
            self._futures[job_id] = future
        future.add_done_callback(lambda _f, jid=job_id: self._clear_future(jid))

        background_tasks.add_task(file.close)
        return job_id

    def add_measurements(self, records: Iterable[MeasurementRecord]) -> int:
        count = self.store.append(MEASUREMENTS, records)
        self.cache.invalidate(MEASUREMENTS)
        logger.info("Appended measurements", extra={"table": MEASUREMENTS, "row_count": count})
        return count

    def fetch_job(self, job_id: str) -> IngestJob:
        job = self.store.get_job(job_id)
        if job is None:
            raise KeyError(f"Ingest job {job_id!r} not found.")
        return job

    def shutdown(self) -> None:
        """Clean up executor resources during application shutdown."""
        self.executor.shutdown(wait=False, cancel_futures=True)

    def _clear_future(self, job_id: str) -> None:
        with self._futures_lock:
            self._futures.pop(job_id, None)

    def _process_file(
        self, job_id: str, filename: str, contents: bytes, uploaded_at: datetime
    ) -> None:
        start_time = time.perf_counter()
        self.store.put_job(
            IngestJob(job_id=job_id, status=IngestStatus.processing, uploaded_at=uploaded_at)
        )

        errors: List[IngestError] = []
        accepted = 0
        try:
            text_stream = io.StringIO(contents.decode("utf-8"))
            records, errors = parse_measurement_rows(
                text_stream, job_id=job_id, filename=filename
            )
            if records:
                accepted = self.add_measurements(records)

            if accepted == 0 and errors:
                status = IngestStatus.failed
            elif errors:
                status = IngestStatus.partial
            else:
                status = IngestStatus.processed
        except (UnicodeDecodeError, ValueError) as exc:
            status = IngestStatus.failed
            errors.append(IngestError(row_number=1, reason=str(exc)))
        except Exception as exc:
            logger.exception(
                "Measurement ingest failed",
                extra={"job_id": job_id, "upload_name": filename, "reason": str(exc)},
            )
            status = IngestStatus.failed
            accepted = 0
            errors = [IngestError(row_number=1, reason=str(exc))]

        processing_ms = int((time.perf_counter() - start_time) * 1000)
        self.store.put_job(
            IngestJob(
                job_id=job_id,
                status=status,
                uploaded_at=uploaded_at,
                processed_at=datetime.now(timezone.utc),
                processing_ms=processing_ms,
                accepted_rows=accepted,
                errors=errors,
            )
        )
        logger.info(
            "Finished measurement ingest",
            extra={
                "job_id": job_id,
                "status": status.value,
                "row_count": accepted,
                "error_count": len(errors),
                "processing_ms": processing_ms,
            },
        )


def parse_measurement_rows(
    stream: io.TextIOBase,
    job_id: Optional[str] = None,
    filename: Optional[str] = None,
) -> Tuple[List[MeasurementRecord], List[IngestError]]:
    """Validate CSV rows, collecting per-row errors instead of failing the file."""
    reader = csv.DictReader(stream)
    if not reader.fieldnames:
        raise ValueError("CSV file is missing a header row.")

    normalized = {name.lower().strip(): name for name in reader.fieldnames}
    missing = [column for column in REQUIRED_COLUMNS if column not in normalized]
    if missing:
        raise ValueError(f"CSV missing required columns: {', '.join(missing)}")

    records: List[MeasurementRecord] = []
    errors: List[IngestError] = []

    def skip(row_number: int, reason: str) -> None:
        errors.append(IngestError(row_number=row_number, reason=reason))
        logger.warning(
            "Skipping row: %s",
            reason,
            extra={"job_id": job_id, "row_number": row_number, "reason": reason, "upload_name": filename},
        )

    for row_number, row in enumerate(reader, start=2):
        raw = {column: (row.get(normalized[column]) or "").strip() for column in REQUIRED_COLUMNS}

        ids: Dict[str, int] = {}
        for column in ("device_id", "metric_id", "type_id"):
            if not raw[column]:
                skip(row_number, f"missing {column}")
                break
            try:
                ids[column] = int(raw[column])
            except ValueError:
                skip(row_number, f"invalid {column}")
                break
        if len(ids) < 3:
            continue

        if not raw["timestamp"]:
            skip(row_number, "missing timestamp")
            continue
        try:
            timestamp = parse_timestamp(raw["timestamp"])
        except ValueError:
            skip(row_number, "invalid timestamp")
            continue

        if not raw["value"]:
            skip(row_number, "missing value")
            continue
        try:
            value = float(raw["value"])
        except ValueError:
            skip(row_number, "invalid numeric value")
            continue

        records.append(MeasurementRecord(timestamp=timestamp, value=value, **ids))

    return records, errors


def parse_timestamp(value: str) -> datetime:
    candidate = value.strip()
    if not candidate:
        raise ValueError("Timestamp is empty.")

    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValueError("Invalid timestamp format") from exc

    return to_sensor_local(parsed)


@lru_cache
def build_default_ingest_service(
    workers: Optional[int] = None,
) -> IngestService:
    """Factory that wires the ingest service with the default store and cache."""
    worker_count = workers or get_settings().ingest_workers
    return IngestService(
        store=build_default_store(),
        cache=build_default_cache(),
        workers=worker_count,
    )
