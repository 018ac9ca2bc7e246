import asyncio
import io
import logging
from datetime import datetime, timezone

import pytest
from fastapi import BackgroundTasks, UploadFile

from app.schemas import IngestStatus, MeasurementRecord
from datastore.record_store import MEASUREMENTS, RecordStore
from services.ingest import IngestService, parse_measurement_rows, parse_timestamp
from storage.table_cache import TableCache

HEADER = "device_id,metric_id,type_id,timestamp,value\n"


@pytest.fixture()
def service(tmp_path) -> IngestService:
    store = RecordStore(persistence_path=tmp_path / "records.json")
    ingest = IngestService(store=store, cache=TableCache(ttl_seconds=30), workers=1)
    yield ingest
    ingest.shutdown()


def _create_upload_file(content: str, filename: str = "data.csv") -> UploadFile:
    return UploadFile(filename=filename, file=io.BytesIO(content.encode("utf-8")))


def _run_upload(service: IngestService, content: str, filename: str = "data.csv") -> str:
    tasks = BackgroundTasks()
    job_id = service.enqueue_file(tasks, _create_upload_file(content, filename))
    asyncio.run(tasks())
    with service._futures_lock:
        future = service._futures.get(job_id)
    if future is not None:
        future.result(timeout=5)
    return job_id


def test_successful_ingest_appends_rows(service: IngestService) -> None:
    job_id = _run_upload(
        service,
        HEADER + "1,1,1,2024-01-01T10:00:00,12.5\n1,1,2,2024-01-01T10:01:00,13.0\n",
    )

    job = service.fetch_job(job_id)
    assert job.status is IngestStatus.processed
    assert job.accepted_rows == 2
    assert job.errors == []
    assert job.processed_at is not None
    assert [row.value for row in service.store.scan(MEASUREMENTS)] == [12.5, 13.0]


def test_partial_ingest_collects_row_errors(service: IngestService) -> None:
    job_id = _run_upload(
        service,
        HEADER
        + "1,1,1,2024-01-01T10:00:00,12.5\n"
        + ",1,1,2024-01-01T10:00:00,1\n"
        + "1,x,1,2024-01-01T10:00:00,1\n"
        + "1,1,1,not-a-timestamp,1\n"
        + "1,1,1,2024-01-01T10:00:00,\n"
        + "1,1,1,2024-01-01T10:00:00,abc\n",
    )

    job = service.fetch_job(job_id)
    assert job.status is IngestStatus.partial
    assert job.accepted_rows == 1
    assert [(error.row_number, error.reason) for error in job.errors] == [
        (3, "missing device_id"),
        (4, "invalid metric_id"),
        (5, "invalid timestamp"),
        (6, "missing value"),
        (7, "invalid numeric value"),
    ]


def test_missing_header_fails_the_job(service: IngestService) -> None:
    job_id = _run_upload(service, "device_id,timestamp,value\n1,2024-01-01T10:00:00,1\n")

    job = service.fetch_job(job_id)
    assert job.status is IngestStatus.failed
    assert job.accepted_rows == 0
    assert "CSV missing required columns: metric_id, type_id" in job.errors[0].reason
    assert service.store.scan(MEASUREMENTS) == []


def test_all_rows_invalid_fails_the_job(service: IngestService) -> None:
    job_id = _run_upload(service, HEADER + "1,1,1,bad,1\n")

    assert service.fetch_job(job_id).status is IngestStatus.failed


def test_empty_upload_is_rejected(service: IngestService) -> None:
    with pytest.raises(ValueError, match="empty"):
        service.enqueue_file(BackgroundTasks(), _create_upload_file(""))


def test_unknown_job_raises_key_error(service: IngestService) -> None:
    with pytest.raises(KeyError):
        service.fetch_job("missing")


def test_ingest_invalidates_measurement_cache(service: IngestService) -> None:
    service.cache.get_or_load(MEASUREMENTS, lambda: [])

    _run_upload(service, HEADER + "1,1,1,2024-01-01T10:00:00,12.5\n")

    assert MEASUREMENTS not in service.cache.cached_tables()


def test_skipped_rows_are_logged_with_context(service: IngestService, caplog) -> None:
    with caplog.at_level(logging.WARNING):
        job_id = _run_upload(
            service,
            HEADER + "1,1,1,2024-01-01T10:00:00,1\n1,1,1,2024-01-01T10:02:00,not-a-number\n",
            filename="invalid.csv",
        )

    records = [record for record in caplog.records if record.name == "services.ingest"]
    assert any("Skipping row" in r.getMessage() and "invalid numeric value" in r.getMessage() for r in records)
    assert any(getattr(record, "job_id", None) == job_id for record in records)
    assert any(getattr(record, "upload_name", None) == "invalid.csv" for record in records)


def test_parse_rows_accepts_case_insensitive_headers() -> None:
    stream = io.StringIO("Device_ID, Metric_ID ,TYPE_ID,Timestamp,Value\n4,5,6,2024-02-03T04:05:06,7\n")

    records, errors = parse_measurement_rows(stream)

    assert errors == []
    assert records == [
        MeasurementRecord(device_id=4, metric_id=5, type_id=6, value=7.0, timestamp=datetime(2024, 2, 3, 4, 5, 6))
    ]


def test_parse_timestamp_keeps_wall_clock_without_conversion() -> None:
    assert parse_timestamp("2024-01-01T10:00:00Z") == datetime(2024, 1, 1, 10)
    assert parse_timestamp("2024-01-01T10:00:00-05:00") == datetime(2024, 1, 1, 10)
    assert parse_timestamp("2024-01-01 10:00") == datetime(2024, 1, 1, 10)
    assert parse_timestamp("2024-01-01T10:00:00-05:00").tzinfo is None

    with pytest.raises(ValueError):
        parse_timestamp("yesterday")


def test_add_measurements_appends_and_counts(service: IngestService) -> None:
    record = MeasurementRecord(
        device_id=1,
        metric_id=1,
        type_id=1,
        value=3.0,
        timestamp=datetime(2024, 1, 1, 10, tzinfo=timezone.utc),
    )

    assert service.add_measurements([record, record]) == 2
    assert service.store.scan(MEASUREMENTS)[0].timestamp == datetime(2024, 1, 1, 10)  # type: ignore[attr-defined]


def test_store_failure_marks_the_job_failed(service: IngestService, monkeypatch, caplog) -> None:
    def broken_append(table, records):
        raise OSError("No space left on device")

    monkeypatch.setattr(service.store, "append", broken_append)

    with caplog.at_level(logging.ERROR, logger="services.ingest"):
        job_id = _run_upload(service, HEADER + "1,1,1,2024-01-01T10:00:00,12.5\n")

    job = service.fetch_job(job_id)
    assert job.status is IngestStatus.failed
    assert job.accepted_rows == 0
    assert [(error.row_number, error.reason) for error in job.errors] == [(1, "No space left on device")]
    assert job.processed_at is not None
    assert any(record.levelno == logging.ERROR and getattr(record, "job_id", None) == job_id for record in caplog.records)
