from __future__ import annotations
import json
import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, List, Optional, Type

from pydantic import BaseModel

from app.schemas import (
    CriticalityRecord,
    IngestJob,
    MeasurementRecord,
    SensorTypeRecord,
    ThresholdRecord,
)
from settings import get_settings

logger = logging.getLogger(__name__)

MEASUREMENTS = "measurements"
THRESHOLDS = "thresholds"
CRITICALITIES = "criticalities"
SENSOR_TYPES = "sensor_types"

TABLE_MODELS: Dict[str, Type[BaseModel]] = {
    MEASUREMENTS: MeasurementRecord,
    THRESHOLDS: ThresholdRecord,
    CRITICALITIES: CriticalityRecord,
    SENSOR_TYPES: SensorTypeRecord,
}

_JOBS_KEY = "ingest_jobs"


class RecordStore:
    """In-memory stand-in for the managed database, optionally mirrored to JSON."""

    def __init__(self, name: str = "records", persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._tables: Dict[str, List[BaseModel]] = {table: [] for table in TABLE_MODELS}
        self._jobs: Dict[str, IngestJob] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def append(self, table: str, records: Iterable[BaseModel]) -> int:
        rows = self._checked(table, records)
        with self._lock:
            self._tables[table].extend(row.model_copy(deep=True) for row in rows)
            self._persist()
        return len(rows)

    def replace(self, table: str, records: Iterable[BaseModel]) -> int:
        rows = self._checked(table, records)
        with self._lock:
            self._tables[table] = [row.model_copy(deep=True) for row in rows]
            self._persist()
        return len(rows)

    def scan(self, table: str) -> list[BaseModel]:
        """Return deep copies of every row of ``table`` in insertion order."""

        self._require_table(table)
        with self._lock:
            return [row.model_copy(deep=True) for row in self._tables[table]]

    def put_job(self, job: IngestJob) -> None:
        with self._lock:
            self._jobs[job.job_id] = job.model_copy(deep=True)
            self._persist()

    def get_job(self, job_id: str) -> Optional[IngestJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            return job.model_copy(deep=True)

    def _checked(self, table: str, records: Iterable[BaseModel]) -> list[BaseModel]:
        model = self._require_table(table)
        rows = list(records)
        for row in rows:
            if not isinstance(row, model):
                raise TypeError(
                    f"Table {table!r} stores {model.__name__}, got {type(row).__name__}."
                )
        return rows

    @staticmethod
    def _require_table(table: str) -> Type[BaseModel]:
        model = TABLE_MODELS.get(table)
        if model is None:
            raise KeyError(f"Unknown table {table!r}.")
        return model

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload: Dict[str, object] = {
            table: [row.model_dump(mode="json") for row in rows]
            for table, rows in self._tables.items()
        }
        payload[_JOBS_KEY] = {
            job_id: job.model_dump(mode="json") for job_id, job in self._jobs.items()
        }
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            logger.warning(
                "Ignoring unreadable record store file",
                extra={"reason": str(self.persistence_path)},
            )
            data = {}

        for table, model in TABLE_MODELS.items():
            self._tables[table] = [model.model_validate(row) for row in data.get(table, [])]
        for job_id, payload in data.get(_JOBS_KEY, {}).items():
            self._jobs[job_id] = IngestJob.model_validate(payload)


@lru_cache
def build_default_store(
    path: Optional[str] = None,
) -> RecordStore:
    settings = get_settings()
    store_path = settings.record_store_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return RecordStore(persistence_path=persistence)
