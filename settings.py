from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_STORE_PATH_ENV = "RECORD_STORE_PATH"
_CACHE_TTL_ENV = "TABLE_CACHE_TTL_SECONDS"
_WORKER_COUNT_ENV = "INGEST_WORKER_COUNT"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    record_store_path: Optional[str]
    cache_ttl_seconds: float
    ingest_workers: int
    log_level: str


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_worker_count(default: int) -> int:
    value = os.getenv(_WORKER_COUNT_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_cache_ttl(default: float) -> float:
    value = os.getenv(_CACHE_TTL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    # Zero disables caching; negative values are treated as unset.
    return parsed if parsed >= 0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        record_store_path=_read_optional_env(_STORE_PATH_ENV, "./tmp/records.json"),
        cache_ttl_seconds=_read_cache_ttl(30.0),
        ingest_workers=_read_worker_count(4),
        log_level=_read_log_level("INFO"),
    )
