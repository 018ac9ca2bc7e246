from __future__ import annotations

from typing import Iterable

from datastore.record_store import build_default_store
from services.dashboard import build_default_dashboard
from services.ingest import build_default_ingest_service
from settings import get_settings
from storage.table_cache import build_default_cache


def _clear_caches(caches: Iterable) -> None:
    for cache in caches:
        cache.cache_clear()


CACHES = (
    get_settings,
    build_default_store,
    build_default_cache,
    build_default_ingest_service,
    build_default_dashboard,
)


def test_environment_overrides_apply(monkeypatch, tmp_path) -> None:
    store_path = tmp_path / "records.json"

    monkeypatch.setenv("RECORD_STORE_PATH", str(store_path))
    monkeypatch.setenv("TABLE_CACHE_TTL_SECONDS", "5")
    monkeypatch.setenv("INGEST_WORKER_COUNT", "2")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    _clear_caches(CACHES)

    store = build_default_store()
    cache = build_default_cache()
    service = build_default_ingest_service()
    dashboard = build_default_dashboard()

    try:
        assert store.persistence_path == store_path
        assert cache.ttl_seconds == 5.0
        assert service.executor._max_workers == 2
        assert service.store is store
        assert dashboard.store is store
        assert dashboard.cache is cache
        assert get_settings().log_level == "DEBUG"
    finally:
        service.shutdown()
        _clear_caches(CACHES)


def test_invalid_and_blank_values_fall_back(monkeypatch) -> None:
    monkeypatch.setenv("RECORD_STORE_PATH", "   ")
    monkeypatch.setenv("TABLE_CACHE_TTL_SECONDS", "-1")
    monkeypatch.setenv("INGEST_WORKER_COUNT", "many")
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    _clear_caches(CACHES)

    try:
        settings = get_settings()
        assert settings.record_store_path is None
        assert settings.cache_ttl_seconds == 30.0
        assert settings.ingest_workers == 4
        assert settings.log_level == "INFO"
        assert build_default_store().persistence_path is None
    finally:
        _clear_caches(CACHES)


def test_zero_ttl_is_kept(monkeypatch) -> None:
    monkeypatch.setenv("TABLE_CACHE_TTL_SECONDS", "0")
    _clear_caches(CACHES)

    try:
        assert build_default_cache().ttl_seconds == 0.0
    finally:
        _clear_caches(CACHES)
