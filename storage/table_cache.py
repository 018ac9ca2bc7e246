from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from functools import lru_cache
from threading import Lock
from typing import Callable, Dict, Iterable, Optional, Tuple, TypeVar

from settings import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class _Entry:
    rows: Tuple[object, ...]
    expires_at: float


class TableCache:
    """Fixed-TTL snapshot cache keyed by table name.

    Cached values are tuples, so a snapshot handed to a caller never changes even
    if the table is refreshed or invalidated while it is in use.
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._generations: Dict[str, int] = {}
        self._epoch = 0
        self._lock = Lock()

    def get_or_load(self, table: str, loader: Callable[[], Iterable[T]]) -> Tuple[T, ...]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(table)
            if entry is not None and entry.expires_at > now:
                return entry.rows  # type: ignore[return-value]
            generation = self._generation(table)

        rows = tuple(loader())
        logger.debug("Loaded table snapshot", extra={"table": table, "row_count": len(rows)})
        if self.ttl_seconds > 0:
            with self._lock:
                # Rows loaded across an invalidate are returned but not stored.
                if self._generation(table) == generation:
                    self._entries[table] = _Entry(rows=rows, expires_at=now + self.ttl_seconds)
        return rows

    def invalidate(self, table: str) -> None:
        with self._lock:
            self._generations[table] = self._generations.get(table, 0) + 1
            removed = self._entries.pop(table, None)
        if removed is not None:
            logger.debug("Invalidated table snapshot", extra={"table": table})

    def clear(self) -> None:
        with self._lock:
            self._epoch += 1
            self._entries.clear()

    def _generation(self, table: str) -> Tuple[int, int]:
        return self._epoch, self._generations.get(table, 0)

    def cached_tables(self) -> list[str]:
        now = self._clock()
        with self._lock:
            return sorted(name for name, entry in self._entries.items() if entry.expires_at > now)


@lru_cache
def build_default_cache(ttl_seconds: Optional[float] = None) -> TableCache:
    settings = get_settings()
    ttl = settings.cache_ttl_seconds if ttl_seconds is None else ttl_seconds
    return TableCache(ttl_seconds=ttl)
