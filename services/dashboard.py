"""Read side of the dashboard: snapshots from the store fed through the engine."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel

from app.schemas import CriticalityRecord, SensorTypeRecord, ThresholdRecord
from datastore.record_store import (
    CRITICALITIES,
    MEASUREMENTS,
    SENSOR_TYPES,
    THRESHOLDS,
    RecordStore,
    build_default_store,
)
from models.records import (
    AlertState,
    Bucket,
    Criticality,
    CriticalitySummary,
    Measurement,
    SensorType,
    Threshold,
)
from services import alert_state, bucketer, summary
from services.bucketer import ChartRow, Granularity, Window
from storage.table_cache import TableCache, build_default_cache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeriesResult:
    device_id: int
    metric_id: int
    granularity: Granularity
    buckets: Tuple[Bucket, ...]
    rows: Tuple[ChartRow, ...]
    labels: Dict[int, str]


class DashboardService:
    """Evaluates alert state, summaries and chart series from cached snapshots."""

    def __init__(self, store: RecordStore, cache: TableCache) -> None:
        self.store = store
        self.cache = cache

    def measurements(self) -> Tuple[Measurement, ...]:
        return self._snapshot(MEASUREMENTS)

    def thresholds(self) -> Tuple[Threshold, ...]:
        return self._snapshot(THRESHOLDS)

    def criticalities(self) -> Tuple[Criticality, ...]:
        return self._snapshot(CRITICALITIES)

    def sensor_types(self) -> Tuple[SensorType, ...]:
        return self._snapshot(SENSOR_TYPES)

    def replace_thresholds(self, records: Iterable[ThresholdRecord]) -> int:
        return self._replace(THRESHOLDS, records)

    def replace_criticalities(self, records: Iterable[CriticalityRecord]) -> int:
        return self._replace(CRITICALITIES, records)

    def replace_sensor_types(self, records: Iterable[SensorTypeRecord]) -> int:
        return self._replace(SENSOR_TYPES, records)

    def current_states(
        self,
        criticality: Optional[str] = None,
        location_id: Optional[int] = None,
    ) -> Tuple[AlertState, ...]:
        """Evaluate every thresholded sensor; raises ``ConfigurationConflict``."""
        states = alert_state.evaluate(
            self.measurements(), self.thresholds(), self.criticalities()
        )
        return alert_state.filter_states(states, criticality=criticality, location_id=location_id)

    def criticality_summary(self) -> List[CriticalitySummary]:
        grouped = alert_state.group_by_criticality(self.current_states())
        rows = summary.summarize(grouped)
        for row in rows:
            if row.alerting_sensors:
                logger.info(
                    "%d of %d sensors alerting",
                    row.alerting_sensors,
                    row.total_sensors,
                    extra={"criticality": row.criticality_label},
                )
        return rows

    def series(
        self,
        device_id: int,
        metric_id: int,
        window: Optional[Window] = None,
    ) -> SeriesResult:
        """Bucket one device/metric history with one series per sensor type."""
        scoped = [
            item
            for item in self.measurements()
            if item.sensor_key.device_id == device_id and item.sensor_key.metric_id == metric_id
        ]
        buckets = bucketer.bucket(scoped, window, lambda item: item.sensor_key.type_id)
        type_names = {item.type_id: item.name for item in self.sensor_types()}
        labels = bucketer.series_labels(
            dict.fromkeys(item.series_id for item in buckets), type_names
        )
        return SeriesResult(
            device_id=device_id,
            metric_id=metric_id,
            granularity=bucketer.resolve_granularity(window),
            buckets=tuple(buckets),
            rows=tuple(bucketer.chart_rows(buckets)),
            labels=labels,
        )

    def _snapshot(self, table: str) -> tuple:
        def load() -> List[object]:
            return [row.to_domain() for row in self.store.scan(table)]  # type: ignore[attr-defined]

        return self.cache.get_or_load(table, load)

    def _replace(self, table: str, records: Iterable[BaseModel]) -> int:
        count = self.store.replace(table, records)
        self.cache.invalidate(table)
        logger.info("Replaced reference table", extra={"table": table, "row_count": count})
        return count


@lru_cache
def build_default_dashboard() -> DashboardService:
    return DashboardService(store=build_default_store(), cache=build_default_cache())
