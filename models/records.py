"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Hashable, Optional


@dataclass(frozen=True, slots=True)
class SensorKey:
    """Composite identity of a monitored channel."""

    device_id: int
    metric_id: int
    type_id: int

    def __str__(self) -> str:
        return f"{self.device_id}-{self.metric_id}-{self.type_id}"


@dataclass(frozen=True, slots=True)
class Measurement:
    """A single timestamped reading for one sensor."""

    sensor_key: SensorKey
    value: float
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class Threshold:
    """Inclusive bounds configured for a sensor."""

    sensor_key: SensorKey
    minimum: float
    maximum: float
    criticality_id: int
    location_id: Optional[int] = None


@dataclass(frozen=True, slots=True)
class Criticality:
    criticality_id: int
    label: str


@dataclass(frozen=True, slots=True)
class SensorType:
    type_id: int
    name: str


class SensorState(str, Enum):
    """Outcome of classifying a value against its threshold."""

    normal = "normal"
    below_threshold = "below_threshold"
    above_threshold = "above_threshold"
    unclassifiable = "unclassifiable"

    @property
    def is_alerting(self) -> bool:
        return self in (SensorState.below_threshold, SensorState.above_threshold)


@dataclass(frozen=True, slots=True)
class AlertState:
    """Current state of one sensor, recomputed on every evaluation pass."""

    sensor_key: SensorKey
    current_value: float
    state: SensorState
    threshold: Threshold
    criticality_label: str
    observed_at: datetime

    @property
    def is_alerting(self) -> bool:
        return self.state.is_alerting


@dataclass(frozen=True, slots=True)
class Bucket:
    """One point of a downsampled series."""

    key: str
    mean_value: float
    sample_count: int
    series_id: Hashable
    first_timestamp: datetime


@dataclass(frozen=True, slots=True)
class CriticalityCounts:
    total: int = 0
    alert_count: int = 0


@dataclass(frozen=True, slots=True)
class CriticalitySummary:
    """Per-criticality totals consumed by the dashboard summary cards."""

    criticality_label: str
    total_sensors: int
    alerting_sensors: int
    normal_sensors: int
    trend: str = "stable"
