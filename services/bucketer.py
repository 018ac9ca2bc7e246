"""Downsampling of measurement history into chart-ready time buckets."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Callable, Dict, Hashable, Iterable, List, Optional, Sequence, Tuple

from models.records import Bucket, Measurement
from services.classifier import is_finite_number

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK = timedelta(hours=3)
END_OF_DAY = time(23, 59, 59)

SeriesKeyFn = Callable[[Measurement], Hashable]


class Granularity(str, Enum):
    minute = "minute"
    day = "day"


@dataclass(frozen=True)
class Window:
    """Inclusive calendar-date range. ``end`` covers its whole day."""

    start: date
    end: date

    def __post_init__(self) -> None:
        # Datetimes are accepted but only their calendar date counts.
        for name in ("start", "end"):
            value = getattr(self, name)
            if isinstance(value, datetime):
                object.__setattr__(self, name, value.date())
        if self.end < self.start:
            raise ValueError(f"Window end {self.end} is before start {self.start}.")

    @property
    def days_span(self) -> float:
        return (self.end - self.start) / timedelta(days=1)

    @property
    def lower(self) -> datetime:
        return datetime.combine(self.start, time.min)

    @property
    def upper(self) -> datetime:
        return datetime.combine(self.end, END_OF_DAY)

    def contains(self, moment: datetime) -> bool:
        return self.lower <= _wall_clock(moment) <= self.upper


def resolve_granularity(window: Optional[Window]) -> Granularity:
    if window is not None and window.days_span > 1:
        return Granularity.day
    return Granularity.minute


def bucket_key(moment: datetime, granularity: Granularity) -> str:
    """Format ``HH:MM`` or ``DD/MM`` from the timestamp's own wall clock."""
    if granularity is Granularity.day:
        return f"{moment.day:02d}/{moment.month:02d}"
    return f"{moment.hour:02d}:{moment.minute:02d}"


@dataclass(slots=True)
class RunningBucket:
    """Bucket accumulator holding only a running mean and a count."""

    key: str
    series_id: Hashable
    first_timestamp: datetime
    mean: float = 0.0
    count: int = 0

    def merge(self, value: float, timestamp: Optional[datetime] = None) -> None:
        self.mean = (self.mean * self.count + value) / (self.count + 1)
        self.count += 1
        if timestamp is not None and timestamp < self.first_timestamp:
            self.first_timestamp = timestamp

    def freeze(self) -> Bucket:
        return Bucket(
            key=self.key,
            mean_value=self.mean,
            sample_count=self.count,
            series_id=self.series_id,
            first_timestamp=self.first_timestamp,
        )


@dataclass(frozen=True)
class ChartRow:
    """One x-axis point carrying a value per active series (``None`` when absent)."""

    key: str
    timestamp: datetime
    values: Dict[Hashable, Optional[float]] = field(default_factory=dict)


def _wall_clock(moment: datetime) -> datetime:
    return moment.replace(tzinfo=None)


def select_measurements(
    measurements: Sequence[Measurement],
    window: Optional[Window],
) -> List[Measurement]:
    """Apply the explicit window, or the rolling lookback from the latest sample."""
    if not measurements:
        return []
    if window is not None:
        return [item for item in measurements if window.contains(item.timestamp)]

    latest = max(_wall_clock(item.timestamp) for item in measurements)
    cutoff = latest - DEFAULT_LOOKBACK
    return [item for item in measurements if _wall_clock(item.timestamp) >= cutoff]


def bucket(
    measurements: Iterable[Measurement],
    window: Optional[Window] = None,
    series_key_fn: SeriesKeyFn = lambda item: item.sensor_key.type_id,
) -> List[Bucket]:
    """Group measurements into per-series buckets ordered by first sample time."""
    selected = select_measurements(list(measurements), window)
    granularity = resolve_granularity(window)

    running: Dict[Tuple[Hashable, str], RunningBucket] = {}
    series_order: Dict[Hashable, int] = {}
    skipped = 0

    for item in selected:
        if not is_finite_number(item.value):
            skipped += 1
            continue
        moment = _wall_clock(item.timestamp)
        series_id = series_key_fn(item)
        series_order.setdefault(series_id, len(series_order))
        key = bucket_key(moment, granularity)

        entry = running.get((series_id, key))
        if entry is None:
            entry = RunningBucket(key=key, series_id=series_id, first_timestamp=moment)
            running[(series_id, key)] = entry
        entry.merge(float(item.value), moment)

    if skipped:
        logger.warning(
            "Skipped non-finite samples while bucketing",
            extra={"reason": "non-finite value", "error_count": skipped},
        )

    buckets = sorted(
        (entry.freeze() for entry in running.values()),
        key=lambda result: (result.first_timestamp, series_order[result.series_id]),
    )
    logger.debug(
        "Bucketed %d samples at %s granularity",
        len(selected) - skipped,
        granularity.value,
        extra={"bucket_count": len(buckets)},
    )
    return buckets


def chart_rows(buckets: Iterable[Bucket]) -> List[ChartRow]:
    """Pivot buckets into rows keyed by bucket key with one column per series."""
    series_ids: List[Hashable] = []
    by_key: Dict[str, Dict[Hashable, Bucket]] = {}
    earliest: Dict[str, datetime] = {}

    for item in buckets:
        if item.series_id not in series_ids:
            series_ids.append(item.series_id)
        by_key.setdefault(item.key, {})[item.series_id] = item
        seen = earliest.get(item.key)
        if seen is None or item.first_timestamp < seen:
            earliest[item.key] = item.first_timestamp

    rows = []
    for key in sorted(by_key, key=lambda candidate: earliest[candidate]):
        present = by_key[key]
        values = {
            series_id: (present[series_id].mean_value if series_id in present else None)
            for series_id in series_ids
        }
        rows.append(ChartRow(key=key, timestamp=earliest[key], values=values))
    return rows


def series_label(type_id: int, type_names: Dict[int, str]) -> str:
    return type_names.get(type_id) or f"Type {type_id}"


def series_labels(series_ids: Iterable[int], type_names: Dict[int, str]) -> Dict[int, str]:
    """Label each series, suffixing the type id where two labels would collide."""
    labels = {series_id: series_label(series_id, type_names) for series_id in series_ids}
    counts: Dict[str, int] = {}
    for label in labels.values():
        counts[label] = counts.get(label, 0) + 1
    return {
        series_id: (f"{label} ({series_id})" if counts[label] > 1 else label)
        for series_id, label in labels.items()
    }
