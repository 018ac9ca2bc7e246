"""Current-state evaluation of sensors against their thresholds."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Mapping, Optional, Tuple

from models.records import (
    AlertState,
    Criticality,
    CriticalityCounts,
    Measurement,
    SensorKey,
    Threshold,
)
from services.classifier import classify
from services.thresholds import ThresholdIndex, build_criticality_index, resolve_label

logger = logging.getLogger(__name__)


def latest_measurements(measurements: Iterable[Measurement]) -> Dict[SensorKey, Measurement]:
    """Pick the most recent measurement per sensor.

    Ties on timestamp resolve to the measurement that appears last in the input.
    """
    latest: Dict[SensorKey, Measurement] = {}
    for measurement in measurements:
        current = latest.get(measurement.sensor_key)
        if current is None or measurement.timestamp >= current.timestamp:
            latest[measurement.sensor_key] = measurement
    return latest


def aggregate(
    measurements: Iterable[Measurement],
    threshold_index: ThresholdIndex,
    criticality_index: Mapping[int, str],
) -> Tuple[AlertState, ...]:
    """Build one ``AlertState`` per thresholded sensor that has data."""
    latest = latest_measurements(measurements)
    states = []
    skipped = 0

    for sensor_key, threshold in threshold_index.items():
        measurement = latest.get(sensor_key)
        if measurement is None:
            skipped += 1
            continue

        states.append(
            AlertState(
                sensor_key=sensor_key,
                current_value=measurement.value,
                state=classify(measurement.value, threshold),
                threshold=threshold,
                criticality_label=resolve_label(criticality_index, threshold.criticality_id),
                observed_at=measurement.timestamp,
            )
        )

    logger.debug(
        "Evaluated sensor states (%d without data)",
        skipped,
        extra={"state_count": len(states)},
    )
    return tuple(states)


def evaluate(
    measurements: Iterable[Measurement],
    thresholds: Iterable[Threshold],
    criticalities: Iterable[Criticality],
) -> Tuple[AlertState, ...]:
    """Index the reference data and evaluate; conflicts abort the whole pass."""
    threshold_index = ThresholdIndex.build(thresholds)
    criticality_index = build_criticality_index(criticalities)
    return aggregate(measurements, threshold_index, criticality_index)


def group_by_criticality(states: Iterable[AlertState]) -> Dict[str, CriticalityCounts]:
    grouped: Dict[str, CriticalityCounts] = {}
    for state in states:
        counts = grouped.get(state.criticality_label, CriticalityCounts())
        grouped[state.criticality_label] = CriticalityCounts(
            total=counts.total + 1,
            alert_count=counts.alert_count + (1 if state.is_alerting else 0),
        )
    return grouped


def filter_states(
    states: Iterable[AlertState],
    criticality: Optional[str] = None,
    location_id: Optional[int] = None,
) -> Tuple[AlertState, ...]:
    """Narrow an evaluated snapshot by criticality label and/or location."""
    return tuple(
        state
        for state in states
        if (criticality is None or state.criticality_label == criticality)
        and (location_id is None or state.threshold.location_id == location_id)
    )
