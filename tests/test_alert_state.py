"""Tests for current-state evaluation and criticality grouping."""

from __future__ import annotations

import math
from datetime import datetime

import pytest

from models.records import (
    Criticality,
    CriticalityCounts,
    Measurement,
    SensorKey,
    SensorState,
    Threshold,
)
from services.alert_state import (
    aggregate,
    evaluate,
    filter_states,
    group_by_criticality,
    latest_measurements,
)
from services.errors import ConfigurationConflict
from services.thresholds import ThresholdIndex

CRITICALITIES = [Criticality(1, "Critical"), Criticality(2, "Low")]


def _key(device: int) -> SensorKey:
    return SensorKey(device_id=device, metric_id=1, type_id=1)


def _measurement(device: int, value: float, hour: int, minute: int = 0) -> Measurement:
    return Measurement(sensor_key=_key(device), value=value, timestamp=datetime(2024, 1, 1, hour, minute))


def _threshold(device: int, criticality_id: int = 1, location_id: int | None = None) -> Threshold:
    return Threshold(
        sensor_key=_key(device),
        minimum=10,
        maximum=20,
        criticality_id=criticality_id,
        location_id=location_id,
    )


def test_latest_measurement_wins_and_ties_keep_the_last_input() -> None:
    older = _measurement(1, 11, 8)
    newest = _measurement(1, 12, 9)
    tie = _measurement(1, 13, 9)

    latest = latest_measurements([older, newest, tie])

    assert latest[_key(1)] is tie


def test_aggregate_classifies_latest_value_with_criticality_label() -> None:
    measurements = [_measurement(1, 15, 8), _measurement(1, 25, 9), _measurement(2, 5, 9)]
    index = ThresholdIndex.build([_threshold(1), _threshold(2, criticality_id=2)])

    states = aggregate(measurements, index, {1: "Critical", 2: "Low"})

    assert [state.sensor_key for state in states] == [_key(1), _key(2)]
    assert states[0].state is SensorState.above_threshold
    assert states[0].current_value == 25
    assert states[0].observed_at == datetime(2024, 1, 1, 9)
    assert states[0].criticality_label == "Critical"
    assert states[1].state is SensorState.below_threshold
    assert states[1].criticality_label == "Low"


def test_sensor_without_measurements_is_omitted() -> None:
    index = ThresholdIndex.build([_threshold(1), _threshold(2)])

    states = aggregate([_measurement(1, 15, 8)], index, {1: "Critical"})
    grouped = group_by_criticality(states)

    assert [state.sensor_key for state in states] == [_key(1)]
    assert grouped == {"Critical": CriticalityCounts(total=1, alert_count=0)}


def test_measurements_without_threshold_are_ignored() -> None:
    index = ThresholdIndex.build([_threshold(1)])

    states = aggregate([_measurement(1, 15, 8), _measurement(7, 99, 8)], index, {})

    assert len(states) == 1


def test_unknown_criticality_is_kept_with_sentinel_label() -> None:
    index = ThresholdIndex.build([_threshold(1, criticality_id=42)])

    states = aggregate([_measurement(1, 15, 8)], index, {1: "Critical"})

    assert states[0].criticality_label == "Unknown"


def test_nan_reading_is_marked_not_raised() -> None:
    index = ThresholdIndex.build([_threshold(1), _threshold(2)])

    states = aggregate([_measurement(1, math.nan, 8), _measurement(2, 30, 8)], index, {1: "Critical"})
    grouped = group_by_criticality(states)

    assert states[0].state is SensorState.unclassifiable
    assert states[1].state is SensorState.above_threshold
    assert grouped["Critical"] == CriticalityCounts(total=2, alert_count=1)


def test_group_counts_alerts_per_criticality() -> None:
    measurements = [
        _measurement(1, 15, 8),
        _measurement(2, 5, 8),
        _measurement(3, 25, 8),
        _measurement(4, 10, 8),
        _measurement(5, 30, 8),
    ]
    thresholds = [_threshold(1), _threshold(2), _threshold(3), _threshold(4), _threshold(5, 2)]

    grouped = group_by_criticality(evaluate(measurements, thresholds, CRITICALITIES))

    assert grouped == {
        "Critical": CriticalityCounts(total=4, alert_count=2),
        "Low": CriticalityCounts(total=1, alert_count=1),
    }


def test_conflicting_thresholds_abort_the_whole_pass() -> None:
    thresholds = [_threshold(1), _threshold(2), _threshold(2, criticality_id=2)]

    with pytest.raises(ConfigurationConflict):
        evaluate([_measurement(1, 15, 8), _measurement(2, 15, 8)], thresholds, CRITICALITIES)


def test_states_are_immutable_snapshots() -> None:
    states = evaluate([_measurement(1, 15, 8)], [_threshold(1)], CRITICALITIES)

    with pytest.raises(AttributeError):
        states[0].current_value = 0  # type: ignore[misc]


def test_filter_states_by_criticality_and_location() -> None:
    thresholds = [_threshold(1, 1, location_id=10), _threshold(2, 2, location_id=10), _threshold(3, 1, location_id=20)]
    measurements = [_measurement(device, 15, 8) for device in (1, 2, 3)]
    states = evaluate(measurements, thresholds, CRITICALITIES)

    assert [s.sensor_key.device_id for s in filter_states(states, criticality="Critical")] == [1, 3]
    assert [s.sensor_key.device_id for s in filter_states(states, location_id=10)] == [1, 2]
    assert [
        s.sensor_key.device_id for s in filter_states(states, criticality="Critical", location_id=20)
    ] == [3]
    assert filter_states(states) == states
