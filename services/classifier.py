"""Classification of a single value against its threshold."""

from __future__ import annotations

import math
from numbers import Real

from models.records import SensorState, Threshold
from services.errors import ConfigurationConflict


def is_finite_number(value: object) -> bool:
    """Return True for real, finite numbers (booleans excluded)."""
    if isinstance(value, bool) or not isinstance(value, Real):
        return False
    return math.isfinite(value)


def classify(value: object, threshold: Threshold) -> SensorState:
    """Classify ``value`` against the inclusive ``[minimum, maximum]`` bounds.

    Non-finite bounds and inverted bounds raise :class:`ConfigurationConflict`;
    inverted bounds are never swapped.
    Values that are not finite numbers are ``unclassifiable`` and never in range.
    """
    for name in ("minimum", "maximum"):
        if not is_finite_number(getattr(threshold, name)):
            raise ConfigurationConflict(
                f"Threshold for sensor {threshold.sensor_key} has an invalid {name}.",
                sensor_keys=[threshold.sensor_key],
            )

    if threshold.minimum > threshold.maximum:
        raise ConfigurationConflict(
            f"Threshold for sensor {threshold.sensor_key} has minimum "
            f"{threshold.minimum} above maximum {threshold.maximum}.",
            sensor_keys=[threshold.sensor_key],
        )

    if not is_finite_number(value):
        return SensorState.unclassifiable

    if value < threshold.minimum:
        return SensorState.below_threshold
    if value > threshold.maximum:
        return SensorState.above_threshold
    return SensorState.normal
