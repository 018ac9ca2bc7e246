"""Error taxonomy for the alert engine."""

from __future__ import annotations

from typing import Iterable, Tuple

from models.records import SensorKey


class AlertEngineError(Exception):
    """Base class for errors raised by the evaluation core."""


class ConfigurationConflict(AlertEngineError):
    """Threshold configuration that cannot be evaluated without guessing."""

    def __init__(self, message: str, sensor_keys: Iterable[SensorKey] = ()) -> None:
        super().__init__(message)
        self.sensor_keys: Tuple[SensorKey, ...] = tuple(sensor_keys)
