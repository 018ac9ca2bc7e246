"""Lookup structures built from threshold and criticality reference records."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Iterator, Mapping, Optional

from models.records import Criticality, SensorKey, Threshold
from services.classifier import is_finite_number
from services.errors import ConfigurationConflict

logger = logging.getLogger(__name__)

UNKNOWN_LABEL = "Unknown"


class ThresholdIndex(Mapping[SensorKey, Threshold]):
    """Read-only ``SensorKey -> Threshold`` mapping, in input order."""

    def __init__(self, thresholds: Mapping[SensorKey, Threshold]) -> None:
        self._thresholds: Dict[SensorKey, Threshold] = dict(thresholds)

    @classmethod
    def build(cls, thresholds: Iterable[Threshold]) -> "ThresholdIndex":
        """Validate and index thresholds, failing on the first conflict."""
        indexed: Dict[SensorKey, Threshold] = {}
        for threshold in thresholds:
            _validate(threshold)
            key = threshold.sensor_key
            existing = indexed.get(key)
            if existing is not None:
                logger.error(
                    "Duplicate threshold configuration",
                    extra={"sensor_key": str(key), "reason": "duplicate"},
                )
                raise ConfigurationConflict(
                    f"Sensor {key} has more than one active threshold "
                    f"(criticality {existing.criticality_id} and {threshold.criticality_id}).",
                    sensor_keys=[key],
                )
            indexed[key] = threshold
        return cls(indexed)

    def __getitem__(self, key: SensorKey) -> Threshold:
        return self._thresholds[key]

    def __iter__(self) -> Iterator[SensorKey]:
        return iter(self._thresholds)

    def __len__(self) -> int:
        return len(self._thresholds)


def _validate(threshold: Threshold) -> None:
    key = getattr(threshold, "sensor_key", None)
    if not isinstance(key, SensorKey):
        raise ConfigurationConflict("Threshold record is missing its sensor key.")

    for name in ("minimum", "maximum"):
        if not is_finite_number(getattr(threshold, name)):
            logger.error(
                "Threshold bound is not a finite number",
                extra={"sensor_key": str(key), "reason": f"invalid {name}"},
            )
            raise ConfigurationConflict(
                f"Threshold for sensor {key} has an invalid {name}.",
                sensor_keys=[key],
            )

    if threshold.minimum > threshold.maximum:
        logger.error(
            "Inverted threshold bounds",
            extra={"sensor_key": str(key), "reason": "minimum above maximum"},
        )
        raise ConfigurationConflict(
            f"Threshold for sensor {key} has minimum {threshold.minimum} "
            f"above maximum {threshold.maximum}.",
            sensor_keys=[key],
        )


def build_criticality_index(criticalities: Iterable[Criticality]) -> Dict[int, str]:
    return {item.criticality_id: item.label for item in criticalities}


def resolve_label(index: Mapping[int, str], criticality_id: Optional[int]) -> str:
    if criticality_id is None:
        return UNKNOWN_LABEL
    return index.get(criticality_id) or UNKNOWN_LABEL
