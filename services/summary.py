"""Per-criticality rollups for the dashboard summary cards."""

from __future__ import annotations

from typing import List, Mapping

from models.records import CriticalityCounts, CriticalitySummary


def summarize(grouped: Mapping[str, CriticalityCounts]) -> List[CriticalitySummary]:
    rows: List[CriticalitySummary] = []
    for label, counts in grouped.items():
        if counts.total < 0 or counts.alert_count < 0:
            raise ValueError(f"Counts for criticality {label!r} must not be negative.")
        if counts.alert_count > counts.total:
            raise ValueError(
                f"Criticality {label!r} reports {counts.alert_count} alerting sensors "
                f"out of {counts.total}."
            )
        rows.append(
            CriticalitySummary(
                criticality_label=label,
                total_sensors=counts.total,
                alerting_sensors=counts.alert_count,
                normal_sensors=counts.total - counts.alert_count,
            )
        )
    return rows
