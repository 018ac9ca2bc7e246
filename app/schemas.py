"""Pydantic schemas for the HTTP API layer and the record store."""

from __future__ import annotations

import math
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from models.records import (
    AlertState,
    Bucket,
    Criticality,
    CriticalitySummary,
    Measurement,
    SensorKey,
    SensorType,
    Threshold,
)


def to_sensor_local(value: datetime) -> datetime:
    """Keep the wall-clock reading as encoded, dropping any offset without conversion."""
    return value.replace(tzinfo=None)


class IngestStatus(str, Enum):
    """Lifecycle states of a measurement file ingest job."""

    uploaded = "uploaded"
    processing = "processing"
    processed = "processed"
    partial = "partial"
    failed = "failed"


class FileUploadResponse(BaseModel):
    """Immediate response payload after accepting a measurement file."""

    job_id: str = Field(..., description="Generated identifier for the ingest job.")


class IngestError(BaseModel):
    """Details about a row that failed validation or parsing."""

    row_number: int = Field(..., ge=1)
    reason: str


class IngestJob(BaseModel):
    """Full record of a measurement file ingest."""

    job_id: str
    status: IngestStatus
    uploaded_at: datetime
    processed_at: Optional[datetime] = None
    processing_ms: Optional[int] = Field(
        default=None, description="Duration in milliseconds from start to finish."
    )
    accepted_rows: int = Field(default=0, ge=0)
    errors: List[IngestError] = Field(default_factory=list)


class MeasurementRecord(BaseModel):
    device_id: int
    metric_id: int
    type_id: int
    value: float
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _sensor_local(cls, value: datetime) -> datetime:
        return to_sensor_local(value)

    def to_domain(self) -> Measurement:
        return Measurement(
            sensor_key=SensorKey(self.device_id, self.metric_id, self.type_id),
            value=self.value,
            timestamp=self.timestamp,
        )


class ThresholdRecord(BaseModel):
    """Threshold as configured; bound consistency is checked by the engine."""

    device_id: int
    metric_id: int
    type_id: int
    minimum: float
    maximum: float
    criticality_id: int
    location_id: Optional[int] = None

    def to_domain(self) -> Threshold:
        return Threshold(
            sensor_key=SensorKey(self.device_id, self.metric_id, self.type_id),
            minimum=self.minimum,
            maximum=self.maximum,
            criticality_id=self.criticality_id,
            location_id=self.location_id,
        )


class CriticalityRecord(BaseModel):
    criticality_id: int
    label: str = Field(..., min_length=1)

    def to_domain(self) -> Criticality:
        return Criticality(criticality_id=self.criticality_id, label=self.label)


class SensorTypeRecord(BaseModel):
    type_id: int
    name: str = Field(..., min_length=1)

    def to_domain(self) -> SensorType:
        return SensorType(type_id=self.type_id, name=self.name)


class WriteResponse(BaseModel):
    table: str
    row_count: int = Field(..., ge=0)


class AlertStateOut(BaseModel):
    device_id: int
    metric_id: int
    type_id: int
    location_id: Optional[int] = None
    current_value: Optional[float] = Field(
        default=None, description="Null when the reading is not a finite number."
    )
    state: str
    minimum: float
    maximum: float
    criticality: str
    observed_at: datetime

    @classmethod
    def from_domain(cls, state: AlertState) -> "AlertStateOut":
        value = state.current_value
        finite = isinstance(value, (int, float)) and math.isfinite(value)
        return cls(
            device_id=state.sensor_key.device_id,
            metric_id=state.sensor_key.metric_id,
            type_id=state.sensor_key.type_id,
            location_id=state.threshold.location_id,
            current_value=value if finite else None,
            state=state.state.value,
            minimum=state.threshold.minimum,
            maximum=state.threshold.maximum,
            criticality=state.criticality_label,
            observed_at=state.observed_at,
        )


class CriticalitySummaryOut(BaseModel):
    criticality: str
    total_sensors: int = Field(..., ge=0)
    alerting_sensors: int = Field(..., ge=0)
    normal_sensors: int = Field(..., ge=0)
    trend: str

    @classmethod
    def from_domain(cls, row: CriticalitySummary) -> "CriticalitySummaryOut":
        return cls(
            criticality=row.criticality_label,
            total_sensors=row.total_sensors,
            alerting_sensors=row.alerting_sensors,
            normal_sensors=row.normal_sensors,
            trend=row.trend,
        )


class BucketOut(BaseModel):
    key: str
    series_id: int
    series: str
    mean_value: float
    sample_count: int = Field(..., ge=1)
    first_timestamp: datetime

    @classmethod
    def from_domain(cls, bucket: Bucket, label: str) -> "BucketOut":
        return cls(
            key=bucket.key,
            series_id=bucket.series_id,
            series=label,
            mean_value=bucket.mean_value,
            sample_count=bucket.sample_count,
            first_timestamp=bucket.first_timestamp,
        )


class ChartRowOut(BaseModel):
    """One chart point; series without a sample at this key are null, not zero."""

    time: str
    values: Dict[str, Optional[float]] = Field(default_factory=dict)


class SeriesResponse(BaseModel):
    device_id: int
    metric_id: int
    granularity: str
    buckets: List[BucketOut] = Field(default_factory=list)
    rows: List[ChartRowOut] = Field(default_factory=list)
