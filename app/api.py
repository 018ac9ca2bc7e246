"""HTTP route definitions for the service."""

from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, Query, UploadFile, status

from app.schemas import (
    AlertStateOut,
    BucketOut,
    ChartRowOut,
    CriticalityRecord,
    CriticalitySummaryOut,
    FileUploadResponse,
    IngestJob,
    MeasurementRecord,
    SensorTypeRecord,
    SeriesResponse,
    ThresholdRecord,
    WriteResponse,
)
from datastore.record_store import CRITICALITIES, MEASUREMENTS, SENSOR_TYPES, THRESHOLDS
from services.bucketer import Window
from services.dashboard import DashboardService, build_default_dashboard
from services.errors import ConfigurationConflict
from services.ingest import IngestService, build_default_ingest_service

router = APIRouter()


def get_ingest_service() -> IngestService:
    return build_default_ingest_service()


def get_dashboard() -> DashboardService:
    return build_default_dashboard()


def _conflict(exc: ConfigurationConflict) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={
            "message": f"Cannot evaluate alerts: {exc}",
            "sensor_keys": [str(key) for key in exc.sensor_keys],
        },
    )


@router.post(
    "/measurements/files",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=FileUploadResponse,
    summary="Upload a measurement CSV for asynchronous ingestion.",
)
async def upload_measurements(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(..., description="CSV file containing sensor measurements."),
    ingest: IngestService = Depends(get_ingest_service),
) -> FileUploadResponse:
    try:
        job_id = ingest.enqueue_file(background_tasks, file)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return FileUploadResponse(job_id=job_id)


@router.get(
    "/measurements/files/{job_id}",
    response_model=IngestJob,
    summary="Fetch the status and row errors of an ingest job.",
)
async def get_ingest_job(
    job_id: str,
    ingest: IngestService = Depends(get_ingest_service),
) -> IngestJob:
    try:
        return ingest.fetch_job(job_id)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc


@router.post(
    "/measurements",
    status_code=status.HTTP_201_CREATED,
    response_model=WriteResponse,
    summary="Append a batch of measurements.",
)
async def add_measurements(
    records: List[MeasurementRecord],
    ingest: IngestService = Depends(get_ingest_service),
) -> WriteResponse:
    return WriteResponse(table=MEASUREMENTS, row_count=ingest.add_measurements(records))


@router.put("/thresholds", response_model=WriteResponse, summary="Replace threshold configuration.")
async def put_thresholds(
    records: List[ThresholdRecord],
    dashboard: DashboardService = Depends(get_dashboard),
) -> WriteResponse:
    return WriteResponse(table=THRESHOLDS, row_count=dashboard.replace_thresholds(records))


@router.put("/criticalities", response_model=WriteResponse, summary="Replace criticality tiers.")
async def put_criticalities(
    records: List[CriticalityRecord],
    dashboard: DashboardService = Depends(get_dashboard),
) -> WriteResponse:
    return WriteResponse(table=CRITICALITIES, row_count=dashboard.replace_criticalities(records))


@router.put("/sensor-types", response_model=WriteResponse, summary="Replace sensor type names.")
async def put_sensor_types(
    records: List[SensorTypeRecord],
    dashboard: DashboardService = Depends(get_dashboard),
) -> WriteResponse:
    return WriteResponse(table=SENSOR_TYPES, row_count=dashboard.replace_sensor_types(records))


@router.get(
    "/alerts/state",
    response_model=List[AlertStateOut],
    summary="Current state of every thresholded sensor that has data.",
)
async def get_alert_state(
    criticality: Optional[str] = Query(None, description="Only sensors of this criticality."),
    location_id: Optional[int] = Query(None, description="Only sensors at this location."),
    dashboard: DashboardService = Depends(get_dashboard),
) -> List[AlertStateOut]:
    try:
        states = dashboard.current_states(criticality=criticality, location_id=location_id)
    except ConfigurationConflict as exc:
        raise _conflict(exc) from exc
    return [AlertStateOut.from_domain(state) for state in states]


@router.get(
    "/alerts/summary",
    response_model=List[CriticalitySummaryOut],
    summary="Sensor and alert totals per criticality.",
)
async def get_alert_summary(
    dashboard: DashboardService = Depends(get_dashboard),
) -> List[CriticalitySummaryOut]:
    try:
        rows = dashboard.criticality_summary()
    except ConfigurationConflict as exc:
        raise _conflict(exc) from exc
    return [CriticalitySummaryOut.from_domain(row) for row in rows]


@router.get(
    "/series",
    response_model=SeriesResponse,
    summary="Bucketed history of one device metric, one series per sensor type.",
)
async def get_series(
    device_id: int,
    metric_id: int,
    start: Optional[date] = Query(None, description="First calendar day (inclusive)."),
    end: Optional[date] = Query(None, description="Last calendar day (inclusive)."),
    dashboard: DashboardService = Depends(get_dashboard),
) -> SeriesResponse:
    if (start is None) != (end is None):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide both start and end, or neither.",
        )
    try:
        window = Window(start=start, end=end) if start is not None and end is not None else None
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    result = dashboard.series(device_id, metric_id, window)
    return SeriesResponse(
        device_id=result.device_id,
        metric_id=result.metric_id,
        granularity=result.granularity.value,
        buckets=[
            BucketOut.from_domain(item, result.labels[item.series_id]) for item in result.buckets
        ],
        rows=[
            ChartRowOut(
                time=row.key,
                values={result.labels[series_id]: value for series_id, value in row.values.items()},
            )
            for row in result.rows
        ],
    )


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
