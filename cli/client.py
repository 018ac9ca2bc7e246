from __future__ import annotations

import time
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the alert engine service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=30.0)

    def close(self) -> None:
        self._client.close()

    def upload_measurements(self, path: Path) -> str:
        if not path.exists():
            raise typer.BadParameter(f"File {path} does not exist.")
        if not path.is_file():
            raise typer.BadParameter(f"Path {path} is not a file.")

        try:
            with path.open("rb") as handle:
                response = self._client.post(
                    "/measurements/files",
                    files={"file": (path.name, handle, "text/csv")},
                )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        payload = response.json()
        job_id = payload.get("job_id")
        if not isinstance(job_id, str):
            raise typer.BadParameter("Unexpected response payload when uploading file.")
        return job_id

    def get_job(self, job_id: str) -> Dict[str, Any]:
        try:
            response = self._client.get(f"/measurements/files/{job_id}")
            if response.status_code == 404:
                raise typer.BadParameter(f"Ingest job {job_id} was not found.")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    def poll_job(self, job_id: str, interval: float, timeout: float) -> Dict[str, Any]:
        deadline = time.monotonic() + timeout
        last_payload: Dict[str, Any] | None = None
        while time.monotonic() <= deadline:
            last_payload = self.get_job(job_id)
            status = last_payload.get("status")
            if status not in {"uploaded", "processing"}:
                return last_payload
            time.sleep(interval)
        typer.secho(
            (
                f"Timed out waiting for ingest job {job_id}. "
                f"Last status: {last_payload.get('status') if last_payload else 'unknown'}"
            ),
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1)

    def get_alert_state(
        self, criticality: Optional[str] = None, location_id: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {}
        if criticality is not None:
            params["criticality"] = criticality
        if location_id is not None:
            params["location_id"] = location_id
        return self._get_json("/alerts/state", params)

    def get_summary(self) -> List[Dict[str, Any]]:
        return self._get_json("/alerts/summary", {})

    def get_series(
        self,
        device_id: int,
        metric_id: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"device_id": device_id, "metric_id": metric_id}
        if start is not None and end is not None:
            params["start"] = start.isoformat()
            params["end"] = end.isoformat()
        return self._get_json("/series", params)

    def _get_json(self, path: str, params: Dict[str, Any]) -> Any:
        try:
            response = self._client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: Any = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        if isinstance(detail, dict):
            detail = detail.get("message") or detail
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
