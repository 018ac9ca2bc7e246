from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer

_STATE_COLORS = {
    "below_threshold": typer.colors.BLUE,
    "above_threshold": typer.colors.RED,
    "unclassifiable": typer.colors.YELLOW,
}


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _format_value(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


def render_job(payload: Dict[str, Any]) -> None:
    echo_heading("Ingest Job")
    echo_key_values(
        [
            ("job_id", payload.get("job_id")),
            ("status", payload.get("status")),
            ("uploaded_at", payload.get("uploaded_at")),
            ("processed_at", payload.get("processed_at")),
            ("processing_ms", payload.get("processing_ms")),
            ("accepted_rows", payload.get("accepted_rows")),
        ]
    )

    errors = payload.get("errors") or []
    typer.echo()
    echo_heading("Errors")
    if errors:
        for error in errors:
            typer.echo(f"  - row {error.get('row_number')}: {error.get('reason')}")
    else:
        typer.echo("No errors recorded.")


def render_states(states: List[Dict[str, Any]]) -> None:
    echo_heading("Sensor State")
    if not states:
        typer.echo("No sensors with data.")
        return
    for item in states:
        sensor = f"{item.get('device_id')}-{item.get('metric_id')}-{item.get('type_id')}"
        state = item.get("state", "")
        line = (
            f"  {sensor} [{item.get('criticality')}] "
            f"{_format_value(item.get('current_value'))} "
            f"({_format_value(item.get('minimum'))}..{_format_value(item.get('maximum'))}) "
            f"{state}"
        )
        typer.secho(line, fg=_STATE_COLORS.get(state))


def render_summary(rows: List[Dict[str, Any]]) -> None:
    echo_heading("Criticality Summary")
    if not rows:
        typer.echo("No sensors evaluated.")
        return
    for row in rows:
        typer.echo(
            f"  {row.get('criticality')}: total={row.get('total_sensors')} "
            f"alerting={row.get('alerting_sensors')} normal={row.get('normal_sensors')} "
            f"trend={row.get('trend')}"
        )


def render_series(payload: Dict[str, Any]) -> None:
    echo_heading(
        f"Series device={payload.get('device_id')} metric={payload.get('metric_id')} "
        f"({payload.get('granularity')})"
    )
    rows = payload.get("rows") or []
    if not rows:
        typer.echo("No measurements in range.")
        return
    for row in rows:
        values = " ".join(
            f"{name}={_format_value(value)}" for name, value in (row.get("values") or {}).items()
        )
        typer.echo(f"  {row.get('time')} {values}")
