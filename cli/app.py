from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_job, render_series, render_states, render_summary


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the sensor alert engine service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    poll_interval: Optional[float] = typer.Option(
        None,
        "--poll-interval",
        help="Seconds between status checks when waiting for an ingest job.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Maximum seconds to wait when polling an ingest job.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(
        base_url=base_url,
        poll_interval=poll_interval,
        poll_timeout=timeout,
    )
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("upload")
def upload_command(
    ctx: typer.Context,
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Path to measurement CSV."),
    wait: bool = typer.Option(
        False,
        "--wait/--no-wait",
        help="Wait for ingestion to finish and display the job.",
    ),
) -> None:
    """Upload a measurement CSV for asynchronous ingestion."""
    state = _get_state(ctx)
    typer.echo(f"Uploading {file} to {state.config.base_url} ...")
    job_id = state.client.upload_measurements(file)
    typer.secho(f"Upload accepted. job_id={job_id}", fg=typer.colors.GREEN)

    if not wait:
        return

    interval = state.config.poll_interval
    poll_timeout = state.config.poll_timeout
    typer.echo(f"Waiting for ingestion (interval={interval}s, timeout={poll_timeout}s)...")
    payload = state.client.poll_job(job_id, interval=interval, timeout=poll_timeout)
    typer.echo()
    render_job(payload)


@app.command("job")
def job_command(
    ctx: typer.Context,
    job_id: str = typer.Argument(..., help="Identifier returned from the upload command."),
) -> None:
    """Show the status and row errors of an ingest job."""
    state = _get_state(ctx)
    render_job(state.client.get_job(job_id))


@app.command("alerts")
def alerts_command(
    ctx: typer.Context,
    criticality: Optional[str] = typer.Option(None, "--criticality", "-c", help="Filter by criticality label."),
    location_id: Optional[int] = typer.Option(None, "--location", "-l", help="Filter by location id."),
) -> None:
    """List the current state of every thresholded sensor."""
    state = _get_state(ctx)
    render_states(state.client.get_alert_state(criticality=criticality, location_id=location_id))


@app.command("summary")
def summary_command(ctx: typer.Context) -> None:
    """Show sensor and alert totals per criticality."""
    state = _get_state(ctx)
    render_summary(state.client.get_summary())


@app.command("series")
def series_command(
    ctx: typer.Context,
    device_id: int = typer.Argument(..., help="Device identifier."),
    metric_id: int = typer.Argument(..., help="Metric identifier."),
    start: Optional[datetime] = typer.Option(None, "--start", formats=["%Y-%m-%d"], help="First day (inclusive)."),
    end: Optional[datetime] = typer.Option(None, "--end", formats=["%Y-%m-%d"], help="Last day (inclusive)."),
) -> None:
    """Show the bucketed history of one device metric."""
    if (start is None) != (end is None):
        raise typer.BadParameter("Provide both --start and --end, or neither.")
    state = _get_state(ctx)
    payload = state.client.get_series(
        device_id,
        metric_id,
        start=start.date() if start else None,
        end=end.date() if end else None,
    )
    render_series(payload)
