"""
Main CLI application using Typer.

Commands:
- serve: run the headless supervisor and its HTTP API under uvicorn
- stagger: print the staggered start delays for a grid composition
"""

from __future__ import annotations

import json
import random
import sys

import typer

from multiview.infra.exceptions import ValidationError
from multiview.infra.logging import configure_logging
from multiview.infra.settings import settings
from multiview.runtime.config import GridConfig
from multiview.runtime.stagger import StaggerSchedule

app = typer.Typer(help="Multiview grid health supervisor")


@app.command("serve")
def serve(
    host: str = typer.Option(None, help="Override HTTP bind host"),
    port: int = typer.Option(None, help="Override HTTP port"),
    rows: int = typer.Option(None, help="Grid rows"),
    columns: int = typer.Option(None, help="Grid columns"),
    log_level: str = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
):
    """Start the supervisor and serve the HTTP API."""
    import uvicorn

    from multiview.web.app import create_headless_app

    configure_logging(log_level)
    overrides = {
        key: value
        for key, value in (("grid_rows", rows), ("grid_columns", columns))
        if value is not None
    }
    effective = settings.model_copy(update=overrides)
    try:
        GridConfig(rows=effective.grid_rows, columns=effective.grid_columns)
    except ValidationError as e:
        typer.echo(f"Error: {e}", err=True)
        sys.exit(2)

    uvicorn.run(
        create_headless_app(effective),
        host=host or effective.http_host,
        port=port or effective.http_port,
        log_config=None,
    )


@app.command("stagger")
def stagger(
    count: int = typer.Option(None, "--count", "-n", help="Number of tiles (default: grid capacity)"),
    seed: int = typer.Option(None, "--seed", help="Seed in ms (default: random per session)"),
    spacing: int = typer.Option(None, "--spacing", help="Spacing between tiles in ms"),
    rng_seed: int = typer.Option(None, "--rng-seed", help="Seed for the random seed draw"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Print the initial attach delay of every tile."""
    spacing_ms = settings.stagger_spacing_ms if spacing is None else spacing
    if seed is None:
        schedule = StaggerSchedule.random(
            spacing_ms, settings.stagger_seed_max_ms, rng=random.Random(rng_seed)
        )
    else:
        schedule = StaggerSchedule(seed_ms=seed, spacing_ms=spacing_ms)
    total = count if count is not None else settings.grid_rows * settings.grid_columns

    delays = schedule.table(total)
    if json_output:
        typer.echo(
            json.dumps(
                {"seed_ms": schedule.seed_ms, "spacing_ms": schedule.spacing_ms, "delays_ms": delays},
                indent=2,
            )
        )
        return
    typer.echo(f"seed={schedule.seed_ms}ms spacing={schedule.spacing_ms}ms")
    for index, delay in enumerate(delays):
        typer.echo(f"  tile {index:>3}: {delay}ms")


def cli() -> None:
    app()
