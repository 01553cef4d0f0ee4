"""fixflow dismiss -- hide a log entry from the default review queue."""

from __future__ import annotations

import click


@click.command()
@click.argument("log_id", type=int)
@click.pass_context
def dismiss(ctx: click.Context, log_id: int) -> None:
    """Mark LOG_ID as dismissed. The entry itself is kept."""
    from fixflow.cli import _engine_session

    with _engine_session(ctx) as (engine, console):
        engine.dismiss_log(log_id)
        console.print(f"Dismissed log entry {log_id}")
