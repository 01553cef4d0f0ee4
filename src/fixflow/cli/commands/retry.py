"""fixflow retry -- re-run the rule recorded in a log entry."""

from __future__ import annotations

import click

from fixflow.cli.formatting import format_firing


@click.command()
@click.argument("log_id", type=int)
@click.pass_context
def retry(ctx: click.Context, log_id: int) -> None:
    """Re-run LOG_ID's rule against the work order's current state."""
    from fixflow.cli import _engine_session

    with _engine_session(ctx) as (engine, console):
        format_firing(engine.retry_firing(log_id), console)
