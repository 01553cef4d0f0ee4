"""fixflow sweep -- run one SLA escalation sweep."""

from __future__ import annotations

import time

import click

from fixflow.cli.formatting import format_sweep


@click.command()
@click.option("-w", "--workers", default=None, type=click.IntRange(min=1), help="Worker pool size.")
@click.option("--timeout", default=None, type=float, help="Stop starting new work orders after this many seconds.")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON.")
@click.pass_context
def sweep(ctx: click.Context, workers: int | None, timeout: float | None, as_json: bool) -> None:
    """Check every open work order with a deadline and fire escalation rules."""
    from fixflow.cli import _engine_session

    with _engine_session(ctx) as (engine, console):
        deadline = time.monotonic() + timeout if timeout is not None else None
        result = engine.run_sweep(max_workers=workers, deadline=deadline)
        if as_json:
            console.print_json(data=result.to_dict())
        else:
            format_sweep(result, console)

    if result.aborted:
        raise SystemExit(1)
