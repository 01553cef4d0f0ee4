"""fixflow event -- feed domain events to the engine."""

from __future__ import annotations

import json
from typing import IO

import click

from fixflow.cli.formatting import format_event


@click.command()
@click.argument("source", type=click.File("r"), default="-")
@click.pass_context
def event(ctx: click.Context, source: IO[str]) -> None:
    """Handle domain events read as JSON from SOURCE (default: stdin).

    SOURCE holds one event object or a list of them, each shaped like
    {"entity_id", "event_kind", "before", "after", "occurred_at"}.
    """
    from fixflow.cli import _engine_session

    with _engine_session(ctx) as (engine, console):
        payload = json.load(source)
        records = payload if isinstance(payload, list) else [payload]
        for record in records:
            format_event(engine.handle_event(record), console)
