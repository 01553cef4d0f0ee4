"""fixflow metrics -- summarize the execution log."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import click

from fixflow.cli.formatting import format_metrics


@click.command()
@click.option("--rule", "rule_id", default=None, help="Only entries for this rule.")
@click.option("--days", default=None, type=click.IntRange(min=1), help="Only entries from the last N days.")
@click.pass_context
def metrics(ctx: click.Context, rule_id: str | None, days: int | None) -> None:
    """Show success rates and the most common failure reasons."""
    from fixflow.cli import _engine_session
    from fixflow.models.execution import LogFilter

    with _engine_session(ctx) as (engine, console):
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        since = now - timedelta(days=days) if days is not None else None
        format_metrics(engine.metrics(LogFilter(rule_id=rule_id, since=since, limit=None)), console)
