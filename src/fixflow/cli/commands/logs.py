"""fixflow logs -- show the automation execution log."""

from __future__ import annotations

import click

from fixflow.cli.formatting import format_logs


@click.command()
@click.option("-n", "--limit", default=20, type=int, help="Maximum number of entries to show.")
@click.option("--rule", "rule_id", default=None, help="Only entries for this rule.")
@click.option("--work-order", "work_order_id", default=None, help="Only entries for this work order.")
@click.option(
    "--status",
    "statuses",
    multiple=True,
    type=click.Choice(["success", "partial", "failed"], case_sensitive=False),
    help="Only entries with this status (repeatable).",
)
@click.option("--escalations", is_flag=True, help="Only SLA escalation entries.")
@click.option("--hide-dismissed", is_flag=True, help="Leave out dismissed entries.")
@click.pass_context
def logs(
    ctx: click.Context,
    limit: int,
    rule_id: str | None,
    work_order_id: str | None,
    statuses: tuple[str, ...],
    escalations: bool,
    hide_dismissed: bool,
) -> None:
    """Show execution log entries, newest first."""
    from fixflow.cli import _engine_session
    from fixflow.models.execution import ESCALATED_ACTION_TYPE, ExecutionStatus, LogFilter

    with _engine_session(ctx) as (engine, console):
        log_filter = LogFilter(
            rule_id=rule_id,
            work_order_id=work_order_id,
            action_type=ESCALATED_ACTION_TYPE if escalations else None,
            statuses=tuple(ExecutionStatus(s.lower()) for s in statuses),
            include_dismissed=not hide_dismissed,
            limit=limit,
        )
        format_logs(engine.list_recent_logs(log_filter), console)
