"""fixflow sla -- show the SLA status of a work order."""

from __future__ import annotations

import click

from fixflow.cli.formatting import format_sla_status


@click.command()
@click.argument("work_order_id")
@click.pass_context
def sla(ctx: click.Context, work_order_id: str) -> None:
    """Show how much of WORK_ORDER_ID's SLA window has been consumed."""
    from fixflow.cli import _engine_session

    with _engine_session(ctx) as (engine, console):
        format_sla_status(engine.sla_status(work_order_id), console)
