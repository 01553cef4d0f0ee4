"""fixflow init -- create the database."""

from __future__ import annotations

import click
from rich.markup import escape

from fixflow.cli.formatting import format_error, get_console


@click.command()
@click.option(
    "--enable-sla-monitoring",
    is_flag=True,
    help="Also switch on the SLA monitoring toggle.",
)
@click.pass_context
def init(ctx: click.Context, enable_sla_monitoring: bool) -> None:
    """Create the database and its tables. Safe to run twice."""
    from fixflow.models.config import SLA_MONITORING_ENABLED
    from fixflow.storage.engine import get_schema_version
    from fixflow.storage.sqlite import SqlAutomationStore

    console = get_console()
    db_path = ctx.obj["db_path"]
    try:
        with SqlAutomationStore.open(db_path) as store:
            if enable_sla_monitoring:
                store.set_setting(SLA_MONITORING_ENABLED, True)
            version = get_schema_version(store.engine)
    except Exception as e:
        format_error(str(e), console)
        raise SystemExit(1) from None

    console.print(f"Initialized fixflow database at {escape(db_path)} (schema v{version})")
