"""Fixflow CLI -- operator interface for the automation engine.

This module is NEVER imported from fixflow/__init__.py.
It is only loaded via the ``fixflow`` entry point defined in pyproject.toml.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import TYPE_CHECKING

import click

from fixflow.cli.formatting import format_error, get_console

if TYPE_CHECKING:
    from collections.abc import Iterator

    from rich.console import Console

    from fixflow.engine import AutomationEngine
    from fixflow.storage.sqlite import SqlAutomationStore


@click.group()
@click.option(
    "--db",
    default="fixflow.db",
    envvar="FIXFLOW_DB",
    help="Path to fixflow database.",
)
@click.option(
    "--log-level",
    default="WARNING",
    envvar="FIXFLOW_LOG_LEVEL",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level for engine diagnostics.",
)
@click.pass_context
def cli(ctx: click.Context, db: str, log_level: str) -> None:
    """Fixflow: rule-driven automation for maintenance work orders."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db


def _open_store(ctx: click.Context) -> SqlAutomationStore:
    """Open the store named by --db. The database must already exist."""
    from fixflow.models.config import EngineConfig
    from fixflow.storage.sqlite import SqlAutomationStore

    db_path = ctx.obj["db_path"]
    if db_path != ":memory:" and not os.path.exists(db_path):
        format_error(f"Database not found: {db_path}. Run 'fixflow init' first.", get_console())
        raise SystemExit(1)

    return SqlAutomationStore.open(db_path, config=EngineConfig(db_path=db_path))


@contextmanager
def _engine_session(ctx: click.Context) -> Iterator[tuple[AutomationEngine, Console]]:
    """Context manager that opens an engine, yields (engine, console), and handles cleanup.

    Ensures the store is closed on exit and formats exceptions as CLI errors.
    """
    from fixflow.engine import AutomationEngine

    console = get_console()
    try:
        store = _open_store(ctx)
        try:
            yield AutomationEngine(store), console
        finally:
            store.close()
    except SystemExit:
        raise
    except Exception as e:
        format_error(str(e), console)
        raise SystemExit(1) from None


# Register subcommands after cli group is defined
from fixflow.cli.commands.init import init  # noqa: E402
from fixflow.cli.commands.sweep import sweep  # noqa: E402
from fixflow.cli.commands.event import event  # noqa: E402
from fixflow.cli.commands.logs import logs  # noqa: E402
from fixflow.cli.commands.rules import rules  # noqa: E402
from fixflow.cli.commands.sla import sla  # noqa: E402
from fixflow.cli.commands.retry import retry  # noqa: E402
from fixflow.cli.commands.dismiss import dismiss  # noqa: E402
from fixflow.cli.commands.metrics import metrics  # noqa: E402
from fixflow.cli.commands.setting import setting  # noqa: E402

cli.add_command(init)
cli.add_command(sweep)
cli.add_command(event)
cli.add_command(logs)
cli.add_command(rules)
cli.add_command(sla)
cli.add_command(retry)
cli.add_command(dismiss)
cli.add_command(metrics)
cli.add_command(setting)
