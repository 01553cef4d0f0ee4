"""fixflow rules -- list automation rules."""

from __future__ import annotations

import click
from rich.markup import escape

from fixflow.cli.formatting import format_error, format_rules, get_console


@click.command()
@click.option("-a", "--all", "include_inactive", is_flag=True, help="Include inactive rules.")
@click.option("--conflicts", is_flag=True, help="Also report conflicts between active rules.")
@click.pass_context
def rules(ctx: click.Context, include_inactive: bool, conflicts: bool) -> None:
    """List rules in the order the engine applies them."""
    from fixflow.cli import _open_store
    from fixflow.rules.conflicts import detect_conflicts

    console = get_console()
    try:
        store = _open_store(ctx)
        try:
            listed = store.list_rules(include_inactive=include_inactive)
            format_rules(listed, console)
            if conflicts:
                active = [r for r in listed if r.is_active]
                found = False
                for rule in active:
                    for conflict in detect_conflicts(rule, active):
                        found = True
                        color = "red" if conflict.severity == "error" else "yellow"
                        console.print(
                            f"[{color}]{conflict.severity}[/{color}] "
                            f"{escape(rule.name)}: {escape(conflict.message)}"
                        )
                if not found:
                    console.print("[dim]No conflicts.[/dim]")
        finally:
            store.close()
    except SystemExit:
        raise
    except Exception as e:
        format_error(str(e), console)
        raise SystemExit(1) from None
