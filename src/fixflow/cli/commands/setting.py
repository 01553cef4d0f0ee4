"""fixflow setting -- read or flip a global automation toggle."""

from __future__ import annotations

import click
from rich.markup import escape

from fixflow.cli.formatting import format_error, get_console
from fixflow.models.config import KNOWN_SETTING_KEYS


@click.command()
@click.argument("key", type=click.Choice(KNOWN_SETTING_KEYS))
@click.argument("value", required=False, type=click.Choice(["on", "off"]))
@click.pass_context
def setting(ctx: click.Context, key: str, value: str | None) -> None:
    """Show KEY, or set it to VALUE (on/off)."""
    from fixflow.cli import _open_store

    console = get_console()
    try:
        store = _open_store(ctx)
        try:
            if value is not None:
                store.set_setting(key, value == "on")
            state = "on" if store.get_setting(key) else "off"
            console.print(f"{escape(key)}: {state}")
        finally:
            store.close()
    except SystemExit:
        raise
    except Exception as e:
        format_error(str(e), console)
        raise SystemExit(1) from None
