"""Rich formatting helpers for the Fixflow CLI.

Provides functions that format engine results for terminal display.
Rich auto-detects TTY and degrades gracefully when piped (no ANSI codes).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from fixflow.sla.calculator import format_time_remaining

if TYPE_CHECKING:
    from fixflow.models.execution import (
        AutomationMetrics,
        EventResult,
        ExecutionLogEntry,
        FiringResult,
        SweepResult,
    )
    from fixflow.models.rule import AutomationRule
    from fixflow.models.sla import SLAStatus

_STATUS_STYLES = {
    "success": "green",
    "partial": "yellow",
    "failed": "red",
    "on-track": "green",
    "at-risk": "yellow",
    "overdue": "red",
    "no-sla": "dim",
}


def _styled(value: str) -> str:
    style = _STATUS_STYLES.get(value)
    return f"[{style}]{escape(value)}[/{style}]" if style else escape(value)


def get_console() -> Console:
    """Create a Rich Console that auto-detects TTY for graceful pipe degradation."""
    return Console(stderr=False)


def format_sweep(result: SweepResult, console: Console) -> None:
    """Display the outcome of one escalation sweep."""
    if result.aborted:
        console.print(f"[red]Sweep aborted:[/red] {escape(result.error or '')}", highlight=False)
    elif result.cancelled:
        console.print("[yellow]Sweep cancelled before all work orders were checked.[/yellow]")
    console.print(escape(result.message), highlight=False)
    if not result.enabled:
        return

    console.print(
        f"  Checked: {result.work_orders_checked}  "
        f"Escalated: [green]{result.escalations_triggered}[/green]  "
        f"Suppressed: [dim]{result.escalations_suppressed}[/dim]  "
        f"Time: {result.execution_time_ms:.1f}ms"
    )
    if not result.results:
        return

    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Work order", style="yellow")
    table.add_column("SLA")
    table.add_column("Consumed", justify="right")
    table.add_column("Rule")
    table.add_column("Status")
    table.add_column("Log", justify="right", style="dim")
    for r in result.results:
        table.add_row(
            escape(r.work_order_number),
            _styled(r.sla_status),
            f"{r.sla_consumed_percent:.0f}%",
            escape(r.rule_applied),
            _styled(r.status.value),
            str(r.log_id) if r.log_id is not None else "",
        )
    console.print(table)


def format_firing(firing: FiringResult, console: Console) -> None:
    """Display one rule firing and its per-action outcomes."""
    console.print(
        f"Rule [cyan]{escape(firing.rule_name)}[/cyan] on "
        f"[yellow]{escape(firing.work_order_id)}[/yellow]: {_styled(firing.status.value)}"
        + (f"  [dim](log {firing.log_id})[/dim]" if firing.log_id is not None else "")
    )
    for o in firing.outcome.outcomes:
        mark = "[green]ok[/green]" if o.success else f"[red]{o.error_type or 'error'}[/red]"
        console.print(f"  {o.position}. {escape(o.action_type)} {mark} {escape(o.message)}")


def format_event(result: EventResult, console: Console) -> None:
    """Display the outcome of handling one domain event."""
    if result.skipped_reason:
        console.print(f"[dim]Skipped: {escape(result.skipped_reason)}[/dim]")
        return
    if not result.firings:
        console.print("[dim]No rules fired.[/dim]")
        return
    for firing in result.firings:
        format_firing(firing, console)


def format_logs(entries: list[ExecutionLogEntry], console: Console) -> None:
    """Display execution log entries in compact table format."""
    if not entries:
        console.print("[dim]No log entries.[/dim]")
        return

    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("ID", justify="right", style="yellow")
    table.add_column("Time", style="dim")
    table.add_column("Rule", style="cyan")
    table.add_column("Work order")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Error")

    for entry in entries:
        status = _styled(entry.status.value)
        if entry.is_dismissed:
            status += " [dim](dismissed)[/dim]"
        table.add_row(
            str(entry.id),
            entry.created_at.strftime("%Y-%m-%d %H:%M"),
            escape(entry.rule_name),
            escape(entry.work_order_id or ""),
            entry.action_type,
            status,
            escape(entry.error_message or ""),
        )

    console.print(table)


def format_rules(rules: list[AutomationRule], console: Console) -> None:
    """Display automation rules in priority order."""
    if not rules:
        console.print("[dim]No rules.[/dim]")
        return

    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Priority", justify="right")
    table.add_column("ID", style="yellow")
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    table.add_column("Trigger")
    table.add_column("Actions", justify="right")
    table.add_column("Runs", justify="right", style="green")
    table.add_column("Active")

    for rule in rules:
        trigger = rule.trigger.trigger_type
        if rule.trigger.trigger_value:
            trigger += f"={rule.trigger.trigger_value}"
        table.add_row(
            str(rule.priority),
            escape(rule.id),
            escape(rule.name),
            rule.rule_type.value,
            escape(trigger),
            str(len(rule.actions)),
            str(rule.execution_count),
            "yes" if rule.is_active else "[dim]no[/dim]",
        )

    console.print(table)


def format_sla_status(status: SLAStatus, console: Console) -> None:
    """Display the SLA phase of one work order."""
    console.print(
        f"[yellow]{escape(status.work_order_number)}[/yellow] SLA: {_styled(status.status.value)}"
    )
    if status.status.value == "no-sla":
        return
    console.print(f"  Consumed:  {status.sla_consumed_percent:.1f}%")
    if status.time_remaining_hours is not None:
        console.print(f"  Remaining: {format_time_remaining(status.time_remaining_hours * 3600)}")
    if status.time_overdue_hours is not None:
        console.print(
            f"  Overdue:   [red]{format_time_remaining(status.time_overdue_hours * 3600)}[/red]"
        )


def format_metrics(metrics: AutomationMetrics, console: Console) -> None:
    """Display an execution log summary."""
    console.print(f"  Executions:  {metrics.total_executions}")
    console.print(
        f"  Successful:  [green]{metrics.successful}[/green]  "
        f"Partial: [yellow]{metrics.partial}[/yellow]  "
        f"Failed: [red]{metrics.failed}[/red]"
    )
    console.print(f"  Success rate: {metrics.success_rate:.1f}%")
    console.print(f"  Escalations: {metrics.total_escalations}")
    console.print(f"  Avg time:    {metrics.average_execution_time_ms:.1f}ms")
    if metrics.top_failure_reasons:
        console.print()
        console.print("[bold]Top failure reasons:[/bold]")
        for reason, count in metrics.top_failure_reasons:
            console.print(f"  {count:>4}  {escape(reason)}")


def format_error(message: str, console: Console) -> None:
    """Display an error message."""
    console.print(f"[red]Error:[/red] {escape(message)}", highlight=False)
