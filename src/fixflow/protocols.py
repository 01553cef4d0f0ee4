"""Boundary protocols for Fixflow.

Defines the interfaces the engine uses to reach the backing store:
snapshot reads, field mutations, the rule/settings store, the audit
log, and the technician directory used by automatic assignment. The
engine depends only on these; SqlAutomationStore implements all of them,
and tests substitute in-memory fakes.

No SQLAlchemy imports allowed in this module -- pure domain protocols.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from fixflow.models.assignment import Technician
    from fixflow.models.execution import ExecutionLogEntry, LogFilter
    from fixflow.models.rule import AutomationRule
    from fixflow.models.work_order import ActivityLogEntry, WorkOrderSnapshot


@runtime_checkable
class SnapshotProvider(Protocol):
    """Read-only access to work order snapshots."""

    def get_snapshot(self, entity_id: str) -> WorkOrderSnapshot:
        """Return the current snapshot.

        Raises:
            WorkOrderNotFoundError: If no work order has this id.
            StoreError: If the store cannot be reached.
        """
        ...

    def list_active_sla_entities(self) -> Sequence[WorkOrderSnapshot]:
        """Work orders with a non-null SLA deadline and a non-terminal status."""
        ...


@runtime_checkable
class WorkOrderMutator(Protocol):
    """Discrete, independently atomic update commands."""

    def update_fields(self, entity_id: str, field_map: Mapping[str, Any]) -> None:
        ...

    def append_activity_log(self, entity_id: str, entry: ActivityLogEntry) -> None:
        ...

    def enqueue_notification(self, entity_id: str, notification_spec: Mapping[str, Any]) -> None:
        ...

    def create_task(self, entity_id: str, task_spec: Mapping[str, Any]) -> None:
        ...


@runtime_checkable
class SettingsStore(Protocol):
    def get_setting(self, key: str) -> bool:
        ...


@runtime_checkable
class RuleStore(SettingsStore, Protocol):
    """Rule reads and the engine's only rule writes (bookkeeping)."""

    def list_active_rules(self, rule_type: str | None = None) -> Sequence[AutomationRule]:
        """Active rules, priority descending, ties by creation order."""
        ...

    def get_rule(self, rule_id: str) -> AutomationRule:
        ...

    def increment_execution(self, rule_id: str, executed_at: datetime) -> None:
        """Bump execution_count and set last_executed_at (last write wins)."""
        ...


@runtime_checkable
class AuditLog(Protocol):
    """Append-only execution log."""

    def append_log(self, entry: ExecutionLogEntry) -> int:
        """Persist ``entry`` and return its id."""
        ...

    def get_log(self, log_id: int) -> ExecutionLogEntry:
        ...

    def list_recent_logs(self, log_filter: LogFilter | None = None) -> Sequence[ExecutionLogEntry]:
        ...

    def dismiss_log(self, log_id: int, dismissed_at: datetime) -> None:
        """Write the dismissed tombstone; no other field changes."""
        ...


@runtime_checkable
class TechnicianDirectory(Protocol):
    """Assignment candidates and their current load."""

    def list_assignment_candidates(
        self, location_ids: Sequence[str] | None = None
    ) -> Sequence[Technician]:
        """Active technicians, optionally only those at ``location_ids``.

        Each carries its shifts and its count of work orders in progress.
        """
        ...


@runtime_checkable
class AutomationStore(SnapshotProvider, WorkOrderMutator, RuleStore, AuditLog, Protocol):
    """Everything the engine needs from one backing store."""
