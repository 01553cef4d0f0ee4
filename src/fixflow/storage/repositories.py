"""Abstract repository interfaces for Fixflow storage.

Defines ABC interfaces for all database operations. No SQLAlchemy
imports here -- pure abstract contracts.

Concrete implementations are in sqlite.py.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Sequence

if TYPE_CHECKING:
    from datetime import datetime

    from fixflow.models.execution import LogFilter
    from fixflow.storage.schema import (
        ActivityLogRow,
        AutomationRuleRow,
        ExecutionLogRow,
        NotificationRow,
        ShiftRow,
        TaskRow,
        TechnicianRow,
        WorkOrderRow,
    )


class WorkOrderRepository(ABC):
    """Abstract interface for work order storage operations."""

    @abstractmethod
    def get(self, work_order_id: str) -> WorkOrderRow | None:
        """Get a work order by id. Returns None if not found."""
        ...

    @abstractmethod
    def save(self, work_order: WorkOrderRow) -> None:
        """Insert or replace a work order."""
        ...

    @abstractmethod
    def list_with_sla(self, exclude_statuses: frozenset[str]) -> Sequence[WorkOrderRow]:
        """Work orders with a non-null sla_due whose status is not excluded.

        Ordered by sla_due ascending, then id.
        """
        ...

    @abstractmethod
    def update_fields(
        self, work_order_id: str, field_map: dict[str, Any], updated_at: datetime
    ) -> None:
        """Update whitelisted columns of one work order.

        Raises:
            WorkOrderNotFoundError: If the work order does not exist.
            InvalidFieldError: If a field is not updatable.
        """
        ...


class ActivityLogRepository(ABC):
    """Abstract interface for the append-only work order activity log."""

    @abstractmethod
    def append(self, entry: ActivityLogRow) -> None:
        ...

    @abstractmethod
    def list_for(self, work_order_ids: Sequence[str]) -> Sequence[ActivityLogRow]:
        """Entries of the given work orders, oldest first."""
        ...


class RuleRepository(ABC):
    """Abstract interface for automation rule storage."""

    @abstractmethod
    def get(self, rule_id: str) -> AutomationRuleRow | None:
        ...

    @abstractmethod
    def save(self, rule: AutomationRuleRow) -> None:
        ...

    @abstractmethod
    def list_rules(
        self, rule_type: str | None = None, *, active_only: bool = True
    ) -> Sequence[AutomationRuleRow]:
        """Rules ordered by priority descending, then creation order."""
        ...

    @abstractmethod
    def increment_execution(self, rule_id: str, executed_at: datetime) -> None:
        """Bump execution_count and set last_executed_at.

        Raises:
            RuleNotFoundError: If the rule does not exist.
        """
        ...


class SettingRepository(ABC):
    """Abstract interface for global automation settings."""

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Raw JSON value of a setting, or None if unset."""
        ...

    @abstractmethod
    def set(self, key: str, value: Any, updated_at: datetime) -> None:
        ...


class ExecutionLogRepository(ABC):
    """Abstract interface for the append-only execution log."""

    @abstractmethod
    def append(self, entry: ExecutionLogRow) -> int:
        """Insert an entry and return its id."""
        ...

    @abstractmethod
    def get(self, log_id: int) -> ExecutionLogRow | None:
        ...

    @abstractmethod
    def query(self, log_filter: LogFilter) -> Sequence[ExecutionLogRow]:
        """Entries matching every criterion of ``log_filter``, newest first."""
        ...

    @abstractmethod
    def dismiss(self, log_id: int, dismissed_at: datetime) -> None:
        """Set dismissed_at on one entry.

        Raises:
            LogEntryNotFoundError: If the entry does not exist.
        """
        ...


class NotificationRepository(ABC):
    """Abstract interface for the outbound notification queue."""

    @abstractmethod
    def enqueue(self, notification: NotificationRow) -> None:
        ...

    @abstractmethod
    def list_for(self, work_order_id: str) -> Sequence[NotificationRow]:
        ...


class TaskRepository(ABC):
    """Abstract interface for automation-created tasks."""

    @abstractmethod
    def create(self, task: TaskRow) -> None:
        ...

    @abstractmethod
    def list_for(self, work_order_id: str) -> Sequence[TaskRow]:
        ...


class TechnicianRepository(ABC):
    """Abstract interface for technicians and their current load."""

    @abstractmethod
    def save(self, technician: TechnicianRow, shifts: Sequence[ShiftRow]) -> None:
        """Insert or replace a technician, replacing its shifts."""
        ...

    @abstractmethod
    def list_active(self, location_ids: Sequence[str] | None = None) -> Sequence[TechnicianRow]:
        """Technicians with status 'active', optionally only at these locations."""
        ...

    @abstractmethod
    def shifts_for(self, technician_ids: Sequence[str]) -> Sequence[ShiftRow]:
        ...

    @abstractmethod
    def workload(self, technician_ids: Sequence[str], statuses: Sequence[str]) -> dict[str, int]:
        """Count of work orders in ``statuses`` per assigned technician."""
        ...
