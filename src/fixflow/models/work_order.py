"""Work order snapshot models.

A WorkOrderSnapshot is the engine's read-only view of a work order at the
moment it was read from the store. The engine never mutates a snapshot; it
issues discrete update commands against the store instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

STATUS_NEW = "New"
STATUS_READY = "Ready"
STATUS_IN_PROGRESS = "In Progress"
STATUS_ON_HOLD = "On Hold"
STATUS_AWAITING_CONFIRMATION = "Awaiting Confirmation"
STATUS_COMPLETED = "Completed"
STATUS_CANCELLED = "Cancelled"

WORK_ORDER_STATUSES: tuple[str, ...] = (
    STATUS_NEW,
    STATUS_READY,
    STATUS_IN_PROGRESS,
    STATUS_ON_HOLD,
    STATUS_AWAITING_CONFIRMATION,
    STATUS_COMPLETED,
    STATUS_CANCELLED,
)

TERMINAL_STATUSES: frozenset[str] = frozenset({STATUS_COMPLETED, STATUS_CANCELLED})

WORK_ORDER_PRIORITIES: tuple[str, ...] = ("Critical", "High", "Medium", "Low")


@dataclass(frozen=True)
class ActivityLogEntry:
    """One line of a work order's append-only activity log.

    ``actor`` is None for entries written by automation.
    """

    timestamp: datetime
    text: str
    actor: str | None = None
    automated: bool = False


@dataclass(frozen=True)
class WorkOrderSnapshot:
    """Immutable view of a work order's fields at read time."""

    id: str
    work_order_number: str
    status: str
    priority: str
    created_at: datetime
    title: str = ""
    category: str | None = None
    subcategory: str | None = None
    assigned_technician_id: str | None = None
    assigned_location_id: str | None = None
    sla_due: datetime | None = None
    total_paused_duration_seconds: float = 0
    asset_mileage: float | None = None
    asset_properties: dict[str, Any] = field(default_factory=dict)
    # Job site coordinates and the specialization its service category needs.
    latitude: float | None = None
    longitude: float | None = None
    required_specialization: str | None = None
    activity_log: tuple[ActivityLogEntry, ...] = ()

    @property
    def has_sla(self) -> bool:
        return self.sla_due is not None

    def is_terminal(self, terminal_statuses: frozenset[str] = TERMINAL_STATUSES) -> bool:
        return self.status in terminal_statuses
