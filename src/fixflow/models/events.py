"""Domain events and trigger types.

A DomainEvent is what arrives from the outside world; a TriggerMatch is
what the classifier derives from it and what rules are keyed on.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from fixflow.exceptions import InvalidEventError


class EventKind(str, enum.Enum):
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    PRIORITY_CHANGED = "priority_changed"
    ASSIGNED_TO_USER = "assigned_to_user"
    ASSIGNED_TO_LOCATION = "assigned_to_location"
    ASSIGNED_TO_ASSET = "assigned_to_asset"
    SLA_TICK = "sla_tick"


class TriggerType(str, enum.Enum):
    WORK_ORDER_CREATED = "work_order_created"
    STATUS_CHANGED_TO = "work_order_status_changed_to"
    STATUS_TRANSITION = "work_order_status_transition"
    PRIORITY_CHANGED_TO = "work_order_priority_changed_to"
    ASSIGNED_TO_USER = "work_order_assigned_to_user"
    ASSIGNED_TO_LOCATION = "work_order_assigned_to_location"
    ASSIGNED_TO_ASSET = "work_order_assigned_to_asset"
    SLA_TICK = "sla_tick"
    DUE_WITHIN = "work_order_due_within"
    OVERDUE_BY = "work_order_overdue_by"
    SCHEDULED_DAILY = "scheduled_daily"
    SCHEDULED_WEEKLY = "scheduled_weekly"


# Trigger types driven by the escalation sweep rather than real-time events.
ESCALATION_TRIGGER_FAMILY: frozenset[str] = frozenset({
    TriggerType.SLA_TICK.value,
    TriggerType.DUE_WITHIN.value,
    TriggerType.OVERDUE_BY.value,
})

TIME_BASED_TRIGGERS: frozenset[str] = ESCALATION_TRIGGER_FAMILY | {
    TriggerType.SCHEDULED_DAILY.value,
    TriggerType.SCHEDULED_WEEKLY.value,
}


@dataclass(frozen=True)
class DomainEvent:
    """A change to one work order, as delivered by the trigger ingress."""

    entity_id: str
    kind: EventKind
    occurred_at: datetime
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> DomainEvent:
        """Build an event from ``{entity_id, event_kind, before?, after?, occurred_at}``.

        Raises:
            InvalidEventError: If a required key is missing, the kind is
                unknown or ``occurred_at`` is not a timestamp.
        """
        missing = [k for k in ("entity_id", "event_kind", "occurred_at") if record.get(k) is None]
        if missing:
            raise InvalidEventError(f"Event is missing {', '.join(missing)}")
        try:
            kind = EventKind(record["event_kind"])
        except ValueError:
            raise InvalidEventError(f"Unknown event kind {record['event_kind']!r}") from None
        occurred_at = record["occurred_at"]
        if isinstance(occurred_at, str):
            try:
                occurred_at = datetime.fromisoformat(occurred_at)
            except ValueError:
                raise InvalidEventError(f"Invalid occurred_at {occurred_at!r}") from None
        if not isinstance(occurred_at, datetime):
            raise InvalidEventError(f"Invalid occurred_at {occurred_at!r}")
        return cls(
            entity_id=str(record["entity_id"]),
            kind=kind,
            occurred_at=occurred_at,
            before=record.get("before"),
            after=record.get("after"),
        )

    def before_value(self, key: str) -> Any:
        return (self.before or {}).get(key)

    def after_value(self, key: str) -> Any:
        return (self.after or {}).get(key)


@dataclass(frozen=True)
class TriggerMatch:
    """One trigger type an event satisfies, with the values rules compare to.

    ``property_selector`` is the asset property name for asset assignment
    triggers; ``from_value`` is the previous status for transitions.
    """

    trigger_type: TriggerType
    value: str | None = None
    property_selector: str | None = None
    from_value: str | None = None
    payload: dict[str, Any] = field(default_factory=dict, compare=False)
