"""Trigger Classifier -- maps a domain event to the trigger types it satisfies.

The mapping is a static table from EventKind to a classifier function.
Each function reads the event's before/after values and returns zero or
more TriggerMatch values; rules are then keyed on ``trigger_type`` and
compared against ``value`` / ``property_selector`` / ``from_value``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from fixflow.models.events import DomainEvent, EventKind, TriggerMatch, TriggerType

logger = logging.getLogger(__name__)


def _created(event: DomainEvent) -> list[TriggerMatch]:
    return [TriggerMatch(TriggerType.WORK_ORDER_CREATED, payload=dict(event.after or {}))]


def _status_changed(event: DomainEvent) -> list[TriggerMatch]:
    old = event.before_value("status")
    new = event.after_value("status")
    if new is None or old == new:
        return []
    matches = [TriggerMatch(TriggerType.STATUS_CHANGED_TO, value=str(new))]
    if old is not None:
        matches.append(
            TriggerMatch(
                TriggerType.STATUS_TRANSITION,
                value=str(new),
                from_value=str(old),
            )
        )
    return matches


def _priority_changed(event: DomainEvent) -> list[TriggerMatch]:
    old = event.before_value("priority")
    new = event.after_value("priority")
    if new is None or old == new:
        return []
    return [
        TriggerMatch(
            TriggerType.PRIORITY_CHANGED_TO,
            value=str(new),
            from_value=None if old is None else str(old),
        )
    ]


def _assigned_to_user(event: DomainEvent) -> list[TriggerMatch]:
    technician_id = event.after_value("assigned_technician_id")
    if not technician_id:
        return []
    return [TriggerMatch(TriggerType.ASSIGNED_TO_USER, value=str(technician_id))]


def _assigned_to_location(event: DomainEvent) -> list[TriggerMatch]:
    location_id = event.after_value("assigned_location_id")
    if not location_id:
        return []
    return [TriggerMatch(TriggerType.ASSIGNED_TO_LOCATION, value=str(location_id))]


def _assigned_to_asset(event: DomainEvent) -> list[TriggerMatch]:
    asset_id = event.after_value("asset_id")
    properties = event.after_value("asset_properties") or {}
    matches = [
        TriggerMatch(
            TriggerType.ASSIGNED_TO_ASSET,
            value=None if value is None else str(value),
            property_selector=str(key),
            payload={"asset_id": asset_id},
        )
        for key, value in sorted(properties.items())
    ]
    if not matches:
        # Asset without properties still satisfies rules with no selector.
        matches.append(TriggerMatch(TriggerType.ASSIGNED_TO_ASSET, payload={"asset_id": asset_id}))
    return matches


def _sla_tick(event: DomainEvent) -> list[TriggerMatch]:
    return [TriggerMatch(TriggerType.SLA_TICK)]


_CLASSIFIERS: dict[EventKind, Callable[[DomainEvent], list[TriggerMatch]]] = {
    EventKind.CREATED: _created,
    EventKind.STATUS_CHANGED: _status_changed,
    EventKind.PRIORITY_CHANGED: _priority_changed,
    EventKind.ASSIGNED_TO_USER: _assigned_to_user,
    EventKind.ASSIGNED_TO_LOCATION: _assigned_to_location,
    EventKind.ASSIGNED_TO_ASSET: _assigned_to_asset,
    EventKind.SLA_TICK: _sla_tick,
}


def classify(event: DomainEvent) -> list[TriggerMatch]:
    """Return every trigger the event satisfies, in table order.

    An event whose before/after values do not describe a real change
    (e.g. a status "change" to the same status) yields no triggers.
    """
    matches = _CLASSIFIERS[event.kind](event)
    logger.debug(
        "Event %s on %s classified as %s",
        event.kind.value,
        event.entity_id,
        [m.trigger_type.value for m in matches],
    )
    return matches


def trigger_types(matches: list[TriggerMatch]) -> set[str]:
    return {m.trigger_type.value for m in matches}
