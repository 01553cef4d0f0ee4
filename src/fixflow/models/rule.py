"""Automation rule model.

AutomationRule is read-only to the engine. Rules are authored elsewhere
and stored as records shaped like::

    {
        "id": "...", "name": "...", "rule_type": "sla_escalation",
        "is_active": True, "priority": 10,
        "trigger_conditions": {
            "trigger": "work_order_status_changed_to",
            "triggerValue": "In Progress",
            "assetPropertyType": None,
            "conditionLogic": "all",
            "conditions": [{"type": "priority", "value": "High"}],
            "sla_status": ["at-risk", "overdue"],
            "status": ["New", "In Progress"],
        },
        "actions": [{"type": "update_priority", "parameters": {...}}],
        "execution_count": 0, "last_executed_at": None, "created_at": ...,
    }

from_record() validates that shape once, at load time.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from fixflow.exceptions import RuleConfigError
from fixflow.models.actions import Action, parse_actions
from fixflow.models.conditions import Condition, parse_conditions

_FROZEN = {"frozen": True}


def _text(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _string_set(value: Any) -> frozenset[str] | None:
    """Normalize a status filter; a bare string may hold comma-separated values."""
    if not value:
        return None
    if isinstance(value, str):
        parts = frozenset(p.strip() for p in value.split(",") if p.strip())
    else:
        parts = frozenset(str(v) for v in value)
    return parts or None


class RuleType(str, enum.Enum):
    AUTO_ASSIGNMENT = "auto_assignment"
    SLA_ESCALATION = "sla_escalation"
    NOTIFICATION = "notification"
    ROUTE_OPTIMIZATION = "route_optimization"
    WORKLOAD_BALANCING = "workload_balancing"


class ConditionsLogic(str, enum.Enum):
    ALL = "all"
    ANY = "any"


class TriggerDescriptor(BaseModel):
    """What makes a rule eligible: trigger type plus optional value/selector.

    ``property_selector`` narrows the trigger further: the asset property
    for ``work_order_assigned_to_asset`` (e.g. ``ownership``) or the
    from-status for ``work_order_status_transition`` (``any`` = any).
    """

    model_config = _FROZEN

    trigger_type: str
    trigger_value: str | None = None
    property_selector: str | None = None


class EscalationTargets(BaseModel):
    """Set-membership filters used by the escalation sweep.

    None means "no filter" for that dimension.
    """

    model_config = _FROZEN

    sla_statuses: frozenset[str] | None = None
    statuses: frozenset[str] | None = None

    def admits(self, sla_status: str, status: str) -> bool:
        if self.sla_statuses is not None and sla_status not in self.sla_statuses:
            return False
        if self.statuses is not None and status not in self.statuses:
            return False
        return True


class AutomationRule(BaseModel):
    """A declarative trigger/condition/action rule."""

    model_config = _FROZEN

    id: str
    name: str
    rule_type: RuleType
    trigger: TriggerDescriptor
    description: str | None = None
    is_active: bool = True
    priority: int = 0
    conditions: tuple[Condition, ...] = ()
    conditions_logic: ConditionsLogic = ConditionsLogic.ALL
    actions: tuple[Action, ...] = ()
    escalation: EscalationTargets = Field(default_factory=EscalationTargets)
    execution_count: int = 0
    last_executed_at: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> AutomationRule:
        """Build a rule from its stored record.

        Raises:
            RuleConfigError: If the record lacks an id or name, or names a
                rule_type outside the closed enumeration, or carries field
                values that cannot be coerced (priority, timestamps, ...).
        """
        rule_id = record.get("id")
        name = record.get("name")
        if not rule_id or not name:
            raise RuleConfigError("Rule record requires non-empty 'id' and 'name'")
        try:
            rule_type = RuleType(record.get("rule_type"))
        except ValueError:
            raise RuleConfigError(
                f"Rule '{rule_id}' has unknown rule_type {record.get('rule_type')!r}"
            ) from None

        tc = dict(record.get("trigger_conditions") or {})
        trigger_type = tc.get("trigger") or tc.get("trigger_type")
        if not trigger_type:
            trigger_type = "sla_tick" if rule_type is RuleType.SLA_ESCALATION else ""
        logic_raw = tc.get("conditionLogic") or tc.get("conditions_logic") or "all"
        try:
            logic = ConditionsLogic(str(logic_raw).lower())
        except ValueError:
            raise RuleConfigError(
                f"Rule '{rule_id}' has unknown conditions logic {logic_raw!r}"
            ) from None

        trigger_value = tc.get("triggerValue")
        if trigger_value is None:
            trigger_value = tc.get("trigger_value")
        try:
            return cls(
                id=str(rule_id),
                name=str(name),
                description=record.get("description"),
                rule_type=rule_type,
                is_active=bool(record.get("is_active", True)),
                priority=int(record.get("priority") or 0),
                trigger=TriggerDescriptor(
                    trigger_type=str(trigger_type),
                    trigger_value=_text(trigger_value),
                    property_selector=_text(
                        tc.get("assetPropertyType") or tc.get("property_selector")
                    ),
                ),
                conditions=tuple(parse_conditions(tc.get("conditions"))),
                conditions_logic=logic,
                actions=tuple(parse_actions(record.get("actions"))),
                escalation=EscalationTargets(
                    sla_statuses=_string_set(tc.get("sla_status")),
                    statuses=_string_set(tc.get("status")),
                ),
                execution_count=int(record.get("execution_count") or 0),
                last_executed_at=record.get("last_executed_at"),
                created_at=record.get("created_at"),
            )
        except (ValueError, TypeError, ValidationError) as exc:
            raise RuleConfigError(f"Rule '{rule_id}' has invalid field values: {exc}") from exc
