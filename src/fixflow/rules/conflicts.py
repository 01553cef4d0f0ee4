"""Rule conflict detection.

Checks a candidate rule against the existing active rules before it is
saved: contradictory actions on the same trigger, higher-priority rules
that will run first, and overlapping time-based schedules.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Literal

from fixflow.models.actions import (
    AssignTechnicianAction,
    UpdatePriorityAction,
    UpdateStatusAction,
)
from fixflow.models.events import TIME_BASED_TRIGGERS
from fixflow.models.rule import AutomationRule

ConflictType = Literal["priority", "action", "timing"]
Severity = Literal["warning", "error"]


@dataclass(frozen=True)
class RuleConflict:
    conflict_type: ConflictType
    severity: Severity
    message: str
    conflicting_rules: tuple[str, ...] = ()


# (action class, attribute, severity, description)
_EXCLUSIVE_ACTIONS: tuple[tuple[type, str, Severity, str], ...] = (
    (
        AssignTechnicianAction,
        "technician_id",
        "error",
        "Conflicting technician assignment with rule \"{name}\". "
        "Both rules assign different technicians on the same trigger.",
    ),
    (
        UpdateStatusAction,
        "status",
        "error",
        "Conflicting status change with rule \"{name}\". "
        "Both rules change status to different values.",
    ),
    (
        UpdatePriorityAction,
        "priority",
        "warning",
        "Conflicting priority assignment with rule \"{name}\". "
        "Both rules set different priorities.",
    ),
)


def _first_value(rule: AutomationRule, action_cls: type, attr: str) -> str | None:
    for action in rule.actions:
        if isinstance(action, action_cls):
            return getattr(action, attr)
    return None


def detect_conflicts(
    candidate: AutomationRule, existing_rules: Iterable[AutomationRule]
) -> list[RuleConflict]:
    """Return conflicts between ``candidate`` and the active ``existing_rules``.

    The candidate itself (same id) is ignored if present in
    ``existing_rules``, so an edited rule can be checked against the full
    stored set.
    """
    active = [r for r in existing_rules if r.is_active and r.id != candidate.id]
    trigger_type = candidate.trigger.trigger_type
    same_trigger = [r for r in active if r.trigger.trigger_type == trigger_type]
    conflicts: list[RuleConflict] = []

    for rule in same_trigger:
        for action_cls, attr, severity, template in _EXCLUSIVE_ACTIONS:
            mine = _first_value(candidate, action_cls, attr)
            theirs = _first_value(rule, action_cls, attr)
            if mine and theirs and mine != theirs:
                conflicts.append(
                    RuleConflict(
                        conflict_type="action",
                        severity=severity,
                        message=template.format(name=rule.name),
                        conflicting_rules=(rule.name,),
                    )
                )

    higher = [r for r in same_trigger if r.priority > candidate.priority]
    if higher:
        conflicts.append(
            RuleConflict(
                conflict_type="priority",
                severity="warning",
                message=(
                    f"{len(higher)} rule(s) with higher priority will execute first: "
                    + ", ".join(r.name for r in higher)
                ),
                conflicting_rules=tuple(r.name for r in higher),
            )
        )

    if trigger_type in TIME_BASED_TRIGGERS:
        timed = [r for r in active if r.trigger.trigger_type in TIME_BASED_TRIGGERS]
        if timed:
            conflicts.append(
                RuleConflict(
                    conflict_type="timing",
                    severity="warning",
                    message=(
                        f"{len(timed)} other time-based rule(s) exist. "
                        "Ensure execution times don't overlap."
                    ),
                    conflicting_rules=tuple(r.name for r in timed),
                )
            )
    return conflicts
