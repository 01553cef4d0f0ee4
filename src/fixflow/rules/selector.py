"""Rule Selector -- trigger filtering, condition evaluation and ordering.

Given the TriggerMatch list produced by the classifier, picks the active
rules keyed on those triggers, evaluates each rule's conditions against
one snapshot, and returns the survivors ordered by priority descending.
Ties keep rule creation order.

Every rule is evaluated against the same pre-event snapshot; actions run
by an earlier rule are not visible to a later one within the same event.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime

from fixflow.conditions.evaluator import ConditionReport, EvaluationContext, explain
from fixflow.models.events import TriggerMatch, TriggerType
from fixflow.models.rule import AutomationRule
from fixflow.models.work_order import WorkOrderSnapshot

logger = logging.getLogger(__name__)

# Trigger values compared without regard to case.
_CASE_INSENSITIVE_TRIGGERS: frozenset[str] = frozenset({
    TriggerType.STATUS_CHANGED_TO.value,
    TriggerType.STATUS_TRANSITION.value,
    TriggerType.PRIORITY_CHANGED_TO.value,
})

ANY_FROM_STATUS = "any"


@dataclass(frozen=True)
class MatchedRule:
    """A rule that passed both trigger and condition checks."""

    rule: AutomationRule
    trigger: TriggerMatch
    report: ConditionReport


def _same(a: str, b: str, trigger_type: str) -> bool:
    if trigger_type in _CASE_INSENSITIVE_TRIGGERS:
        return a.casefold() == b.casefold()
    return a == b


def trigger_matches(rule: AutomationRule, match: TriggerMatch) -> bool:
    """Whether ``rule``'s trigger descriptor accepts ``match``.

    A rule without a trigger value accepts any value. For status
    transitions the rule's property selector is the from-status
    (``any`` or unset accepts every from-status). For asset assignment the
    property selector must name the same asset property.
    """
    ttype = match.trigger_type.value
    descriptor = rule.trigger
    if descriptor.trigger_type != ttype:
        return False

    if descriptor.trigger_value is not None:
        if match.value is None or not _same(descriptor.trigger_value, match.value, ttype):
            return False

    selector = descriptor.property_selector
    if ttype == TriggerType.STATUS_TRANSITION.value:
        if selector and selector.lower() != ANY_FROM_STATUS:
            return match.from_value is not None and _same(selector, match.from_value, ttype)
    elif ttype == TriggerType.ASSIGNED_TO_ASSET.value:
        if selector:
            return match.property_selector == selector
    return True


def order_by_priority(rules: Iterable[AutomationRule]) -> list[AutomationRule]:
    """Priority descending; equal priorities keep their incoming order."""
    return sorted(rules, key=lambda r: -r.priority)


class RuleSelector:
    """Selects and orders the rules an event fires.

    Rules are passed in per call so the selector holds no state and is
    safe to share across threads.
    """

    def select(
        self,
        matches: Sequence[TriggerMatch],
        snapshot: WorkOrderSnapshot,
        rules: Iterable[AutomationRule],
        context: EvaluationContext,
    ) -> list[MatchedRule]:
        selected: list[MatchedRule] = []
        for rule in order_by_priority(r for r in rules if r.is_active):
            trigger = next((m for m in matches if trigger_matches(rule, m)), None)
            if trigger is None:
                continue
            report = explain(rule.conditions, rule.conditions_logic, snapshot, context)
            logger.debug(
                "Rule '%s' on %s: trigger=%s conditions=%s",
                rule.name,
                snapshot.id,
                trigger.trigger_type.value,
                report.matched,
            )
            if report.matched:
                selected.append(MatchedRule(rule=rule, trigger=trigger, report=report))
        return selected


def select(
    matches: Sequence[TriggerMatch],
    snapshot: WorkOrderSnapshot,
    rules: Iterable[AutomationRule],
    now: datetime,
) -> list[MatchedRule]:
    """Convenience wrapper building a fresh EvaluationContext."""
    context = EvaluationContext(now=now)
    return RuleSelector().select(matches, snapshot, rules, context)
