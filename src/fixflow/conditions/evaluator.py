"""Condition Evaluator -- pure predicate evaluation over work order snapshots.

Each condition variant has one predicate registered in ``_PREDICATES``,
keyed by model class. evaluate() combines them with ALL/ANY logic;
explain() does the same and also reports per-condition results and
diagnostics for the execution log.

Nothing here raises for bad input. A condition that cannot be satisfied
(InvalidCondition, missing snapshot field, unregistered variant)
evaluates to False and leaves a diagnostic behind.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel

from fixflow.models.conditions import (
    DAYS_OF_WEEK,
    AssetMileageCondition,
    CategoryCondition,
    DayOfWeekCondition,
    InvalidCondition,
    LocationCondition,
    PriorityCondition,
    TechnicianCondition,
    TimeOfDayCondition,
    TitleContainsCondition,
    condition_label,
)
from fixflow.models.rule import ConditionsLogic
from fixflow.models.work_order import WorkOrderSnapshot

logger = logging.getLogger(__name__)


@dataclass
class EvaluationContext:
    """Ambient inputs to condition evaluation.

    ``diagnostics`` collects reasons for conditions that could never match;
    callers attach them to the execution log entry.
    """

    now: datetime
    trigger_payload: dict[str, Any] = field(default_factory=dict)
    diagnostics: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ConditionResult:
    label: str
    matched: bool


@dataclass(frozen=True)
class ConditionReport:
    """Outcome of one explain() call."""

    matched: bool
    results: tuple[ConditionResult, ...] = ()
    diagnostics: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

Predicate = Callable[[Any, WorkOrderSnapshot, EvaluationContext], bool]


def _category(cond: CategoryCondition, snap: WorkOrderSnapshot, ctx: EvaluationContext) -> bool:
    return snap.category is not None and snap.category == cond.category_id


def _priority(cond: PriorityCondition, snap: WorkOrderSnapshot, ctx: EvaluationContext) -> bool:
    return (snap.priority or "").lower() == cond.priority.lower()


def _technician(cond: TechnicianCondition, snap: WorkOrderSnapshot, ctx: EvaluationContext) -> bool:
    return snap.assigned_technician_id is not None and snap.assigned_technician_id == cond.technician_id


def _location(cond: LocationCondition, snap: WorkOrderSnapshot, ctx: EvaluationContext) -> bool:
    return snap.assigned_location_id is not None and snap.assigned_location_id == cond.location_id


def _title_contains(cond: TitleContainsCondition, snap: WorkOrderSnapshot, ctx: EvaluationContext) -> bool:
    return cond.text.lower() in (snap.title or "").lower()


def _day_of_week(cond: DayOfWeekCondition, snap: WorkOrderSnapshot, ctx: EvaluationContext) -> bool:
    return DAYS_OF_WEEK[ctx.now.weekday()] == cond.day.lower()


def _time_of_day(cond: TimeOfDayCondition, snap: WorkOrderSnapshot, ctx: EvaluationContext) -> bool:
    current = ctx.now.time().replace(second=0, microsecond=0)
    if cond.operator == "before":
        return current < cond.start
    if cond.operator == "after":
        return current > cond.start
    # between, inclusive; a window like 22:00-06:00 wraps midnight
    if cond.end is None:
        ctx.diagnostics.append("time_of_day 'between' without an end time")
        return False
    if cond.start <= cond.end:
        return cond.start <= current <= cond.end
    return current >= cond.start or current <= cond.end


def _asset_mileage(cond: AssetMileageCondition, snap: WorkOrderSnapshot, ctx: EvaluationContext) -> bool:
    if snap.asset_mileage is None:
        ctx.diagnostics.append(
            f"asset_mileage condition on work order {snap.id} without asset mileage"
        )
        return False
    if cond.operator == "greater_than":
        return snap.asset_mileage > cond.threshold
    return snap.asset_mileage < cond.threshold


def _invalid(cond: InvalidCondition, snap: WorkOrderSnapshot, ctx: EvaluationContext) -> bool:
    ctx.diagnostics.append(f"unsatisfiable condition {condition_label(cond)}: {cond.reason}")
    return False


_PREDICATES: dict[type[BaseModel], Predicate] = {
    CategoryCondition: _category,
    PriorityCondition: _priority,
    TechnicianCondition: _technician,
    LocationCondition: _location,
    TitleContainsCondition: _title_contains,
    DayOfWeekCondition: _day_of_week,
    TimeOfDayCondition: _time_of_day,
    AssetMileageCondition: _asset_mileage,
    InvalidCondition: _invalid,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def evaluate_condition(
    condition: BaseModel, snapshot: WorkOrderSnapshot, context: EvaluationContext
) -> bool:
    """Evaluate a single condition. Fails closed on anything unrecognized."""
    predicate = _PREDICATES.get(type(condition))
    if predicate is None:
        context.diagnostics.append(
            f"no predicate registered for condition type {type(condition).__name__}"
        )
        return False
    return predicate(condition, snapshot, context)


def explain(
    conditions: Sequence[BaseModel],
    logic: ConditionsLogic | str,
    snapshot: WorkOrderSnapshot,
    context: EvaluationContext,
) -> ConditionReport:
    """Evaluate every condition and combine with ``logic``.

    All conditions are evaluated (no short-circuit) so the report is
    complete. ALL over an empty list is True; ANY over an empty list is
    False.
    """
    logic = ConditionsLogic(logic)
    start = len(context.diagnostics)
    results = tuple(
        ConditionResult(condition_label(c), evaluate_condition(c, snapshot, context))
        for c in conditions
    )
    if logic is ConditionsLogic.ALL:
        matched = all(r.matched for r in results)
    else:
        matched = any(r.matched for r in results)

    diagnostics = tuple(context.diagnostics[start:])
    for message in diagnostics:
        logger.warning("Condition diagnostic for work order %s: %s", snapshot.id, message)
    return ConditionReport(matched=matched, results=results, diagnostics=diagnostics)


def evaluate(
    conditions: Sequence[BaseModel],
    logic: ConditionsLogic | str,
    snapshot: WorkOrderSnapshot,
    context: EvaluationContext,
) -> bool:
    return explain(conditions, logic, snapshot, context).matched
