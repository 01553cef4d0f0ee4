"""Condition evaluation over work order snapshots."""

from fixflow.conditions.evaluator import (
    ConditionReport,
    ConditionResult,
    EvaluationContext,
    evaluate,
    evaluate_condition,
    explain,
)

__all__ = [
    "ConditionReport",
    "ConditionResult",
    "EvaluationContext",
    "evaluate",
    "evaluate_condition",
    "explain",
]
