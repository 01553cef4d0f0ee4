"""Execution log summaries for operators."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable

from fixflow.models.execution import (
    ESCALATED_ACTION_TYPE,
    AutomationMetrics,
    ExecutionLogEntry,
    ExecutionStatus,
)


def summarize_logs(entries: Iterable[ExecutionLogEntry], top_n: int = 5) -> AutomationMetrics:
    """Aggregate a set of log entries.

    Failure reasons are counted per failed action message, most common
    first.
    """
    entries = list(entries)
    by_status = Counter(e.status for e in entries)
    timings = [e.execution_time_ms for e in entries if e.execution_time_ms is not None]
    reasons: Counter[str] = Counter()
    for entry in entries:
        for outcome in entry.action_outcomes:
            if not outcome.success:
                reasons[outcome.message] += 1

    total = len(entries)
    successful = by_status[ExecutionStatus.SUCCESS]
    return AutomationMetrics(
        total_executions=total,
        successful=successful,
        partial=by_status[ExecutionStatus.PARTIAL],
        failed=by_status[ExecutionStatus.FAILED],
        success_rate=(successful / total * 100) if total else 0.0,
        total_escalations=sum(1 for e in entries if e.action_type == ESCALATED_ACTION_TYPE),
        average_execution_time_ms=(sum(timings) / len(timings)) if timings else 0.0,
        top_failure_reasons=tuple(reasons.most_common(top_n)),
    )
