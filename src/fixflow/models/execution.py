"""Domain models for rule execution and its audit trail.

Provides data classes for per-action outcomes, per-firing outcomes,
execution log entries, log queries, and sweep/event results.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from fixflow.models.rule import AutomationRule


# ExecutionLogEntry.action_type values written by the engine.
ESCALATED_ACTION_TYPE = "escalated"
RULE_EXECUTED_ACTION_TYPE = "rule_executed"


class ErrorType(str, enum.Enum):
    """Why an action failed, as shown to operators."""

    VALIDATION = "validation"
    PERMISSION = "permission"
    TIMEOUT = "timeout"
    EXECUTION = "execution"
    UNKNOWN = "unknown"


class ExecutionStatus(str, enum.Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"

    @classmethod
    def from_outcomes(cls, outcomes: list[ActionOutcome] | tuple[ActionOutcome, ...]) -> ExecutionStatus:
        """success if every action succeeded, partial if some did, failed if none did.

        A rule with no actions counts as success.
        """
        succeeded = sum(1 for o in outcomes if o.success)
        if succeeded == len(outcomes):
            return cls.SUCCESS
        if succeeded > 0:
            return cls.PARTIAL
        return cls.FAILED


@dataclass(frozen=True)
class ActionOutcome:
    """Result of running one action.

    ``details`` holds decision data a handler reported, such as candidate
    scores for automatic assignment.
    """

    position: int
    action_type: str
    success: bool
    message: str
    error_type: ErrorType | None = None
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "position": self.position,
            "action": self.action_type,
            "success": self.success,
            "message": self.message,
            "error_type": self.error_type.value if self.error_type else None,
        }
        if self.details:
            data["details"] = self.details
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ActionOutcome:
        error_type = data.get("error_type")
        return cls(
            position=int(data.get("position", 0)),
            action_type=str(data.get("action", "")),
            success=bool(data.get("success")),
            message=str(data.get("message", "")),
            error_type=ErrorType(error_type) if error_type else None,
            details=data.get("details"),
        )


@dataclass(frozen=True)
class ExecutionOutcome:
    """Result of running one rule's ordered action list against one work order."""

    rule_id: str
    work_order_id: str
    status: ExecutionStatus
    outcomes: tuple[ActionOutcome, ...]
    execution_time_ms: float
    started_at: datetime

    @property
    def failures(self) -> tuple[ActionOutcome, ...]:
        return tuple(o for o in self.outcomes if not o.success)


@dataclass(frozen=True)
class ExecutionLogEntry:
    """Append-only audit record of one firing.

    ``id`` is None until the entry has been appended to the audit log.
    ``dismissed_at`` is the only field ever written after creation.
    """

    rule_id: str | None
    rule_name: str
    rule_type: str
    work_order_id: str | None
    action_type: str
    status: ExecutionStatus
    created_at: datetime
    action_details: dict[str, Any] = field(default_factory=dict)
    error_message: str | None = None
    execution_time_ms: float | None = None
    trigger_context: dict[str, Any] = field(default_factory=dict)
    decision_factors: dict[str, Any] = field(default_factory=dict)
    dismissed_at: datetime | None = None
    id: int | None = None

    @classmethod
    def from_outcome(
        cls,
        rule: AutomationRule,
        outcome: ExecutionOutcome,
        *,
        action_type: str,
        trigger_context: dict[str, Any] | None = None,
        decision_factors: dict[str, Any] | None = None,
    ) -> ExecutionLogEntry:
        """Build the log entry for one firing of ``rule``.

        Details reported by individual actions are added to the decision
        factors under ``action_factors``, keyed by action position.
        """
        failures = outcome.failures
        factors = dict(decision_factors or {})
        action_factors = {str(o.position): o.details for o in outcome.outcomes if o.details}
        if action_factors:
            factors["action_factors"] = action_factors
        return cls(
            rule_id=rule.id,
            rule_name=rule.name,
            rule_type=rule.rule_type.value,
            work_order_id=outcome.work_order_id,
            action_type=action_type,
            status=outcome.status,
            created_at=outcome.started_at,
            action_details={"actions_taken": [o.to_dict() for o in outcome.outcomes]},
            error_message="; ".join(f"{o.action_type}: {o.message}" for o in failures) or None,
            execution_time_ms=outcome.execution_time_ms,
            trigger_context=dict(trigger_context or {}),
            decision_factors=factors,
        )

    @property
    def action_outcomes(self) -> list[ActionOutcome]:
        return [
            ActionOutcome.from_dict(d)
            for d in self.action_details.get("actions_taken", [])
        ]

    @property
    def is_dismissed(self) -> bool:
        return self.dismissed_at is not None


@dataclass(frozen=True)
class LogFilter:
    """Query for list_recent_logs(). All criteria are ANDed; newest first.

    ``limit=None`` returns every matching entry.
    """

    rule_id: str | None = None
    work_order_id: str | None = None
    action_type: str | None = None
    statuses: tuple[ExecutionStatus, ...] | None = None
    since: datetime | None = None
    until: datetime | None = None
    include_dismissed: bool = True
    limit: int | None = 100


@dataclass(frozen=True)
class FiringResult:
    """One (rule, work order) firing and where its log entry landed."""

    rule_id: str
    rule_name: str
    work_order_id: str
    outcome: ExecutionOutcome
    log_id: int | None = None

    @property
    def status(self) -> ExecutionStatus:
        return self.outcome.status


@dataclass(frozen=True)
class EventResult:
    """Outcome of handling one domain event."""

    entity_id: str
    trigger_types: tuple[str, ...] = ()
    firings: tuple[FiringResult, ...] = ()
    skipped_reason: str | None = None


@dataclass(frozen=True)
class EscalationResult:
    """One escalation fired by a sweep."""

    work_order_id: str
    work_order_number: str
    sla_status: str
    sla_consumed_percent: float
    rule_id: str
    rule_applied: str
    status: ExecutionStatus
    actions: tuple[ActionOutcome, ...]
    log_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "work_order_id": self.work_order_id,
            "work_order_number": self.work_order_number,
            "sla_status": self.sla_status,
            "sla_consumed_percent": self.sla_consumed_percent,
            "rule_id": self.rule_id,
            "rule_applied": self.rule_applied,
            "status": self.status.value,
            "actions": [a.to_dict() for a in self.actions],
            "log_id": self.log_id,
        }


@dataclass(frozen=True)
class SweepResult:
    """Aggregate result of one escalation sweep."""

    message: str
    work_orders_checked: int = 0
    escalations_triggered: int = 0
    escalations_suppressed: int = 0
    execution_time_ms: float = 0.0
    results: tuple[EscalationResult, ...] = ()
    rules_fired: tuple[str, ...] = ()
    enabled: bool = True
    cancelled: bool = False
    aborted: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "enabled": self.enabled,
            "work_orders_checked": self.work_orders_checked,
            "escalations_triggered": self.escalations_triggered,
            "escalations_suppressed": self.escalations_suppressed,
            "execution_time_ms": self.execution_time_ms,
            "rules_fired": list(self.rules_fired),
            "cancelled": self.cancelled,
            "aborted": self.aborted,
            "error": self.error,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass(frozen=True)
class AutomationMetrics:
    """Summary of a set of execution log entries."""

    total_executions: int
    successful: int
    partial: int
    failed: int
    success_rate: float
    total_escalations: int
    average_execution_time_ms: float
    top_failure_reasons: tuple[tuple[str, int], ...] = ()
