"""Fixflow exception hierarchy.

All Fixflow-specific exceptions inherit from FixflowError.

Pure components (condition evaluation, SLA math) never raise these for bad
input. Only boundary calls against the backing store produce StoreError,
and only StoreError aborts a sweep tick or an event.
"""

from __future__ import annotations


class FixflowError(Exception):
    """Base exception for all Fixflow errors."""


class StoreError(FixflowError):
    """Raised when the backing store cannot serve a boundary call."""


class StoreUnavailableError(StoreError):
    """Raised when the backing store is unreachable."""


class StoreTimeoutError(StoreError):
    """Raised when a boundary call exceeds its caller-imposed timeout."""


class WorkOrderNotFoundError(FixflowError):
    """Raised when a work order id lookup fails."""

    def __init__(self, work_order_id: str) -> None:
        self.work_order_id = work_order_id
        super().__init__(f"Work order not found: {work_order_id}")


class RuleNotFoundError(FixflowError):
    """Raised when an automation rule id lookup fails."""

    def __init__(self, rule_id: str) -> None:
        self.rule_id = rule_id
        super().__init__(f"Automation rule not found: {rule_id}")


class LogEntryNotFoundError(FixflowError):
    """Raised when an execution log entry id lookup fails."""

    def __init__(self, log_id: int) -> None:
        self.log_id = log_id
        super().__init__(f"Execution log entry not found: {log_id}")


class InvalidFieldError(FixflowError):
    """Raised when a field update names a field the store does not allow."""

    def __init__(self, field_name: str) -> None:
        self.field_name = field_name
        super().__init__(f"Field cannot be updated by automation: {field_name}")


class RuleConfigError(FixflowError):
    """Raised when a rule record is structurally unusable.

    Condition- and action-level problems never raise this; they degrade
    to InvalidCondition / UnknownAction variants at load time.
    """


class ActionError(FixflowError):
    """Classified failure of a single action.

    Raised by action handlers; the executor turns it into a failed
    ActionOutcome carrying ``error_type`` and any ``details``.
    """

    def __init__(
        self, message: str, error_type: str = "execution", details: dict | None = None
    ) -> None:
        self.error_type = error_type
        self.details = details
        super().__init__(message)


class SweepAbortedError(FixflowError):
    """Raised when an infrastructure failure aborts an escalation sweep."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Escalation sweep aborted: {reason}")


class InvalidEventError(FixflowError):
    """Raised when an incoming event record cannot be read as a DomainEvent."""
