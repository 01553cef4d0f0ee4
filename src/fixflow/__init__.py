"""Fixflow: rule-driven automation for maintenance work orders.

Domain events and periodic SLA sweeps are matched against declarative
trigger/condition/action rules; every firing is recorded in an audit log.
"""

from fixflow._version import __version__

# Core entry point
from fixflow.engine import AutomationEngine

# Storage
from fixflow.storage.sqlite import SqlAutomationStore

# Domain models
from fixflow.models.work_order import (
    TERMINAL_STATUSES,
    WORK_ORDER_PRIORITIES,
    WORK_ORDER_STATUSES,
    ActivityLogEntry,
    WorkOrderSnapshot,
)
from fixflow.models.events import DomainEvent, EventKind, TriggerMatch, TriggerType
from fixflow.models.rule import AutomationRule, ConditionsLogic, RuleType
from fixflow.models.actions import ActionType, parse_action, parse_actions
from fixflow.models.conditions import parse_condition, parse_conditions
from fixflow.models.sla import SLACompliance, SLAPhase, SLAStatus
from fixflow.models.assignment import CandidateScore, Shift, Technician

# Execution and audit results
from fixflow.models.execution import (
    ActionOutcome,
    AutomationMetrics,
    ErrorType,
    EscalationResult,
    EventResult,
    ExecutionLogEntry,
    ExecutionOutcome,
    ExecutionStatus,
    FiringResult,
    LogFilter,
    SweepResult,
)

# Configuration
from fixflow.models.config import AutomationSettings, EngineConfig

# Protocols
from fixflow.protocols import (
    AuditLog,
    AutomationStore,
    RuleStore,
    SettingsStore,
    SnapshotProvider,
    TechnicianDirectory,
    WorkOrderMutator,
)

# Engine components
from fixflow.actions import ActionExecutor, HandlerRegistry
from fixflow.assignment import rank_candidates
from fixflow.conditions import evaluate, explain
from fixflow.rules import RuleConflict, detect_conflicts
from fixflow.sla import EscalationSweeper, SLACalculator
from fixflow.triggers import classify

# Exceptions
from fixflow.exceptions import (
    ActionError,
    FixflowError,
    InvalidEventError,
    InvalidFieldError,
    LogEntryNotFoundError,
    RuleConfigError,
    RuleNotFoundError,
    StoreError,
    StoreTimeoutError,
    StoreUnavailableError,
    SweepAbortedError,
    WorkOrderNotFoundError,
)

__all__ = [
    "__version__",
    # Core
    "AutomationEngine",
    "SqlAutomationStore",
    # Domain models
    "ActivityLogEntry",
    "WorkOrderSnapshot",
    "TERMINAL_STATUSES",
    "WORK_ORDER_PRIORITIES",
    "WORK_ORDER_STATUSES",
    "DomainEvent",
    "EventKind",
    "TriggerMatch",
    "TriggerType",
    "AutomationRule",
    "ConditionsLogic",
    "RuleType",
    "ActionType",
    "parse_action",
    "parse_actions",
    "parse_condition",
    "parse_conditions",
    "SLACompliance",
    "SLAPhase",
    "SLAStatus",
    "CandidateScore",
    "Shift",
    "Technician",
    # Results
    "ActionOutcome",
    "AutomationMetrics",
    "ErrorType",
    "EscalationResult",
    "EventResult",
    "ExecutionLogEntry",
    "ExecutionOutcome",
    "ExecutionStatus",
    "FiringResult",
    "LogFilter",
    "SweepResult",
    # Configuration
    "AutomationSettings",
    "EngineConfig",
    # Protocols
    "AuditLog",
    "AutomationStore",
    "RuleStore",
    "SettingsStore",
    "SnapshotProvider",
    "TechnicianDirectory",
    "WorkOrderMutator",
    # Components
    "ActionExecutor",
    "HandlerRegistry",
    "rank_candidates",
    "evaluate",
    "explain",
    "RuleConflict",
    "detect_conflicts",
    "EscalationSweeper",
    "SLACalculator",
    "classify",
    # Exceptions
    "ActionError",
    "FixflowError",
    "InvalidEventError",
    "InvalidFieldError",
    "LogEntryNotFoundError",
    "RuleConfigError",
    "RuleNotFoundError",
    "StoreError",
    "StoreTimeoutError",
    "StoreUnavailableError",
    "SweepAbortedError",
    "WorkOrderNotFoundError",
]
