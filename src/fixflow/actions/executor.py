"""Action Executor -- runs one rule's ordered actions against one work order.

Actions run in their stored order. Each action's result is captured
independently: a failing action never stops the ones after it, and no
exception escapes execute(). The overall status is derived from the
per-action outcomes (see ExecutionStatus.from_outcomes).
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from pydantic import BaseModel

from fixflow.actions.handlers import (
    NOT_IMPLEMENTED_MESSAGE,
    ActionContext,
    ActionReport,
    HandlerRegistry,
    default_registry,
)
from fixflow.exceptions import (
    ActionError,
    InvalidFieldError,
    StoreError,
    StoreTimeoutError,
    WorkOrderNotFoundError,
)
from fixflow.models.actions import action_type_name
from fixflow.models.execution import (
    ActionOutcome,
    ErrorType,
    ExecutionOutcome,
    ExecutionStatus,
)
from fixflow.models.rule import AutomationRule
from fixflow.models.sla import SLAStatus
from fixflow.models.work_order import WorkOrderSnapshot
from fixflow.protocols import TechnicianDirectory, WorkOrderMutator

logger = logging.getLogger(__name__)

IMMEDIATE = "immediate"


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def classify_error(exc: BaseException) -> ErrorType:
    """Map an exception raised by a handler to the operator-facing error type."""
    if isinstance(exc, ActionError):
        try:
            return ErrorType(exc.error_type)
        except ValueError:
            return ErrorType.EXECUTION
    if isinstance(exc, (WorkOrderNotFoundError, InvalidFieldError)):
        return ErrorType.VALIDATION
    if isinstance(exc, (StoreTimeoutError, TimeoutError)):
        return ErrorType.TIMEOUT
    if isinstance(exc, PermissionError):
        return ErrorType.PERMISSION
    if isinstance(exc, StoreError):
        return ErrorType.EXECUTION
    return ErrorType.UNKNOWN


class ActionExecutor:
    """Dispatches actions to registered handlers and rolls up outcomes.

    ``directory`` serves automatic assignment; by default the mutator is
    used when it also implements TechnicianDirectory.
    """

    def __init__(
        self,
        mutator: WorkOrderMutator,
        registry: HandlerRegistry | None = None,
        directory: TechnicianDirectory | None = None,
    ) -> None:
        self._mutator = mutator
        self._registry = registry or default_registry()
        if directory is None and isinstance(mutator, TechnicianDirectory):
            directory = mutator
        self._directory = directory

    def execute(
        self,
        rule: AutomationRule,
        snapshot: WorkOrderSnapshot,
        *,
        now: datetime | None = None,
        sla_status: SLAStatus | None = None,
    ) -> ExecutionOutcome:
        """Run every action of ``rule`` against ``snapshot``.

        Never raises; failures are recorded per action.
        """
        started_at = now or _now()
        ctx = ActionContext(
            mutator=self._mutator,
            now=started_at,
            rule=rule,
            sla_status=sla_status,
            directory=self._directory,
        )
        start = time.perf_counter()
        outcomes = [
            self._run_one(position, action, snapshot, ctx)
            for position, action in enumerate(rule.actions)
        ]
        elapsed_ms = (time.perf_counter() - start) * 1000

        status = ExecutionStatus.from_outcomes(outcomes)
        logger.debug(
            "Rule '%s' on %s: %s (%d action(s), %.1f ms)",
            rule.name,
            snapshot.id,
            status.value,
            len(outcomes),
            elapsed_ms,
        )
        return ExecutionOutcome(
            rule_id=rule.id,
            work_order_id=snapshot.id,
            status=status,
            outcomes=tuple(outcomes),
            execution_time_ms=elapsed_ms,
            started_at=started_at,
        )

    def _run_one(
        self,
        position: int,
        action: BaseModel,
        snapshot: WorkOrderSnapshot,
        ctx: ActionContext,
    ) -> ActionOutcome:
        name = action_type_name(action)

        def failed(message: str, error_type: ErrorType, details: dict | None = None) -> ActionOutcome:
            return ActionOutcome(
                position=position,
                action_type=name,
                success=False,
                message=message,
                error_type=error_type,
                details=details,
            )

        execute_on = getattr(action, "execute_on", IMMEDIATE)
        if execute_on != IMMEDIATE:
            logger.warning(
                "Rule '%s' action %d (%s): execute_on=%r is not supported",
                ctx.rule.name, position, name, execute_on,
            )
            return failed("deferred execution is not supported", ErrorType.VALIDATION)

        handler = self._registry.get(type(action))
        if handler is None:
            logger.warning("Rule '%s' action %d: no handler for %s", ctx.rule.name, position, name)
            return failed(NOT_IMPLEMENTED_MESSAGE, ErrorType.VALIDATION)

        try:
            result = handler(action, snapshot, ctx)
        except Exception as exc:
            error_type = classify_error(exc)
            if error_type is ErrorType.UNKNOWN:
                logger.error(
                    "Rule '%s' action %d (%s) raised %s: %s",
                    ctx.rule.name, position, name, type(exc).__name__, exc,
                )
            elif error_type is ErrorType.VALIDATION:
                logger.warning(
                    "Rule '%s' action %d (%s) failed: %s", ctx.rule.name, position, name, exc
                )
            else:
                logger.info(
                    "Rule '%s' action %d (%s) failed (%s): %s",
                    ctx.rule.name, position, name, error_type.value, exc,
                )
            return failed(
                str(exc) or type(exc).__name__, error_type, getattr(exc, "details", None)
            )

        if isinstance(result, ActionReport):
            return ActionOutcome(
                position=position,
                action_type=name,
                success=True,
                message=result.message,
                details=result.details or None,
            )
        return ActionOutcome(position=position, action_type=name, success=True, message=result)
