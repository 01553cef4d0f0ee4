"""AutomationEngine -- entry point tying the pieces to one backing store.

Two invocation paths:

- handle_event(): one domain event, one entity. Classify, snapshot once,
  select matching rules, execute each in priority order, log each firing,
  bump each fired rule's bookkeeping.
- run_sweep(): one escalation sweep (see fixflow.sla.sweeper).

Plus the operator surface: retry_firing(), dismiss_log(), log queries.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any

import tenacity

from fixflow.actions.executor import ActionExecutor
from fixflow.actions.handlers import HandlerRegistry
from fixflow.audit import summarize_logs
from fixflow.conditions.evaluator import EvaluationContext
from fixflow.exceptions import (
    InvalidEventError,
    RuleNotFoundError,
    StoreTimeoutError,
    WorkOrderNotFoundError,
)
from fixflow.models.config import AutomationSettings, EngineConfig
from fixflow.models.events import DomainEvent, EventKind
from fixflow.models.execution import (
    RULE_EXECUTED_ACTION_TYPE,
    AutomationMetrics,
    EventResult,
    ExecutionLogEntry,
    FiringResult,
    LogFilter,
    SweepResult,
)
from fixflow.models.rule import AutomationRule, RuleType
from fixflow.models.sla import SLAStatus
from fixflow.models.work_order import WorkOrderSnapshot
from fixflow.protocols import AutomationStore
from fixflow.rules.selector import MatchedRule, RuleSelector
from fixflow.sla.calculator import SLACalculator
from fixflow.sla.sweeper import EscalationSweeper
from fixflow.triggers.classifier import classify

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class AutomationEngine:
    """Rule engine bound to one AutomationStore.

    Example::

        store = SqlAutomationStore.open("fixflow.db")
        engine = AutomationEngine(store)
        engine.handle_event({
            "entity_id": "wo-1",
            "event_kind": "status_changed",
            "before": {"status": "New"},
            "after": {"status": "In Progress"},
            "occurred_at": "2025-01-01T09:00:00",
        })
        engine.run_sweep()
    """

    def __init__(
        self,
        store: AutomationStore,
        config: EngineConfig | None = None,
        *,
        registry: HandlerRegistry | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._config = config or EngineConfig()
        self._clock = clock or _now
        self._executor = ActionExecutor(store, registry)
        self._selector = RuleSelector()
        self._calculator = SLACalculator(self._config.at_risk_threshold_percent)
        self._sweeper = EscalationSweeper(
            store, self._config, executor=self._executor, clock=self._clock
        )

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def store(self) -> AutomationStore:
        return self._store

    # ------------------------------------------------------------------
    # Event path
    # ------------------------------------------------------------------

    def handle_event(self, event: DomainEvent | Mapping[str, Any]) -> EventResult:
        """Fire every active rule the event matches.

        Returns an empty result (with ``skipped_reason``) for malformed event
        records, events that satisfy no trigger, and events whose work order
        does not exist.

        Raises:
            StoreError: If the store fails while loading or logging; the
                event is abandoned.
        """
        if not isinstance(event, DomainEvent):
            try:
                event = DomainEvent.from_record(event)
            except InvalidEventError as exc:
                logger.warning("Ignoring invalid event: %s", exc)
                return EventResult(
                    entity_id=str(event.get("entity_id") or ""),
                    skipped_reason=f"invalid event: {exc}",
                )

        if event.kind is EventKind.SLA_TICK:
            return EventResult(
                entity_id=event.entity_id,
                skipped_reason="sla_tick events are handled by the escalation sweep",
            )

        matches = classify(event)
        if not matches:
            return EventResult(entity_id=event.entity_id, skipped_reason="no trigger matched")
        trigger_types = tuple(m.trigger_type.value for m in matches)

        try:
            snapshot = self._store.get_snapshot(event.entity_id)
        except WorkOrderNotFoundError:
            logger.warning(
                "Event %s for unknown work order %s ignored", event.kind.value, event.entity_id
            )
            return EventResult(
                entity_id=event.entity_id,
                trigger_types=trigger_types,
                skipped_reason="work order not found",
            )

        rules = self._store.list_active_rules()
        context = EvaluationContext(now=event.occurred_at)
        selected = self._selector.select(matches, snapshot, rules, context)

        firings = [self._fire(m, snapshot, event) for m in selected]
        logger.info(
            "Event %s on %s: %d trigger(s), %d rule(s) fired",
            event.kind.value, event.entity_id, len(matches), len(firings),
        )
        return EventResult(
            entity_id=event.entity_id,
            trigger_types=trigger_types,
            firings=tuple(firings),
        )

    def _fire(self, matched: MatchedRule, snapshot: WorkOrderSnapshot, event: DomainEvent) -> FiringResult:
        rule = matched.rule
        now = self._clock()
        outcome = self._executor.execute(rule, snapshot, now=now)
        trigger = matched.trigger
        entry = ExecutionLogEntry.from_outcome(
            rule,
            outcome,
            action_type=RULE_EXECUTED_ACTION_TYPE,
            trigger_context={
                "event_kind": event.kind.value,
                "trigger": trigger.trigger_type.value,
                "trigger_value": trigger.value,
                "from_value": trigger.from_value,
                "property_selector": trigger.property_selector,
                "occurred_at": event.occurred_at.isoformat(),
            },
            decision_factors={
                "conditions_logic": rule.conditions_logic.value,
                "conditions": [
                    {"condition": r.label, "matched": r.matched} for r in matched.report.results
                ],
                "diagnostics": list(matched.report.diagnostics),
            },
        )
        log_id = self._store.append_log(entry)
        self._store.increment_execution(rule.id, now)
        return FiringResult(
            rule_id=rule.id,
            rule_name=rule.name,
            work_order_id=snapshot.id,
            outcome=outcome,
            log_id=log_id,
        )

    # ------------------------------------------------------------------
    # Sweep path
    # ------------------------------------------------------------------

    def run_sweep(
        self,
        settings: AutomationSettings | None = None,
        **kwargs: Any,
    ) -> SweepResult:
        """Run one escalation sweep. See EscalationSweeper.run()."""
        return self._sweeper.run(settings, **kwargs)

    # ------------------------------------------------------------------
    # Operator surface
    # ------------------------------------------------------------------

    def _retrying(self) -> tenacity.Retrying:
        return tenacity.Retrying(
            retry=tenacity.retry_if_exception_type(StoreTimeoutError),
            wait=tenacity.wait_exponential(
                multiplier=self._config.retry_backoff_seconds, max=10
            ),
            stop=tenacity.stop_after_attempt(self._config.retry_attempts),
            before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    def retry_firing(self, log_id: int) -> FiringResult:
        """Re-run the rule recorded in a log entry against a fresh snapshot.

        Appends a new log entry referencing the original through
        ``trigger_context["retry_of"]``; the original entry is untouched.
        Store timeouts while loading are retried with exponential backoff.
        Actions are not retried.

        Raises:
            LogEntryNotFoundError: If ``log_id`` does not exist.
            RuleNotFoundError: If the rule has since been deleted.
            WorkOrderNotFoundError: If the work order no longer exists.
            StoreError: If loading still fails after all attempts.
        """
        retryer = self._retrying()
        original = retryer(self._store.get_log, log_id)
        if original.rule_id is None:
            raise RuleNotFoundError("<none>")
        if original.work_order_id is None:
            raise WorkOrderNotFoundError("<none>")

        rule: AutomationRule = retryer(self._store.get_rule, original.rule_id)
        snapshot = retryer(self._store.get_snapshot, original.work_order_id)
        now = self._clock()

        sla_status = None
        decision_factors: dict[str, Any] = {"retry": True}
        if rule.rule_type is RuleType.SLA_ESCALATION:
            sla_status = self._calculator.compute(snapshot, now)
            decision_factors.update(
                sla_consumed_percent=sla_status.sla_consumed_percent,
                sla_status=sla_status.status.value,
                escalation_level=original.decision_factors.get("escalation_level", 1),
            )

        outcome = self._executor.execute(rule, snapshot, now=now, sla_status=sla_status)
        retry_count = int(original.trigger_context.get("retry_count", 0)) + 1
        entry = ExecutionLogEntry.from_outcome(
            rule,
            outcome,
            action_type=original.action_type,
            trigger_context={
                **original.trigger_context,
                "retry_of": log_id,
                "retry_count": retry_count,
            },
            decision_factors=decision_factors,
        )
        new_id = self._store.append_log(entry)
        self._store.increment_execution(rule.id, now)
        logger.info(
            "Retried log entry %d as %d: rule '%s' on %s -> %s",
            log_id, new_id, rule.name, snapshot.id, outcome.status.value,
        )
        return FiringResult(
            rule_id=rule.id,
            rule_name=rule.name,
            work_order_id=snapshot.id,
            outcome=outcome,
            log_id=new_id,
        )

    def sla_status(self, work_order_id: str) -> SLAStatus:
        """Current SLA phase of one work order.

        Raises:
            WorkOrderNotFoundError: If the work order does not exist.
        """
        return self._calculator.compute(self._store.get_snapshot(work_order_id), self._clock())

    def dismiss_log(self, log_id: int) -> None:
        """Mark a log entry as dismissed. Nothing else about it changes."""
        self._store.dismiss_log(log_id, self._clock())

    def list_recent_logs(self, log_filter: LogFilter | None = None) -> list[ExecutionLogEntry]:
        return list(self._store.list_recent_logs(log_filter or LogFilter()))

    def metrics(self, log_filter: LogFilter | None = None) -> AutomationMetrics:
        return summarize_logs(self.list_recent_logs(log_filter or LogFilter(limit=None)))
