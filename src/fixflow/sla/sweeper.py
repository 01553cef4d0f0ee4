"""Escalation Sweeper -- periodic SLA re-evaluation and escalation firing.

One run():

1. Guard on the SLA monitoring setting (no loads at all when disabled).
2. Load active ``sla_escalation`` rules, priority descending.
3. Load work orders with an SLA deadline and a non-terminal status.
4. Per work order: compute SLAStatus, walk the rules in priority order,
   fire every rule whose target sets admit it, append one log entry per
   firing.
5. Bump bookkeeping once per fired rule.

Per-work-order work is independent and may run on a bounded thread
pool. Results are returned in load order regardless of completion order.
Cancellation is observed between work orders, never mid-action.

Store failures while loading, logging or bookkeeping abort the sweep;
run() reports them in the result, run_or_raise() raises.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone

from fixflow.actions.executor import ActionExecutor
from fixflow.exceptions import StoreError, SweepAbortedError
from fixflow.models.config import AutomationSettings, EngineConfig
from fixflow.models.events import ESCALATION_TRIGGER_FAMILY, TriggerType
from fixflow.models.execution import (
    ESCALATED_ACTION_TYPE,
    EscalationResult,
    ExecutionLogEntry,
    ExecutionStatus,
    LogFilter,
    SweepResult,
)
from fixflow.models.rule import AutomationRule, RuleType
from fixflow.models.sla import SLAPhase, SLAStatus
from fixflow.models.work_order import WorkOrderSnapshot
from fixflow.protocols import AutomationStore
from fixflow.rules.selector import order_by_priority
from fixflow.sla.calculator import SLACalculator

logger = logging.getLogger(__name__)

ESCALATION_LEVEL = 1

_SUPPRESSING_STATUSES = (ExecutionStatus.SUCCESS, ExecutionStatus.PARTIAL)


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _hours(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def escalation_trigger_matches(rule: AutomationRule, status: SLAStatus) -> bool:
    """Whether the rule's escalation trigger fires for ``status``.

    ``sla_tick`` fires on every sweep. ``work_order_due_within`` needs at
    most ``trigger_value`` hours remaining, ``work_order_overdue_by`` at
    least ``trigger_value`` hours overdue. A missing or non-numeric
    threshold never fires.
    """
    ttype = rule.trigger.trigger_type
    if ttype == TriggerType.SLA_TICK.value:
        return True
    threshold = _hours(rule.trigger.trigger_value)
    if threshold is None:
        logger.warning(
            "Escalation rule '%s' has non-numeric threshold %r for %s",
            rule.name, rule.trigger.trigger_value, ttype,
        )
        return False
    if ttype == TriggerType.DUE_WITHIN.value:
        return status.time_remaining_hours is not None and status.time_remaining_hours <= threshold
    if ttype == TriggerType.OVERDUE_BY.value:
        return status.time_overdue_hours is not None and status.time_overdue_hours >= threshold
    return False


@dataclass
class _EntityResult:
    index: int
    checked: bool = False
    results: list[EscalationResult] = field(default_factory=list)
    fired_rule_ids: set[str] = field(default_factory=set)
    suppressed: int = 0


class EscalationSweeper:
    """Runs escalation sweeps against an AutomationStore.

    Stateless across runs: everything carried between sweeps lives in the
    store (rule bookkeeping and the execution log).
    """

    def __init__(
        self,
        store: AutomationStore,
        config: EngineConfig | None = None,
        *,
        executor: ActionExecutor | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._config = config or EngineConfig()
        self._executor = executor or ActionExecutor(store)
        self._calculator = SLACalculator(self._config.at_risk_threshold_percent)
        self._clock = clock or _now

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(
        self,
        settings: AutomationSettings | None = None,
        *,
        cancel: threading.Event | None = None,
        deadline: float | None = None,
        max_workers: int | None = None,
    ) -> SweepResult:
        """Run one sweep.

        Args:
            settings: Explicit automation settings. When None, the SLA
                monitoring toggle is read from the store.
            cancel: Set to stop the sweep between work orders.
            deadline: ``time.monotonic()`` value after which no further
                work orders are started.
            max_workers: Worker pool size; defaults to the engine config.

        Returns:
            SweepResult. Infrastructure failures set ``aborted`` and
            ``error`` instead of raising.
        """
        start = time.perf_counter()
        try:
            return self._run(settings, cancel, deadline, max_workers, start)
        except StoreError as exc:
            logger.error("Escalation sweep aborted: %s", exc)
            return SweepResult(
                message="Escalation sweep aborted",
                execution_time_ms=(time.perf_counter() - start) * 1000,
                aborted=True,
                error=str(exc),
            )

    def run_or_raise(
        self,
        settings: AutomationSettings | None = None,
        *,
        cancel: threading.Event | None = None,
        deadline: float | None = None,
        max_workers: int | None = None,
    ) -> SweepResult:
        """Like run(), but raises SweepAbortedError on an aborted sweep."""
        result = self.run(
            settings, cancel=cancel, deadline=deadline, max_workers=max_workers
        )
        if result.aborted:
            raise SweepAbortedError(result.error or "unknown error")
        return result

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    def _elapsed_ms(self, start: float) -> float:
        return (time.perf_counter() - start) * 1000

    def _run(
        self,
        settings: AutomationSettings | None,
        cancel: threading.Event | None,
        deadline: float | None,
        max_workers: int | None,
        start: float,
    ) -> SweepResult:
        key = self._config.sla_monitoring_setting_key
        if settings is None:
            settings = AutomationSettings.load(self._store, keys=[key])
        if not settings.is_enabled(key):
            logger.debug("SLA monitoring disabled; sweep skipped")
            return SweepResult(
                message="SLA monitoring is disabled",
                enabled=False,
                execution_time_ms=self._elapsed_ms(start),
            )

        rules = [
            r
            for r in order_by_priority(
                self._store.list_active_rules(RuleType.SLA_ESCALATION.value)
            )
            if r.trigger.trigger_type in ESCALATION_TRIGGER_FAMILY
        ]
        if not rules:
            return SweepResult(
                message="No active SLA escalation rules",
                execution_time_ms=self._elapsed_ms(start),
            )

        terminal = self._config.terminal_statuses
        entities = [
            wo
            for wo in self._store.list_active_sla_entities()
            if wo.sla_due is not None and wo.status not in terminal
        ]
        now = self._clock()
        logger.info(
            "Escalation sweep started: %d rule(s), %d work order(s)",
            len(rules), len(entities),
        )

        stop = threading.Event()

        def should_stop() -> bool:
            if stop.is_set():
                return True
            if cancel is not None and cancel.is_set():
                return True
            return deadline is not None and time.monotonic() >= deadline

        def work(index: int, wo: WorkOrderSnapshot) -> _EntityResult:
            if should_stop():
                return _EntityResult(index=index)
            try:
                return self._process_entity(index, wo, rules, now)
            except StoreError:
                stop.set()
                raise

        workers = max_workers or self._config.max_workers
        entity_results: list[_EntityResult] = []
        failure: StoreError | None = None
        if workers <= 1:
            for index, wo in enumerate(entities):
                try:
                    entity_results.append(work(index, wo))
                except StoreError as exc:
                    failure = exc
                    break
        else:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [pool.submit(work, i, wo) for i, wo in enumerate(entities)]
                for future in futures:
                    try:
                        entity_results.append(future.result())
                    except StoreError as exc:
                        failure = failure or exc

        entity_results.sort(key=lambda r: r.index)
        results = [res for er in entity_results for res in er.results]
        checked = sum(1 for er in entity_results if er.checked)
        suppressed = sum(er.suppressed for er in entity_results)
        fired = {rid for er in entity_results for rid in er.fired_rule_ids}
        rules_fired = tuple(r.id for r in rules if r.id in fired)

        if failure is None:
            for rule_id in rules_fired:
                try:
                    self._store.increment_execution(rule_id, now)
                except StoreError as exc:
                    failure = exc
                    break

        cancelled = failure is None and checked < len(entities)
        if failure is not None:
            logger.error("Escalation sweep aborted after %d work order(s): %s", checked, failure)
            return SweepResult(
                message="Escalation sweep aborted",
                work_orders_checked=checked,
                escalations_triggered=len(results),
                escalations_suppressed=suppressed,
                execution_time_ms=self._elapsed_ms(start),
                results=tuple(results),
                rules_fired=rules_fired,
                aborted=True,
                error=str(failure),
            )
        if cancelled:
            logger.warning(
                "Escalation sweep cancelled after %d of %d work order(s)",
                checked, len(entities),
            )

        elapsed = self._elapsed_ms(start)
        logger.info(
            "Escalation sweep finished: %d checked, %d escalated, %d suppressed (%.1f ms)",
            checked, len(results), suppressed, elapsed,
        )
        return SweepResult(
            message=(
                f"Checked {checked} work order(s), "
                f"triggered {len(results)} escalation(s)"
            ),
            work_orders_checked=checked,
            escalations_triggered=len(results),
            escalations_suppressed=suppressed,
            execution_time_ms=elapsed,
            results=tuple(results),
            rules_fired=rules_fired,
            cancelled=cancelled,
        )

    # ------------------------------------------------------------------
    # Per work order
    # ------------------------------------------------------------------

    def _already_escalated(self, wo: WorkOrderSnapshot) -> set[tuple[str, str]]:
        """(rule id, SLA phase) pairs with a non-failed escalation on record."""
        if not self._config.suppress_repeat_escalations:
            return set()
        entries = self._store.list_recent_logs(
            LogFilter(
                work_order_id=wo.id,
                action_type=ESCALATED_ACTION_TYPE,
                statuses=_SUPPRESSING_STATUSES,
                limit=None,
            )
        )
        return {
            (e.rule_id, str(e.decision_factors.get("sla_status")))
            for e in entries
            if e.rule_id is not None
        }

    def _process_entity(
        self,
        index: int,
        wo: WorkOrderSnapshot,
        rules: Sequence[AutomationRule],
        now: datetime,
    ) -> _EntityResult:
        result = _EntityResult(index=index, checked=True)
        status = self._calculator.compute(wo, now)
        if status.status is SLAPhase.NO_SLA:
            return result

        candidates = [
            r
            for r in rules
            if r.escalation.admits(status.status.value, wo.status)
            and escalation_trigger_matches(r, status)
        ]
        if not candidates:
            return result

        history = self._already_escalated(wo)
        for rule in candidates:
            if (rule.id, status.status.value) in history:
                logger.debug(
                    "Rule '%s' already escalated %s at %s; skipped",
                    rule.name, wo.work_order_number, status.status.value,
                )
                result.suppressed += 1
                continue

            outcome = self._executor.execute(rule, wo, now=now, sla_status=status)
            decision_factors = {
                "sla_consumed_percent": status.sla_consumed_percent,
                "escalation_level": ESCALATION_LEVEL,
                "sla_status": status.status.value,
            }
            if status.time_remaining_hours is not None:
                decision_factors["time_remaining_hours"] = status.time_remaining_hours
            if status.time_overdue_hours is not None:
                decision_factors["time_overdue_hours"] = status.time_overdue_hours
            entry = ExecutionLogEntry.from_outcome(
                rule,
                outcome,
                action_type=ESCALATED_ACTION_TYPE,
                trigger_context={"trigger": rule.trigger.trigger_type, "sweep_at": now.isoformat()},
                decision_factors=decision_factors,
            )
            log_id = self._store.append_log(entry)
            result.fired_rule_ids.add(rule.id)
            result.results.append(
                EscalationResult(
                    work_order_id=wo.id,
                    work_order_number=wo.work_order_number,
                    sla_status=status.status.value,
                    sla_consumed_percent=status.sla_consumed_percent,
                    rule_id=rule.id,
                    rule_applied=rule.name,
                    status=outcome.status,
                    actions=outcome.outcomes,
                    log_id=log_id,
                )
            )
        return result
