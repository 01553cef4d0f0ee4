"""Tests for the Escalation Sweeper.

Covers:
- Settings guard (no loads when SLA monitoring is disabled)
- Target-set filtering and escalation trigger thresholds
- Repeat suppression per (rule, SLA phase)
- Rule bookkeeping once per fired rule
- Cancellation and deadlines
- Abort on store failure (run vs run_or_raise)
- Parallel sweeps return results in load order
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import timedelta

import pytest

from fixflow.exceptions import RuleConfigError, StoreUnavailableError, SweepAbortedError
from fixflow.models.config import SLA_MONITORING_ENABLED, AutomationSettings, EngineConfig
from fixflow.models.execution import ExecutionStatus, LogFilter
from fixflow.models.rule import AutomationRule
from fixflow.models.sla import SLAPhase, SLAStatus
from fixflow.sla.sweeper import EscalationSweeper, escalation_trigger_matches
from fixflow.storage.schema import AutomationRuleRow
from fixflow.storage.sqlite import SqlAutomationStore

from tests.conftest import T0, escalation_record, make_snapshot

NOW = T0 + timedelta(hours=8)

ENABLED = AutomationSettings(values={SLA_MONITORING_ENABLED: True})
DISABLED = AutomationSettings(values={SLA_MONITORING_ENABLED: False})


def sweeper(store, **config) -> EscalationSweeper:
    return EscalationSweeper(store, EngineConfig(**config), clock=lambda: NOW)


@pytest.fixture
def seeded(store):
    """Three open work orders: at-risk, overdue, on-track."""
    store.set_setting(SLA_MONITORING_ENABLED, True)
    store.save_work_order(make_snapshot("wo-risk", sla_hours=10))
    store.save_work_order(make_snapshot("wo-late", sla_hours=6))
    store.save_work_order(make_snapshot("wo-fine", sla_hours=40))
    return store


class CountingStore:
    """Delegates to a real store and counts every boundary call."""

    def __init__(self, inner):
        self._inner = inner
        self.calls: list[str] = []

    def __getattr__(self, name):
        attr = getattr(self._inner, name)
        if not callable(attr):
            return attr

        def wrapper(*args, **kwargs):
            self.calls.append(name)
            return attr(*args, **kwargs)

        return wrapper


class FailingLogStore(SqlAutomationStore):
    def append_log(self, entry):
        raise StoreUnavailableError("audit log unreachable")


# ---------------------------------------------------------------------------
# Settings guard
# ---------------------------------------------------------------------------


class TestSettingsGuard:
    def test_disabled_settings_perform_no_loads(self, seeded):
        counting = CountingStore(seeded)
        result = sweeper(counting).run(DISABLED)

        assert result.escalations_triggered == 0
        assert result.enabled is False
        assert result.message == "SLA monitoring is disabled"
        assert counting.calls == []
        assert result.execution_time_ms < 1.0

    def test_setting_read_from_store(self, seeded):
        seeded.set_setting(SLA_MONITORING_ENABLED, False)
        counting = CountingStore(seeded)
        result = sweeper(counting).run()

        assert result.enabled is False
        assert counting.calls == ["get_setting"]

    def test_missing_setting_reads_as_disabled(self, store):
        assert sweeper(store).run().enabled is False

    def test_custom_setting_key(self, seeded):
        seeded.save_rule(escalation_record("e1"))
        settings = AutomationSettings(values={"escalations_on": True})
        result = sweeper(seeded, sla_monitoring_setting_key="escalations_on").run(settings)
        assert result.enabled is True

    def test_no_rules(self, seeded):
        result = sweeper(seeded).run(ENABLED)
        assert result.message == "No active SLA escalation rules"
        assert result.work_orders_checked == 0


# ---------------------------------------------------------------------------
# Firing
# ---------------------------------------------------------------------------


class TestFiring:
    def test_fires_for_targeted_phases(self, seeded):
        seeded.save_rule(escalation_record("e1", sla_status=["at-risk", "overdue"]))
        result = sweeper(seeded).run(ENABLED)

        assert result.work_orders_checked == 3
        assert result.escalations_triggered == 2
        assert {r.work_order_id for r in result.results} == {"wo-risk", "wo-late"}
        assert result.message == "Checked 3 work order(s), triggered 2 escalation(s)"
        assert result.rules_fired == ("e1",)

    def test_log_entries_carry_decision_factors(self, seeded):
        seeded.save_rule(escalation_record("e1", sla_status=["overdue"]))
        result = sweeper(seeded).run(ENABLED)

        (escalation,) = result.results
        entry = seeded.get_log(escalation.log_id)
        assert entry.action_type == "escalated"
        assert entry.status is ExecutionStatus.SUCCESS
        assert entry.decision_factors["sla_status"] == "overdue"
        assert entry.decision_factors["escalation_level"] == 1
        assert entry.decision_factors["time_overdue_hours"] == pytest.approx(2.0)
        assert entry.trigger_context["trigger"] == "sla_tick"

    def test_default_activity_text_names_phase(self, seeded):
        seeded.save_rule(escalation_record("e1", sla_status=["overdue"]))
        sweeper(seeded).run(ENABLED)
        (entry,) = seeded.get_snapshot("wo-late").activity_log
        assert entry.text == "SLA overdue - escalated by automation"

    def test_status_filter(self, seeded):
        seeded.save_work_order(make_snapshot("wo-held", sla_hours=6, status="On Hold"))
        seeded.save_rule(escalation_record("e1", sla_status=["overdue"], status=["On Hold"]))
        result = sweeper(seeded).run(ENABLED)
        assert [r.work_order_id for r in result.results] == ["wo-held"]

    def test_terminal_and_undated_orders_are_skipped(self, seeded):
        seeded.save_work_order(make_snapshot("wo-done", sla_hours=1, status="Completed"))
        seeded.save_work_order(make_snapshot("wo-none", sla_hours=None))
        seeded.save_rule(escalation_record("e1"))
        result = sweeper(seeded).run(ENABLED)
        assert result.work_orders_checked == 3
        assert "wo-done" not in {r.work_order_id for r in result.results}

    def test_rules_fire_in_priority_order(self, seeded):
        seeded.save_rule(escalation_record("low", priority=1, sla_status=["overdue"]))
        seeded.save_rule(escalation_record("high", priority=9, sla_status=["overdue"]))
        result = sweeper(seeded).run(ENABLED)
        assert [r.rule_id for r in result.results] == ["high", "low"]
        logs = seeded.list_recent_logs(LogFilter(work_order_id="wo-late"))
        assert [e.rule_id for e in reversed(logs)] == ["high", "low"]

    def test_bookkeeping_once_per_rule(self, seeded):
        seeded.save_rule(escalation_record("e1"))
        sweeper(seeded).run(ENABLED)
        rule = seeded.get_rule("e1")
        assert rule.execution_count == 1
        assert rule.last_executed_at == NOW

    def test_non_escalation_rules_are_ignored(self, seeded):
        seeded.save_rule(escalation_record("e1", rule_type="notification"))
        seeded.save_rule(escalation_record("e2", trigger="work_order_created"))
        result = sweeper(seeded).run(ENABLED)
        assert result.message == "No active SLA escalation rules"


class TestEscalationTriggers:
    def status(self, **kwargs) -> SLAStatus:
        return SLAStatus(
            work_order_id="wo", work_order_number="WO", status=SLAPhase.AT_RISK,
            sla_consumed_percent=80, **kwargs,
        )

    def rule(self, trigger, value=None) -> AutomationRule:
        return AutomationRule.from_record(escalation_record("e", trigger=trigger, trigger_value=value))

    def test_due_within(self):
        rule = self.rule("work_order_due_within", "2")
        assert escalation_trigger_matches(rule, self.status(time_remaining_hours=1.5))
        assert not escalation_trigger_matches(rule, self.status(time_remaining_hours=3))

    def test_overdue_by(self):
        rule = self.rule("work_order_overdue_by", "1")
        assert escalation_trigger_matches(rule, self.status(time_overdue_hours=2))
        assert not escalation_trigger_matches(rule, self.status(time_remaining_hours=2))

    def test_non_numeric_threshold_never_fires(self):
        rule = self.rule("work_order_due_within", "soon")
        assert not escalation_trigger_matches(rule, self.status(time_remaining_hours=0.1))

    def test_due_within_in_a_sweep(self, seeded):
        seeded.save_rule(escalation_record("e1", trigger="work_order_due_within", trigger_value="3"))
        result = sweeper(seeded).run(ENABLED)
        assert [r.work_order_id for r in result.results] == ["wo-risk"]


class TestRuleRecords:
    def raw_rule(self, session, rule_id, trigger_conditions, priority=5):
        session.add(
            AutomationRuleRow(
                id=rule_id, name=f"Rule {rule_id}", rule_type="sla_escalation",
                is_active=True, priority=priority, execution_count=0, created_at=T0,
                trigger_conditions_json=trigger_conditions,
                actions_json=[{"type": "add_activity_log", "parameters": {}}],
            )
        )
        session.commit()

    def test_numeric_trigger_value_is_accepted(self, seeded, session):
        self.raw_rule(session, "hours", {"trigger": "work_order_due_within", "triggerValue": 3})
        result = sweeper(seeded).run(ENABLED)
        assert [r.work_order_id for r in result.results] == ["wo-risk"]
        assert seeded.get_rule("hours").trigger.trigger_value == "3"

    def test_bad_rule_is_skipped_not_fatal(self, seeded, session, caplog):
        self.raw_rule(session, "bad", {"trigger": "sla_tick", "sla_status": 5}, priority=9)
        seeded.save_rule(escalation_record("good", sla_status=["overdue"]))

        with caplog.at_level(logging.WARNING, logger="fixflow.storage.sqlite"):
            result = sweeper(seeded).run(ENABLED)

        assert not result.aborted
        assert result.rules_fired == ("good",)
        assert [r.work_order_id for r in result.results] == ["wo-late"]
        assert "Skipping rule bad" in caplog.text

    def test_bad_timestamp_is_a_config_error(self):
        record = escalation_record("e1", last_executed_at="yesterday")
        with pytest.raises(RuleConfigError, match="invalid field values"):
            AutomationRule.from_record(record)

    @pytest.mark.parametrize(
        "value,expected",
        [("overdue", {"overdue"}), ("at-risk, overdue", {"at-risk", "overdue"}), ("", None)],
    )
    def test_string_sla_status(self, value, expected):
        rule = AutomationRule.from_record(escalation_record("e1", sla_status=value))
        assert rule.escalation.sla_statuses == (frozenset(expected) if expected else None)

    def test_string_filters_in_a_sweep(self, seeded):
        seeded.save_rule(escalation_record("e1", sla_status="overdue", status="New"))
        result = sweeper(seeded).run(ENABLED)
        assert [r.work_order_id for r in result.results] == ["wo-late"]


# ---------------------------------------------------------------------------
# Suppression
# ---------------------------------------------------------------------------


class TestSuppression:
    def test_repeat_sweep_is_suppressed(self, seeded):
        seeded.save_rule(escalation_record("e1", sla_status=["overdue"]))
        sweeper(seeded).run(ENABLED)
        second = sweeper(seeded).run(ENABLED)

        assert second.escalations_triggered == 0
        assert second.escalations_suppressed == 1
        assert seeded.get_rule("e1").execution_count == 1

    def test_phase_change_fires_again(self, seeded):
        seeded.save_rule(escalation_record("e1", sla_status=["at-risk", "overdue"]))
        sweeper(seeded).run(ENABLED)
        later = EscalationSweeper(seeded, clock=lambda: T0 + timedelta(hours=11)).run(ENABLED)
        assert {(r.work_order_id, r.sla_status) for r in later.results} == {("wo-risk", "overdue")}

    def test_failed_escalations_do_not_suppress(self, seeded):
        seeded.save_rule(escalation_record("e1", sla_status=["overdue"], actions=[{"type": "teleport"}]))
        sweeper(seeded).run(ENABLED)
        second = sweeper(seeded).run(ENABLED)
        assert second.escalations_triggered == 1
        assert second.results[0].status is ExecutionStatus.FAILED

    def test_suppression_can_be_switched_off(self, seeded):
        seeded.save_rule(escalation_record("e1", sla_status=["overdue"]))
        sweeper(seeded).run(ENABLED)
        second = sweeper(seeded, suppress_repeat_escalations=False).run(ENABLED)
        assert second.escalations_triggered == 1


# ---------------------------------------------------------------------------
# Cancellation, abort, parallelism
# ---------------------------------------------------------------------------


class TestControl:
    def test_cancelled_before_start(self, seeded):
        seeded.save_rule(escalation_record("e1"))
        cancel = threading.Event()
        cancel.set()
        result = sweeper(seeded).run(ENABLED, cancel=cancel)
        assert result.cancelled is True
        assert result.work_orders_checked == 0
        assert seeded.list_recent_logs() == []

    def test_deadline_in_the_past(self, seeded):
        seeded.save_rule(escalation_record("e1"))
        result = sweeper(seeded).run(ENABLED, deadline=time.monotonic() - 1)
        assert result.cancelled is True

    def test_store_failure_aborts(self, engine):
        store = FailingLogStore(engine)
        store.set_setting(SLA_MONITORING_ENABLED, True)
        store.save_work_order(make_snapshot("wo-late", sla_hours=6))
        store.save_rule(escalation_record("e1"))

        result = sweeper(store).run(ENABLED)
        assert result.aborted is True
        assert result.error == "audit log unreachable"
        assert store.get_rule("e1").execution_count == 0

        with pytest.raises(SweepAbortedError, match="audit log unreachable"):
            sweeper(store).run_or_raise(ENABLED)

    def test_parallel_results_follow_load_order(self, store):
        store.set_setting(SLA_MONITORING_ENABLED, True)
        for i in range(12):
            store.save_work_order(make_snapshot(f"wo-{i:02d}", sla_hours=1 + i))
        store.save_rule(escalation_record("e1"))

        parallel = sweeper(store, max_workers=4).run(ENABLED)
        order = [r.work_order_id for r in parallel.results]

        assert parallel.escalations_triggered == 12
        assert order == [f"wo-{i:02d}" for i in range(12)]
        assert store.get_rule("e1").execution_count == 1
