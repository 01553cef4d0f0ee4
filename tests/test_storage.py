"""Tests for the SQL storage layer: engine setup, repositories, and the store facade."""

from datetime import timedelta

import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import OperationalError

from fixflow.exceptions import (
    InvalidFieldError,
    LogEntryNotFoundError,
    RuleNotFoundError,
    StoreTimeoutError,
    StoreUnavailableError,
    WorkOrderNotFoundError,
)
from fixflow.models.assignment import Shift, Technician
from fixflow.models.execution import ExecutionLogEntry, ExecutionStatus, LogFilter
from fixflow.models.work_order import ActivityLogEntry
from fixflow.storage.engine import SCHEMA_VERSION, create_fixflow_engine, get_schema_version, init_db
from fixflow.storage.schema import AutomationRuleRow, AutomationSettingRow
from fixflow.storage.sqlite import SqlAutomationStore, _translate

from tests.conftest import T0, make_snapshot, rule_record


def log_entry(rule_id="r1", wo_id="wo-1", *, status=ExecutionStatus.SUCCESS, minutes=0, action_type="rule_executed"):
    return ExecutionLogEntry(
        rule_id=rule_id,
        rule_name=f"Rule {rule_id}",
        rule_type="auto_assignment",
        work_order_id=wo_id,
        action_type=action_type,
        status=status,
        created_at=T0 + timedelta(minutes=minutes),
        execution_time_ms=2.5,
        trigger_context={"trigger": "work_order_created"},
    )


class TestEngine:
    def test_init_db_creates_tables(self, engine):
        tables = set(inspect(engine).get_table_names())
        assert {
            "work_orders",
            "automation_rules",
            "automation_settings",
            "automation_execution_log",
        } <= tables

    def test_init_db_is_idempotent(self, engine):
        init_db(engine)
        init_db(engine)
        assert get_schema_version(engine) == SCHEMA_VERSION

    def test_file_database(self, tmp_path):
        path = str(tmp_path / "fixflow.db")
        with SqlAutomationStore.open(path) as store:
            store.save_work_order(make_snapshot())
        with SqlAutomationStore.open(path) as store:
            assert store.get_snapshot("wo-1").title == "Replace brake pads"

    def test_in_memory_store_is_shared_across_sessions(self):
        with SqlAutomationStore.open() as store:
            store.save_work_order(make_snapshot())
            assert [s.id for s in store.list_active_sla_entities()] == ["wo-1"]

    def test_explicit_engine(self):
        eng = create_fixflow_engine(":memory:", busy_timeout_ms=100)
        init_db(eng)
        assert get_schema_version(eng) == "1"
        eng.dispose()


class TestWorkOrders:
    def test_snapshot_round_trip(self, store):
        snap = make_snapshot(
            category="Brakes",
            asset_mileage=12000.0,
            asset_properties={"ownership": "leased"},
            latitude=51.5,
            longitude=-0.12,
            required_specialization="hydraulics",
            activity_log=(ActivityLogEntry(timestamp=T0, text="created", actor="alice"),),
        )
        store.save_work_order(snap)
        assert store.get_snapshot("wo-1") == snap

    def test_activity_is_added_on_insert_only(self, store):
        snap = make_snapshot(activity_log=(ActivityLogEntry(timestamp=T0, text="created"),))
        store.save_work_order(snap)
        store.save_work_order(snap)
        assert len(store.get_snapshot("wo-1").activity_log) == 1

    def test_missing_work_order(self, store):
        with pytest.raises(WorkOrderNotFoundError):
            store.get_snapshot("nope")

    def test_update_fields(self, store):
        store.save_work_order(make_snapshot())
        store.update_fields("wo-1", {"priority": "High", "category": "Tires"})
        snap = store.get_snapshot("wo-1")
        assert (snap.priority, snap.category) == ("High", "Tires")

    def test_update_rejects_unknown_field_before_lookup(self, store):
        with pytest.raises(InvalidFieldError):
            store.update_fields("nope", {"colour": "red"})

    def test_update_unknown_work_order(self, store):
        with pytest.raises(WorkOrderNotFoundError):
            store.update_fields("nope", {"priority": "High"})

    def test_completed_leaves_sla_set(self, store):
        store.save_work_order(make_snapshot("wo-1"))
        store.save_work_order(make_snapshot("wo-2"))
        store.update_fields("wo-1", {"status": "Completed"})
        assert [s.id for s in store.list_active_sla_entities()] == ["wo-2"]

    def test_sla_entities_ordered_by_due_date(self, store):
        store.save_work_order(make_snapshot("b", sla_hours=5))
        store.save_work_order(make_snapshot("a", sla_hours=9))
        store.save_work_order(make_snapshot("c", sla_hours=None))
        store.save_work_order(make_snapshot("d", sla_hours=1, status="Cancelled"))
        assert [s.id for s in store.list_active_sla_entities()] == ["b", "a"]

    def test_custom_terminal_statuses(self, engine):
        store = SqlAutomationStore(engine, terminal_statuses=frozenset({"Archived"}))
        store.save_work_order(make_snapshot("wo-1", status="Completed"))
        store.save_work_order(make_snapshot("wo-2", status="Archived"))
        assert [s.id for s in store.list_active_sla_entities()] == ["wo-1"]

    def test_side_effects_need_a_work_order(self, store):
        with pytest.raises(WorkOrderNotFoundError):
            store.append_activity_log("nope", ActivityLogEntry(timestamp=T0, text="x"))
        with pytest.raises(WorkOrderNotFoundError):
            store.enqueue_notification("nope", {"notification_type": "escalation"})
        with pytest.raises(WorkOrderNotFoundError):
            store.create_task("nope", {"title": "x"})

    def test_notification_payload_is_kept(self, store):
        store.save_work_order(make_snapshot())
        store.enqueue_notification(
            "wo-1", {"notification_type": "escalation", "recipient_role": "manager", "sla_status": "overdue"}
        )
        (n,) = store.list_notifications("wo-1")
        assert n["recipient_role"] == "manager"
        assert n["sla_status"] == "overdue"


class TestRules:
    def test_active_rules_by_priority(self, store):
        store.save_rule(rule_record("low", priority=1, created_at=T0))
        store.save_rule(rule_record("high", priority=5, created_at=T0 + timedelta(hours=1)))
        store.save_rule(rule_record("tie", priority=1, created_at=T0 + timedelta(hours=2)))
        store.save_rule(rule_record("off", priority=9, is_active=False))
        assert [r.id for r in store.list_active_rules()] == ["high", "low", "tie"]
        assert len(store.list_rules(include_inactive=True)) == 4

    def test_filter_by_rule_type(self, store):
        store.save_rule(rule_record("a"))
        store.save_rule(rule_record("b", rule_type="sla_escalation", trigger="sla_tick"))
        assert [r.id for r in store.list_active_rules("sla_escalation")] == ["b"]

    def test_unusable_records_are_skipped(self, store, session):
        store.save_rule(rule_record("good"))
        session.add(
            AutomationRuleRow(
                id="bad", name="Bad", rule_type="mystery", is_active=True,
                priority=3, execution_count=0, created_at=T0,
            )
        )
        session.commit()
        assert [r.id for r in store.list_active_rules()] == ["good"]

    def test_save_rule_generates_id(self, store):
        record = rule_record("x")
        del record["id"]
        rule = store.save_rule(record)
        assert store.get_rule(rule.id).name == rule.name

    def test_increment_execution(self, store):
        store.save_rule(rule_record("r1"))
        store.increment_execution("r1", T0)
        store.increment_execution("r1", T0 + timedelta(hours=1))
        rule = store.get_rule("r1")
        assert rule.execution_count == 2
        assert rule.last_executed_at == T0 + timedelta(hours=1)

    def test_unknown_rule(self, store):
        with pytest.raises(RuleNotFoundError):
            store.get_rule("nope")
        with pytest.raises(RuleNotFoundError):
            store.increment_execution("nope", T0)


class TestTechnicians:
    def test_candidates_filtered_by_status_and_location(self, store):
        store.save_technician(Technician(id="t1", name="Ann", location_id="loc-a", specializations=("brakes",)))
        store.save_technician(Technician(id="t2", name="Bo", location_id="loc-b"))
        store.save_technician(Technician(id="t3", name="Cy", location_id="loc-a", status="inactive"))

        assert [t.id for t in store.list_assignment_candidates()] == ["t1", "t2"]
        (ann,) = store.list_assignment_candidates(["loc-a"])
        assert ann.specializations == ("brakes",)
        assert ann.active_orders == 0

    def test_resave_replaces_shifts(self, store):
        shift = Shift(start=T0, end=T0 + timedelta(hours=8))
        store.save_technician(Technician(id="t1", name="Ann", shifts=(shift, shift)))
        store.save_technician(Technician(id="t1", name="Ann", shifts=(shift,)))
        (ann,) = store.list_assignment_candidates()
        assert ann.shifts == (shift,)

    def test_workload_counts_open_statuses_only(self, store):
        store.save_technician(Technician(id="t1", name="Ann"))
        store.save_work_order(make_snapshot("a", status="In Progress", assigned_technician_id="t1"))
        store.save_work_order(make_snapshot("b", status="Ready", assigned_technician_id="t1"))
        store.save_work_order(make_snapshot("c", status="On Hold", assigned_technician_id="t1"))
        (ann,) = store.list_assignment_candidates()
        assert ann.active_orders == 2


class TestSettings:
    def test_missing_is_disabled(self, store):
        assert store.get_setting("sla_monitoring_enabled") is False

    def test_enabled_dict(self, store):
        store.set_setting("sla_monitoring_enabled", True)
        assert store.get_setting("sla_monitoring_enabled") is True
        store.set_setting("sla_monitoring_enabled", False)
        assert store.get_setting("sla_monitoring_enabled") is False

    @pytest.mark.parametrize("value,expected", [(True, True), (False, False), ({"enabled": True}, True), ({}, False)])
    def test_raw_json_values(self, store, session, value, expected):
        session.add(AutomationSettingRow(setting_key="k", setting_value_json=value))
        session.commit()
        assert store.get_setting("k") is expected


class TestAuditLog:
    def test_append_and_get(self, store):
        log_id = store.append_log(log_entry())
        entry = store.get_log(log_id)
        assert entry.id == log_id
        assert entry.status is ExecutionStatus.SUCCESS
        assert entry.trigger_context == {"trigger": "work_order_created"}
        assert entry.dismissed_at is None

    def test_unknown_log(self, store):
        with pytest.raises(LogEntryNotFoundError):
            store.get_log(7)
        with pytest.raises(LogEntryNotFoundError):
            store.dismiss_log(7, T0)

    def test_newest_first_with_limit(self, store):
        for minutes in (0, 10, 5):
            store.append_log(log_entry(minutes=minutes))
        entries = store.list_recent_logs(LogFilter(limit=2))
        assert [e.created_at for e in entries] == [T0 + timedelta(minutes=10), T0 + timedelta(minutes=5)]

    def test_filters_are_anded(self, store):
        store.append_log(log_entry("r1", "wo-1"))
        store.append_log(log_entry("r1", "wo-2", status=ExecutionStatus.FAILED))
        store.append_log(log_entry("r2", "wo-1", status=ExecutionStatus.FAILED))
        store.append_log(log_entry("r2", "wo-2", action_type="escalated", minutes=30))

        failed_r1 = store.list_recent_logs(LogFilter(rule_id="r1", statuses=(ExecutionStatus.FAILED,)))
        assert [(e.rule_id, e.work_order_id) for e in failed_r1] == [("r1", "wo-2")]
        assert len(store.list_recent_logs(LogFilter(work_order_id="wo-1"))) == 2
        assert len(store.list_recent_logs(LogFilter(action_type="escalated"))) == 1
        assert len(store.list_recent_logs(LogFilter(since=T0 + timedelta(minutes=1)))) == 1
        assert len(store.list_recent_logs(LogFilter(until=T0))) == 3

    def test_dismiss_only_sets_tombstone(self, store):
        log_id = store.append_log(log_entry(status=ExecutionStatus.FAILED))
        before = store.get_log(log_id)
        store.dismiss_log(log_id, T0 + timedelta(days=1))
        store.dismiss_log(log_id, T0 + timedelta(days=2))

        after = store.get_log(log_id)
        assert after.dismissed_at == T0 + timedelta(days=1)
        assert after.status == before.status
        assert after.created_at == before.created_at
        assert store.list_recent_logs(LogFilter(include_dismissed=False)) == []


class TestErrorTranslation:
    def _operational(self, message):
        return OperationalError("SELECT 1", {}, Exception(message))

    def test_locked_is_timeout(self):
        assert isinstance(_translate(self._operational("database is locked")), StoreTimeoutError)

    def test_other_errors_are_unavailable(self):
        assert isinstance(_translate(self._operational("disk I/O error")), StoreUnavailableError)

    def test_store_calls_translate(self, engine):
        store = SqlAutomationStore(engine)
        with engine.connect() as conn:
            conn.exec_driver_sql("DROP TABLE automation_settings")
            conn.commit()
        with pytest.raises(StoreUnavailableError):
            store.get_setting("sla_monitoring_enabled")
