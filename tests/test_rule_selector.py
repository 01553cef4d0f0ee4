"""Tests for the Rule Selector and rule conflict detection."""

from __future__ import annotations

import pytest

from fixflow.models.events import TriggerMatch, TriggerType
from fixflow.models.rule import AutomationRule
from fixflow.rules.conflicts import detect_conflicts
from fixflow.rules.selector import order_by_priority, select, trigger_matches

from tests.conftest import T0, escalation_record, make_snapshot, rule_record


def rule(rule_id: str, **kwargs) -> AutomationRule:
    return AutomationRule.from_record(rule_record(rule_id, **kwargs))


STATUS_TO_READY = TriggerMatch(TriggerType.STATUS_CHANGED_TO, value="Ready")
NEW_TO_READY = TriggerMatch(TriggerType.STATUS_TRANSITION, value="Ready", from_value="New")


class TestTriggerMatches:
    def test_value_comparison_ignores_case_for_status(self):
        r = rule("r1", trigger="work_order_status_changed_to", trigger_value="ready")
        assert trigger_matches(r, STATUS_TO_READY)

    def test_value_mismatch(self):
        r = rule("r1", trigger="work_order_status_changed_to", trigger_value="Completed")
        assert not trigger_matches(r, STATUS_TO_READY)

    def test_rule_without_value_accepts_any(self):
        r = rule("r1", trigger="work_order_status_changed_to")
        assert trigger_matches(r, STATUS_TO_READY)

    def test_other_trigger_type(self):
        r = rule("r1", trigger="work_order_created")
        assert not trigger_matches(r, STATUS_TO_READY)

    @pytest.mark.parametrize(
        "from_status,expected",
        [(None, True), ("any", True), ("new", True), ("In Progress", False)],
    )
    def test_transition_from_status(self, from_status, expected):
        r = rule(
            "r1",
            trigger="work_order_status_transition",
            trigger_value="Ready",
            assetPropertyType=from_status,
        )
        assert trigger_matches(r, NEW_TO_READY) is expected

    def test_asset_property_selector(self):
        leased = TriggerMatch(
            TriggerType.ASSIGNED_TO_ASSET, value="leased", property_selector="ownership"
        )
        r = rule(
            "r1",
            trigger="work_order_assigned_to_asset",
            trigger_value="leased",
            assetPropertyType="ownership",
        )
        other = rule(
            "r2",
            trigger="work_order_assigned_to_asset",
            trigger_value="leased",
            assetPropertyType="fuel",
        )
        assert trigger_matches(r, leased)
        assert not trigger_matches(other, leased)


class TestSelect:
    def test_priority_order_with_stable_ties(self):
        rules = [
            rule("low", priority=1),
            rule("high", priority=10),
            rule("tie-a", priority=5),
            rule("tie-b", priority=5),
        ]
        assert [r.id for r in order_by_priority(rules)] == ["high", "tie-a", "tie-b", "low"]

    def test_select_filters_by_trigger_and_conditions(self):
        created = [TriggerMatch(TriggerType.WORK_ORDER_CREATED)]
        rules = [
            rule("match", priority=1, conditions=[{"type": "category", "value": "Brakes"}]),
            rule("miss", priority=9, conditions=[{"type": "category", "value": "Tires"}]),
            rule("other", trigger="work_order_priority_changed_to"),
            rule("inactive", is_active=False),
            rule("top", priority=20),
        ]
        selected = select(created, make_snapshot(category="Brakes"), rules, T0)
        assert [m.rule.id for m in selected] == ["top", "match"]

    def test_one_firing_per_rule_even_with_multiple_triggers(self):
        r = rule("r1", trigger="work_order_assigned_to_asset")
        matches = [
            TriggerMatch(TriggerType.ASSIGNED_TO_ASSET, value="x", property_selector="a"),
            TriggerMatch(TriggerType.ASSIGNED_TO_ASSET, value="y", property_selector="b"),
        ]
        selected = select(matches, make_snapshot(), [r], T0)
        assert len(selected) == 1
        assert selected[0].trigger.property_selector == "a"

    def test_unsatisfiable_any_rule_is_not_selected(self):
        r = rule("r1", conditions=[{"type": "weather", "value": "rain"}], logic="any")
        assert select([TriggerMatch(TriggerType.WORK_ORDER_CREATED)], make_snapshot(), [r], T0) == []


class TestConflicts:
    def test_conflicting_technician_assignment(self):
        a = rule("a", actions=[{"type": "assign_technician", "parameters": {"technician_id": "t1"}}], name="A")
        b = rule("b", actions=[{"type": "assign_user", "value": "t2"}], name="B")
        conflicts = detect_conflicts(a, [b])
        assert [(c.conflict_type, c.severity) for c in conflicts] == [("action", "error")]
        assert 'rule "B"' in conflicts[0].message

    def test_same_values_do_not_conflict(self):
        a = rule("a", actions=[{"type": "update_status", "value": "Ready"}])
        b = rule("b", actions=[{"type": "update_status", "value": "Ready"}])
        assert detect_conflicts(a, [b]) == []

    def test_priority_conflict_is_warning(self):
        a = rule("a", actions=[{"type": "update_priority", "value": "High"}])
        b = rule("b", actions=[{"type": "update_priority", "value": "Low"}])
        assert [c.severity for c in detect_conflicts(a, [b])] == ["warning"]

    def test_higher_priority_rules_are_reported(self):
        a = rule("a", priority=1)
        b = rule("b", priority=5, name="B")
        c = rule("c", priority=9, name="C")
        (conflict,) = detect_conflicts(a, [b, c])
        assert conflict.conflict_type == "priority"
        assert conflict.conflicting_rules == ("B", "C")

    def test_ignores_itself_and_inactive_rules(self):
        a = rule("a", priority=1)
        assert detect_conflicts(a, [a, rule("b", priority=9, is_active=False)]) == []

    def test_time_based_rules_overlap(self):
        a = AutomationRule.from_record(escalation_record("a"))
        b = AutomationRule.from_record(escalation_record("b", trigger="work_order_overdue_by", trigger_value="2"))
        (conflict,) = detect_conflicts(a, [b])
        assert conflict.conflict_type == "timing"
