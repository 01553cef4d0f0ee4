"""Tests for the Trigger Classifier."""

from __future__ import annotations

import pytest

from fixflow.exceptions import InvalidEventError
from fixflow.models.events import DomainEvent, EventKind, TriggerMatch, TriggerType
from fixflow.triggers.classifier import classify, trigger_types

from tests.conftest import T0


def event(kind: str, before=None, after=None) -> DomainEvent:
    return DomainEvent.from_record(
        {
            "entity_id": "wo-1",
            "event_kind": kind,
            "before": before,
            "after": after,
            "occurred_at": T0.isoformat(),
        }
    )


class TestClassify:
    def test_created(self):
        matches = classify(event("created", after={"status": "New"}))
        assert trigger_types(matches) == {"work_order_created"}

    def test_status_change_yields_changed_to_and_transition(self):
        matches = classify(event("status_changed", {"status": "New"}, {"status": "In Progress"}))
        assert matches == [
            TriggerMatch(TriggerType.STATUS_CHANGED_TO, value="In Progress"),
            TriggerMatch(TriggerType.STATUS_TRANSITION, value="In Progress", from_value="New"),
        ]

    def test_status_change_without_previous_status(self):
        matches = classify(event("status_changed", None, {"status": "Ready"}))
        assert trigger_types(matches) == {"work_order_status_changed_to"}

    def test_status_unchanged_yields_nothing(self):
        assert classify(event("status_changed", {"status": "New"}, {"status": "New"})) == []

    def test_priority_change(self):
        matches = classify(event("priority_changed", {"priority": "Low"}, {"priority": "High"}))
        assert matches == [
            TriggerMatch(TriggerType.PRIORITY_CHANGED_TO, value="High", from_value="Low")
        ]

    def test_user_assignment(self):
        matches = classify(event("assigned_to_user", after={"assigned_technician_id": "tech-1"}))
        assert matches == [TriggerMatch(TriggerType.ASSIGNED_TO_USER, value="tech-1")]

    def test_unassignment_yields_nothing(self):
        assert classify(event("assigned_to_user", after={"assigned_technician_id": None})) == []

    def test_location_assignment(self):
        matches = classify(event("assigned_to_location", after={"assigned_location_id": "loc-a"}))
        assert matches[0].value == "loc-a"

    def test_asset_assignment_one_match_per_property(self):
        matches = classify(
            event(
                "assigned_to_asset",
                after={"asset_id": "a-9", "asset_properties": {"ownership": "leased", "fuel": "diesel"}},
            )
        )
        assert [(m.property_selector, m.value) for m in matches] == [
            ("fuel", "diesel"),
            ("ownership", "leased"),
        ]
        assert all(m.payload == {"asset_id": "a-9"} for m in matches)

    def test_asset_without_properties(self):
        matches = classify(event("assigned_to_asset", after={"asset_id": "a-9"}))
        assert len(matches) == 1
        assert matches[0].property_selector is None

    def test_sla_tick(self):
        assert trigger_types(classify(event("sla_tick"))) == {"sla_tick"}


def test_event_from_record_parses_time():
    e = event("created")
    assert e.kind is EventKind.CREATED
    assert e.occurred_at == T0


class TestDomainEventRecords:
    def test_iso_timestamp(self):
        event = DomainEvent.from_record(
            {"entity_id": 7, "event_kind": "created", "occurred_at": T0.isoformat()}
        )
        assert (event.entity_id, event.kind, event.occurred_at) == ("7", EventKind.CREATED, T0)

    def test_unknown_kind(self):
        with pytest.raises(InvalidEventError, match="Unknown event kind"):
            DomainEvent.from_record({"entity_id": "wo-1", "event_kind": "nope", "occurred_at": T0})

    def test_missing_keys_are_named(self):
        with pytest.raises(InvalidEventError, match="entity_id, occurred_at"):
            DomainEvent.from_record({"event_kind": "created"})
