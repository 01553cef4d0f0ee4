"""Tests for the SLA Status Calculator and deadline helpers."""

from __future__ import annotations

import math
from datetime import timedelta

import pytest
from hypothesis import given

from fixflow.models.sla import SLAPhase
from fixflow.sla.calculator import (
    SLACalculator,
    calculate_sla_compliance,
    calculate_sla_deadline,
    compute,
    consumed_percent,
    format_time_remaining,
    sla_hours_for,
)

from tests.conftest import T0, make_snapshot
from tests.strategies import sla_snapshots


class TestCompute:
    def test_at_risk_at_eighty_percent(self):
        status = compute(make_snapshot(sla_hours=10), T0 + timedelta(hours=8))
        assert status.status is SLAPhase.AT_RISK
        assert status.sla_consumed_percent == pytest.approx(80.0)
        assert status.time_remaining_hours == pytest.approx(2.0)
        assert status.time_overdue_hours is None

    def test_overdue_after_deadline(self):
        status = compute(make_snapshot(sla_hours=10), T0 + timedelta(hours=11))
        assert status.status is SLAPhase.OVERDUE
        assert status.time_overdue_hours == pytest.approx(1.0)
        assert status.time_remaining_hours is None
        assert status.sla_consumed_percent == pytest.approx(110.0)

    def test_no_sla(self):
        status = compute(make_snapshot(sla_hours=None), T0 + timedelta(hours=3))
        assert status.status is SLAPhase.NO_SLA
        assert status.sla_consumed_percent == 0
        assert status.time_remaining_hours is None and status.time_overdue_hours is None

    def test_on_track(self):
        status = compute(make_snapshot(sla_hours=10), T0 + timedelta(hours=2))
        assert status.status is SLAPhase.ON_TRACK

    def test_threshold_is_inclusive(self):
        status = compute(make_snapshot(sla_hours=4), T0 + timedelta(hours=3))
        assert status.status is SLAPhase.AT_RISK

    def test_exactly_at_deadline_is_not_overdue(self):
        status = compute(make_snapshot(sla_hours=4), T0 + timedelta(hours=4))
        assert status.status is SLAPhase.AT_RISK
        assert status.time_remaining_hours == 0

    def test_paused_time_is_excluded(self):
        snap = make_snapshot(sla_hours=10, total_paused_duration_seconds=4 * 3600)
        status = compute(snap, T0 + timedelta(hours=8))
        assert status.sla_consumed_percent == pytest.approx(40.0)
        assert status.status is SLAPhase.ON_TRACK

    def test_negative_consumption_is_not_clamped(self):
        snap = make_snapshot(sla_hours=10, total_paused_duration_seconds=5 * 3600)
        assert compute(snap, T0 + timedelta(hours=1)).sla_consumed_percent == pytest.approx(-40.0)

    def test_zero_window(self):
        snap = make_snapshot(sla_hours=0)
        assert consumed_percent(snap, T0) == 0.0
        assert math.isinf(consumed_percent(snap, T0 + timedelta(minutes=1)))

    def test_configured_threshold(self):
        calc = SLACalculator(at_risk_threshold=90)
        assert calc.compute(make_snapshot(sla_hours=10), T0 + timedelta(hours=8)).status is SLAPhase.ON_TRACK

    @given(sla_snapshots())
    def test_idempotent(self, case):
        snap, now = case
        assert compute(snap, now) == compute(snap, now)

    @given(sla_snapshots())
    def test_overdue_iff_past_deadline(self, case):
        snap, now = case
        assert (compute(snap, now).status is SLAPhase.OVERDUE) == (now > snap.sla_due)

    def test_to_dict(self):
        data = compute(make_snapshot(sla_hours=10), T0 + timedelta(hours=8)).to_dict()
        assert data["status"] == "at-risk"
        assert data["work_order_number"] == "WO-wo-1"


class TestDeadlineHelpers:
    SLA_CONFIG = {"brakes": {"high": 4, "medium": 24, "low": 0}}

    def test_sla_hours_lookup(self):
        assert sla_hours_for(self.SLA_CONFIG, "brakes", "High") == 4
        assert sla_hours_for(self.SLA_CONFIG, "brakes", None) == 24

    @pytest.mark.parametrize(
        "category,priority",
        [("tires", "high"), ("brakes", "urgent"), ("brakes", "low"), (None, "high")],
    )
    def test_sla_hours_missing(self, category, priority):
        assert sla_hours_for(self.SLA_CONFIG, category, priority) is None

    def test_deadline(self):
        assert calculate_sla_deadline(T0, 4) == T0 + timedelta(hours=4)
        assert calculate_sla_deadline(T0, None) is None
        assert calculate_sla_deadline(T0, -1) is None

    @pytest.mark.parametrize(
        "seconds,text",
        [
            (2 * 86400 + 3 * 3600, "2d 3h left"),
            (4 * 3600 + 5 * 60, "4h 5m left"),
            (12 * 60, "12m left"),
            (-45 * 60, "Overdue by 45m"),
        ],
    )
    def test_format_time_remaining(self, seconds, text):
        assert format_time_remaining(seconds) == text


class TestCompliance:
    def test_compliance(self):
        on_time = make_snapshot("a", status="Completed")
        late = make_snapshot("b", status="Completed")
        no_sla = make_snapshot("c", status="Completed", sla_hours=None)
        open_order = make_snapshot("d", status="New")
        completed_at = {
            "a": T0 + timedelta(hours=5),
            "b": T0 + timedelta(hours=12),
            "c": T0 + timedelta(hours=1),
        }
        result = calculate_sla_compliance([on_time, late, no_sla, open_order], completed_at)
        assert result.total_completed == 3
        assert result.completed_within_sla == 1
        assert result.completed_outside_sla == 2
        assert result.compliance_percent == pytest.approx(100 / 3)

    def test_nothing_completed_is_full_compliance(self):
        result = calculate_sla_compliance([make_snapshot()], {})
        assert result.compliance_percent == 100.0
        assert result.total_completed == 0
