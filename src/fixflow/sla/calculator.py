"""SLA Status Calculator and SLA deadline helpers.

compute() is pure and deterministic given ``now``: the same snapshot and
instant always produce the same SLAStatus. Elapsed time excludes the work
order's accumulated paused duration. Consumed percentage is not clamped:
overdue work orders report more than 100%, and malformed pause data can
produce a negative value. Both are surfaced as computed.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta

from fixflow.models.sla import SLACompliance, SLAPhase, SLAStatus
from fixflow.models.work_order import STATUS_COMPLETED, WorkOrderSnapshot

DEFAULT_AT_RISK_THRESHOLD = 75.0

_HOUR = 3600.0


def consumed_percent(snapshot: WorkOrderSnapshot, now: datetime) -> float:
    """Share of the SLA window used so far, pause-corrected, in percent."""
    if snapshot.sla_due is None:
        return 0.0
    window = (snapshot.sla_due - snapshot.created_at).total_seconds()
    elapsed = (now - snapshot.created_at).total_seconds() - snapshot.total_paused_duration_seconds
    if window == 0:
        return math.inf if elapsed > 0 else 0.0
    return elapsed / window * 100


def compute(
    snapshot: WorkOrderSnapshot,
    now: datetime,
    at_risk_threshold: float = DEFAULT_AT_RISK_THRESHOLD,
) -> SLAStatus:
    """Current SLA phase of ``snapshot`` at ``now``.

    Phases, checked in order: no deadline -> NO_SLA; ``now`` past the
    deadline -> OVERDUE; consumed >= ``at_risk_threshold`` -> AT_RISK;
    otherwise ON_TRACK.
    """
    if snapshot.sla_due is None:
        return SLAStatus(
            work_order_id=snapshot.id,
            work_order_number=snapshot.work_order_number,
            status=SLAPhase.NO_SLA,
            sla_consumed_percent=0.0,
        )

    consumed = consumed_percent(snapshot, now)
    if now > snapshot.sla_due:
        return SLAStatus(
            work_order_id=snapshot.id,
            work_order_number=snapshot.work_order_number,
            status=SLAPhase.OVERDUE,
            sla_consumed_percent=consumed,
            time_overdue_hours=(now - snapshot.sla_due).total_seconds() / _HOUR,
        )

    phase = SLAPhase.AT_RISK if consumed >= at_risk_threshold else SLAPhase.ON_TRACK
    return SLAStatus(
        work_order_id=snapshot.id,
        work_order_number=snapshot.work_order_number,
        status=phase,
        sla_consumed_percent=consumed,
        time_remaining_hours=(snapshot.sla_due - now).total_seconds() / _HOUR,
    )


class SLACalculator:
    """compute() bound to a configured at-risk threshold."""

    def __init__(self, at_risk_threshold: float = DEFAULT_AT_RISK_THRESHOLD) -> None:
        self.at_risk_threshold = at_risk_threshold

    def compute(self, snapshot: WorkOrderSnapshot, now: datetime) -> SLAStatus:
        return compute(snapshot, now, self.at_risk_threshold)


# ---------------------------------------------------------------------------
# Deadline helpers
# ---------------------------------------------------------------------------

SLAConfig = Mapping[str, Mapping[str, float]]


def sla_hours_for(
    sla_config: SLAConfig | None, category_id: str | None, priority: str | None
) -> float | None:
    """Look up SLA hours as ``sla_config[category_id][priority]``.

    ``priority`` is matched lower-cased and defaults to ``medium``.
    Returns None for an unknown category or priority, or a zero entry.
    """
    if not sla_config or not category_id:
        return None
    category = sla_config.get(category_id)
    if not category:
        return None
    hours = category.get((priority or "medium").lower())
    return hours or None


def calculate_sla_deadline(created_at: datetime, sla_hours: float | None) -> datetime | None:
    if not sla_hours or sla_hours <= 0:
        return None
    return created_at + timedelta(hours=sla_hours)


def format_time_remaining(seconds: float) -> str:
    """Human-readable remaining time: ``2d 3h left``, ``Overdue by 45m``."""
    overdue = seconds < 0
    total = int(abs(seconds))
    days, rem = divmod(total, 86400)
    hours, rem = divmod(rem, 3600)
    minutes = rem // 60

    if days > 0:
        text = f"{days}d {hours}h"
    elif hours > 0:
        text = f"{hours}h {minutes}m"
    else:
        text = f"{minutes}m"
    return f"Overdue by {text}" if overdue else f"{text} left"


def calculate_sla_compliance(
    snapshots: Iterable[WorkOrderSnapshot],
    completed_at_by_id: Mapping[str, datetime],
) -> SLACompliance:
    """Share of completed work orders finished on or before their deadline.

    Completed orders without a deadline or a completion time count as
    outside the SLA. With no completed orders compliance is 100%.
    """
    completed = [s for s in snapshots if s.status == STATUS_COMPLETED]
    if not completed:
        return SLACompliance(
            compliance_percent=100.0,
            total_completed=0,
            completed_within_sla=0,
            completed_outside_sla=0,
        )

    within = 0
    for snap in completed:
        completed_at = completed_at_by_id.get(snap.id)
        if snap.sla_due is None or completed_at is None:
            continue
        if completed_at <= snap.sla_due:
            within += 1

    return SLACompliance(
        compliance_percent=within / len(completed) * 100,
        total_completed=len(completed),
        completed_within_sla=within,
        completed_outside_sla=len(completed) - within,
    )
