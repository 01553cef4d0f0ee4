"""Technician scoring for automatic assignment.

Each eligible technician gets five 0-100 scores (availability,
specialization, proximity, workload, performance) and a weighted average
of them. rank_candidates() is pure given ``now``; the handler that
assigns the winner lives in fixflow.actions.handlers.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from fixflow.models.actions import AutoAssignAction
from fixflow.models.assignment import (
    DEFAULT_PERFORMANCE_SCORE,
    TECHNICIAN_ACTIVE,
    CandidateScore,
    Technician,
)
from fixflow.models.work_order import WorkOrderSnapshot

EARTH_RADIUS_KM = 6371.0

# Distance that scores 0 when the rule sets no max_distance_km.
DEFAULT_PROXIMITY_RANGE_KM = 50.0

# Capacity assumed for technicians without a max_concurrent_orders limit.
DEFAULT_CAPACITY = 10

# How many ranked candidates are kept in the decision factors.
TOP_CANDIDATES_LOGGED = 10


@dataclass(frozen=True)
class Ranking:
    """Scored candidates, best first, and who was ruled out and why."""

    candidates: tuple[CandidateScore, ...]
    excluded: tuple[tuple[str, str], ...] = ()

    @property
    def best(self) -> CandidateScore | None:
        return self.candidates[0] if self.candidates else None

    def decision_factors(self) -> dict:
        factors = {
            "candidates_evaluated": len(self.candidates),
            "candidates": [c.to_dict() for c in self.candidates[:TOP_CANDIDATES_LOGGED]],
            "excluded": [{"technician_id": t, "reason": r} for t, r in self.excluded],
        }
        if self.best is not None:
            factors["assignment_score"] = self.best.total
        return factors


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometres, rounded to 2 decimals."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.sin(d_lng / 2) ** 2 * math.cos(math.radians(lat1)) * math.cos(math.radians(lat2))
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round(EARTH_RADIUS_KM * c, 2)


def distance_km(technician: Technician, work_order: WorkOrderSnapshot) -> float | None:
    coords = (technician.latitude, technician.longitude, work_order.latitude, work_order.longitude)
    if any(c is None for c in coords):
        return None
    return haversine_km(*coords)


def availability_score(technician: Technician, now: datetime) -> float:
    if not technician.shifts:
        return 50.0
    return 100.0 if any(s.covers(now) for s in technician.shifts) else 30.0


def specialization_score(technician: Technician, work_order: WorkOrderSnapshot) -> float:
    if work_order.category is None:
        return 50.0
    required = work_order.required_specialization
    if not required:
        return 75.0
    return 100.0 if required in technician.specializations else 25.0


def proximity_score(distance: float | None, max_distance_km: float | None) -> float:
    if distance is None:
        return 50.0
    if max_distance_km and distance > max_distance_km:
        return 0.0
    return max(0.0, 100 - distance / (max_distance_km or DEFAULT_PROXIMITY_RANGE_KM) * 100)


def workload_score(active_orders: int, max_concurrent_orders: int | None) -> float:
    capacity = max_concurrent_orders or DEFAULT_CAPACITY
    return max(0.0, 100 - active_orders / capacity * 100)


def _exclusion(
    technician: Technician, work_order: WorkOrderSnapshot, criteria: AutoAssignAction
) -> str | None:
    if technician.status != TECHNICIAN_ACTIVE:
        return f"status is {technician.status}"
    if criteria.allowed_locations and technician.location_id not in criteria.allowed_locations:
        return "location not allowed"
    limit = technician.max_concurrent_orders
    if criteria.respect_max_concurrent_orders and limit and technician.active_orders >= limit:
        return f"at capacity ({technician.active_orders}/{limit})"
    required = work_order.required_specialization
    if (
        criteria.require_specialization_match
        and required
        and required not in technician.specializations
    ):
        return f"lacks specialization '{required}'"
    return None


def score_candidate(
    technician: Technician,
    work_order: WorkOrderSnapshot,
    criteria: AutoAssignAction,
    now: datetime,
) -> CandidateScore:
    distance = distance_km(technician, work_order)
    scores = {
        "availability": availability_score(technician, now),
        "specialization": specialization_score(technician, work_order),
        "proximity": proximity_score(distance, criteria.max_distance_km),
        "workload": workload_score(technician.active_orders, technician.max_concurrent_orders),
        "performance": (
            technician.performance_score
            if technician.performance_score is not None
            else DEFAULT_PERFORMANCE_SCORE
        ),
    }
    weighted = (
        scores["availability"] * criteria.weight_availability
        + scores["specialization"] * criteria.weight_specialization
        + scores["proximity"] * criteria.weight_proximity
        + scores["workload"] * criteria.weight_workload
        + scores["performance"] * criteria.weight_performance
    )
    return CandidateScore(
        technician_id=technician.id,
        technician_name=technician.name,
        total=round(weighted / criteria.total_weight, 2),
        distance_km=distance,
        **{name: round(value, 2) for name, value in scores.items()},
    )


def rank_candidates(
    technicians: Iterable[Technician],
    work_order: WorkOrderSnapshot,
    criteria: AutoAssignAction,
    now: datetime,
) -> Ranking:
    """Score every eligible technician, best total first.

    Ties keep the order ``technicians`` came in. A technician beyond
    ``max_distance_km`` is excluded rather than scored.
    """
    scored: list[CandidateScore] = []
    excluded: list[tuple[str, str]] = []
    for technician in technicians:
        reason = _exclusion(technician, work_order, criteria)
        if reason is None:
            candidate = score_candidate(technician, work_order, criteria, now)
            if criteria.max_distance_km and candidate.proximity == 0:
                reason = "outside max distance"
            else:
                scored.append(candidate)
        if reason is not None:
            excluded.append((technician.id, reason))
    scored.sort(key=lambda c: c.total, reverse=True)
    return Ranking(candidates=tuple(scored), excluded=tuple(excluded))
