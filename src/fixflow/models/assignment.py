"""Technician models used by automatic assignment.

A Technician is the scorer's view of one assignable person: where they
are, what they are qualified for, when they are on shift, and how many
work orders they already hold.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

TECHNICIAN_ACTIVE = "active"

# Work order statuses that count toward a technician's current workload.
WORKLOAD_STATUSES: tuple[str, ...] = ("In Progress", "Ready")

# Score used when no performance history is recorded for a technician.
DEFAULT_PERFORMANCE_SCORE = 75.0


@dataclass(frozen=True)
class Shift:
    start: datetime
    end: datetime
    status: str = "scheduled"

    def covers(self, moment: datetime) -> bool:
        return self.status == "scheduled" and self.start <= moment <= self.end


@dataclass(frozen=True)
class Technician:
    """An assignable technician with the load figures the scorer needs.

    ``active_orders`` is filled in by the store from the technician's
    work orders in WORKLOAD_STATUSES.
    """

    id: str
    name: str
    status: str = TECHNICIAN_ACTIVE
    location_id: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    specializations: tuple[str, ...] = ()
    max_concurrent_orders: int | None = None
    performance_score: float | None = None
    shifts: tuple[Shift, ...] = ()
    active_orders: int = 0


@dataclass(frozen=True)
class CandidateScore:
    """Per-dimension scores (0-100) for one technician and their weighted total."""

    technician_id: str
    technician_name: str
    total: float
    availability: float
    specialization: float
    proximity: float
    workload: float
    performance: float
    distance_km: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "technician_id": self.technician_id,
            "technician_name": self.technician_name,
            "total_score": self.total,
            "availability_score": self.availability,
            "specialization_score": self.specialization,
            "proximity_score": self.proximity,
            "workload_score": self.workload,
            "performance_score": self.performance,
            "distance_km": self.distance_km,
        }
