"""SLA status models. Derived values only; nothing here is persisted."""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass
from typing import Any


class SLAPhase(str, enum.Enum):
    ON_TRACK = "on-track"
    AT_RISK = "at-risk"
    OVERDUE = "overdue"
    NO_SLA = "no-sla"


@dataclass(frozen=True)
class SLAStatus:
    """SLA phase of one work order at one instant.

    Exactly one of ``time_remaining_hours`` / ``time_overdue_hours`` is set
    unless the phase is NO_SLA, in which case neither is.
    ``sla_consumed_percent`` is not clamped.
    """

    work_order_id: str
    work_order_number: str
    status: SLAPhase
    sla_consumed_percent: float
    time_remaining_hours: float | None = None
    time_overdue_hours: float | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass(frozen=True)
class SLACompliance:
    compliance_percent: float
    total_completed: int
    completed_within_sla: int
    completed_outside_sla: int
