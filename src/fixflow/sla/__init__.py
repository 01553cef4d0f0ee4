"""SLA status calculation and the escalation sweep."""

from fixflow.sla.calculator import (
    SLACalculator,
    calculate_sla_compliance,
    calculate_sla_deadline,
    compute,
    format_time_remaining,
    sla_hours_for,
)
from fixflow.sla.sweeper import EscalationSweeper, escalation_trigger_matches

__all__ = [
    "EscalationSweeper",
    "SLACalculator",
    "calculate_sla_compliance",
    "calculate_sla_deadline",
    "compute",
    "escalation_trigger_matches",
    "format_time_remaining",
    "sla_hours_for",
]
