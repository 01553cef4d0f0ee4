"""Configuration models for Fixflow.

EngineConfig holds process-level engine settings.
AutomationSettings is the explicit snapshot of the global automation
toggles that the escalation sweeper reads once per invocation.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, Field

from fixflow.models.work_order import TERMINAL_STATUSES

if TYPE_CHECKING:
    from fixflow.protocols import SettingsStore

AUTO_ASSIGNMENT_ENABLED = "auto_assignment_enabled"
SLA_MONITORING_ENABLED = "sla_monitoring_enabled"
NOTIFICATION_ENABLED = "notification_enabled"
ROUTE_OPTIMIZATION_ENABLED = "route_optimization_enabled"

KNOWN_SETTING_KEYS: tuple[str, ...] = (
    AUTO_ASSIGNMENT_ENABLED,
    SLA_MONITORING_ENABLED,
    NOTIFICATION_ENABLED,
    ROUTE_OPTIMIZATION_ENABLED,
)


class EngineConfig(BaseModel):
    """Engine-wide configuration."""

    db_path: str = ":memory:"
    db_url: Optional[str] = None
    at_risk_threshold_percent: float = 75.0
    terminal_statuses: frozenset[str] = TERMINAL_STATUSES
    max_workers: int = Field(default=1, ge=1)  # 1 = sequential sweep
    action_timeout_seconds: Optional[float] = None  # None = no caller-imposed timeout
    sla_monitoring_setting_key: str = SLA_MONITORING_ENABLED
    suppress_repeat_escalations: bool = True
    retry_attempts: int = Field(default=3, ge=1)
    retry_backoff_seconds: float = Field(default=0.5, ge=0)  # exponential multiplier


class AutomationSettings(BaseModel):
    """Read-only view of the global automation toggles.

    Missing keys read as disabled.
    """

    model_config = {"frozen": True}

    values: dict[str, bool] = Field(default_factory=dict)

    def is_enabled(self, key: str) -> bool:
        return bool(self.values.get(key, False))

    @classmethod
    def from_mapping(cls, values: Mapping[str, object]) -> AutomationSettings:
        return cls(values={k: bool(v) for k, v in values.items()})

    @classmethod
    def load(
        cls,
        store: SettingsStore,
        keys: Iterable[str] = KNOWN_SETTING_KEYS,
    ) -> AutomationSettings:
        """Read ``keys`` from the settings store.

        Raises:
            StoreError: If the settings store cannot be reached.
        """
        return cls(values={key: bool(store.get_setting(key)) for key in keys})
