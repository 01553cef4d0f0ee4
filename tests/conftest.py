"""Shared test fixtures for Fixflow.

Provides in-memory SQLite engine, session, store fixtures, and helpers
for seeding work orders and rules.
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm import sessionmaker

from fixflow.models.work_order import WorkOrderSnapshot
from fixflow.storage.engine import create_fixflow_engine, init_db
from fixflow.storage.sqlite import SqlAutomationStore

T0 = datetime(2025, 3, 3, 8, 0, 0)  # a Monday


@pytest.fixture
def engine():
    """In-memory SQLite engine with all tables created."""
    eng = create_fixflow_engine(":memory:")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    """Session with automatic rollback after each test."""
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)
    sess = SessionLocal()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def store(engine) -> SqlAutomationStore:
    return SqlAutomationStore(engine)


# ------------------------------------------------------------------
# Shared test helpers
# ------------------------------------------------------------------

def make_snapshot(
    wo_id: str = "wo-1",
    *,
    sla_hours: float | None = 10,
    created_at: datetime = T0,
    **kwargs,
) -> WorkOrderSnapshot:
    """A work order created at ``created_at`` with an SLA window of ``sla_hours``."""
    fields = {
        "work_order_number": f"WO-{wo_id}",
        "status": "New",
        "priority": "Medium",
        "title": "Replace brake pads",
        "sla_due": created_at + timedelta(hours=sla_hours) if sla_hours is not None else None,
    }
    fields.update(kwargs)
    return WorkOrderSnapshot(id=wo_id, created_at=created_at, **fields)


def rule_record(
    rule_id: str,
    *,
    rule_type: str = "auto_assignment",
    trigger: str = "work_order_created",
    trigger_value: str | None = None,
    priority: int = 0,
    actions: list | None = None,
    conditions: list | None = None,
    logic: str = "all",
    **extra,
) -> dict:
    """A rule record shaped the way the rule editor stores it."""
    tc = {
        "trigger": trigger,
        "triggerValue": trigger_value,
        "conditionLogic": logic,
        "conditions": conditions or [],
    }
    for key in ("sla_status", "status", "assetPropertyType"):
        if key in extra:
            tc[key] = extra.pop(key)
    record = {
        "id": rule_id,
        "name": extra.pop("name", f"Rule {rule_id}"),
        "rule_type": rule_type,
        "is_active": extra.pop("is_active", True),
        "priority": priority,
        "trigger_conditions": tc,
        "actions": actions if actions is not None else [],
        "created_at": extra.pop("created_at", T0),
    }
    record.update(extra)
    return record


def escalation_record(rule_id: str, **kwargs) -> dict:
    kwargs.setdefault("rule_type", "sla_escalation")
    kwargs.setdefault("trigger", "sla_tick")
    kwargs.setdefault("actions", [{"type": "add_activity_log", "parameters": {}}])
    return rule_record(rule_id, **kwargs)
