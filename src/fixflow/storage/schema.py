"""SQLAlchemy ORM schema for Fixflow.

Defines all database tables: work_orders, work_order_activity,
automation_rules, automation_settings, automation_execution_log,
notifications, work_order_tasks, technicians, technician_shifts,
_fixflow_meta.

Rule definitions are stored as the JSON records the rule editor writes;
they are parsed into typed AutomationRule models on read.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all Fixflow ORM models."""

    pass


class WorkOrderRow(Base):
    """A maintenance work order. Only the fields the engine reads or writes."""

    __tablename__ = "work_orders"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    work_order_number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    priority: Mapped[str] = mapped_column(String(20), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    subcategory: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    assigned_technician_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    assigned_location_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    asset_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    asset_mileage: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    asset_properties_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    required_specialization: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    sla_due: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    total_paused_duration_seconds: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_work_orders_sla_status", "sla_due", "status"),
    )


class ActivityLogRow(Base):
    """One append-only activity log line of a work order."""

    __tablename__ = "work_order_activity"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    work_order_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("work_orders.id"), nullable=False
    )
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    actor: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    automated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("ix_activity_work_order_time", "work_order_id", "timestamp"),
    )


class AutomationRuleRow(Base):
    """An automation rule as authored in the rule editor."""

    __tablename__ = "automation_rules"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rule_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    trigger_conditions_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    actions_json: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    execution_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_executed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_rules_active_priority", "is_active", "priority"),
    )


class AutomationSettingRow(Base):
    """Global automation toggle. Value is a JSON bool or ``{"enabled": bool}``."""

    __tablename__ = "automation_settings"

    setting_key: Mapped[str] = mapped_column(String(100), primary_key=True)
    setting_value_json: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class ExecutionLogRow(Base):
    """Audit log entry for one rule firing.

    Append-only: the only column written after insert is dismissed_at.
    """

    __tablename__ = "automation_execution_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rule_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    rule_name: Mapped[str] = mapped_column(String(255), nullable=False)
    rule_type: Mapped[str] = mapped_column(String(50), nullable=False)
    work_order_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False
    )  # "success", "partial", "failed"
    action_details_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    execution_time_ms: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    trigger_context_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    decision_factors_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    dismissed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_exec_log_work_order_time", "work_order_id", "created_at"),
        Index("ix_exec_log_rule_time", "rule_id", "created_at"),
    )


class NotificationRow(Base):
    """Queued notification. Delivery happens outside the engine."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    work_order_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    notification_type: Mapped[str] = mapped_column(String(50), nullable=False)
    recipient_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    recipient_role: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payload_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class TaskRow(Base):
    """Follow-up task created by automation for a work order."""

    __tablename__ = "work_order_tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    work_order_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("work_orders.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    assigned_to: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    rule_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="open")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class TechnicianRow(Base):
    """A technician automatic assignment may pick."""

    __tablename__ = "technicians"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    location_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    specializations_json: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    max_concurrent_orders: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    performance_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)


class ShiftRow(Base):
    """One scheduled working window of a technician."""

    __tablename__ = "technician_shifts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    technician_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("technicians.id"), nullable=False, index=True
    )
    start_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="scheduled")


class FixflowMetaRow(Base):
    """Key-value metadata for the Fixflow database itself (e.g., schema version)."""

    __tablename__ = "_fixflow_meta"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
