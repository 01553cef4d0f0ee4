"""SQLite implementations of repository interfaces, and the store facade.

All repositories use SQLAlchemy 2.0-style queries (select() + session.execute()).
Each repository takes a Session in its constructor.

SqlAutomationStore implements every engine boundary protocol on top of
the repositories. Each of its public calls runs in its own session and
transaction, so each call is independently atomic. SQLAlchemy
operational errors are translated to StoreError subclasses.
"""

from __future__ import annotations

import contextlib
import logging
import threading
import uuid
from collections.abc import Iterator, Mapping
from datetime import datetime, timezone
from typing import Any, Sequence

from sqlalchemy import Engine, delete, func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from fixflow.exceptions import (
    InvalidFieldError,
    LogEntryNotFoundError,
    RuleConfigError,
    RuleNotFoundError,
    StoreError,
    StoreTimeoutError,
    StoreUnavailableError,
    WorkOrderNotFoundError,
)
from fixflow.models.assignment import WORKLOAD_STATUSES, Shift, Technician
from fixflow.models.config import EngineConfig
from fixflow.models.execution import ExecutionLogEntry, ExecutionStatus, LogFilter
from fixflow.models.rule import AutomationRule
from fixflow.models.work_order import (
    STATUS_COMPLETED,
    TERMINAL_STATUSES,
    ActivityLogEntry,
    WorkOrderSnapshot,
)
from fixflow.storage.engine import create_fixflow_engine, create_session_factory, init_db
from fixflow.storage.repositories import (
    ActivityLogRepository,
    ExecutionLogRepository,
    NotificationRepository,
    RuleRepository,
    SettingRepository,
    TaskRepository,
    TechnicianRepository,
    WorkOrderRepository,
)
from fixflow.storage.schema import (
    ActivityLogRow,
    AutomationRuleRow,
    AutomationSettingRow,
    ExecutionLogRow,
    NotificationRow,
    ShiftRow,
    TaskRow,
    TechnicianRow,
    WorkOrderRow,
)

logger = logging.getLogger(__name__)

# Columns automation may write through update_fields().
UPDATABLE_FIELDS: frozenset[str] = frozenset({
    "title",
    "status",
    "priority",
    "category",
    "subcategory",
    "assigned_technician_id",
    "assigned_location_id",
    "sla_due",
    "total_paused_duration_seconds",
})


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class SqliteWorkOrderRepository(WorkOrderRepository):
    """SQLite implementation of work order repository."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, work_order_id: str) -> WorkOrderRow | None:
        stmt = select(WorkOrderRow).where(WorkOrderRow.id == work_order_id)
        return self._session.execute(stmt).scalar_one_or_none()

    def save(self, work_order: WorkOrderRow) -> None:
        self._session.merge(work_order)
        self._session.flush()

    def list_with_sla(self, exclude_statuses: frozenset[str]) -> Sequence[WorkOrderRow]:
        conditions = [WorkOrderRow.sla_due.is_not(None)]
        if exclude_statuses:
            conditions.append(WorkOrderRow.status.not_in(sorted(exclude_statuses)))
        stmt = (
            select(WorkOrderRow)
            .where(*conditions)
            .order_by(WorkOrderRow.sla_due, WorkOrderRow.id)
        )
        return list(self._session.execute(stmt).scalars().all())

    def update_fields(
        self, work_order_id: str, field_map: dict[str, Any], updated_at: datetime
    ) -> None:
        for name in field_map:
            if name not in UPDATABLE_FIELDS:
                raise InvalidFieldError(name)
        row = self.get(work_order_id)
        if row is None:
            raise WorkOrderNotFoundError(work_order_id)
        for name, value in field_map.items():
            setattr(row, name, value)
        row.updated_at = updated_at
        if field_map.get("status") == STATUS_COMPLETED and row.completed_at is None:
            row.completed_at = updated_at
        self._session.flush()


class SqliteActivityLogRepository(ActivityLogRepository):
    """SQLite implementation of the activity log. Insert-only."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def append(self, entry: ActivityLogRow) -> None:
        self._session.add(entry)
        self._session.flush()

    def list_for(self, work_order_ids: Sequence[str]) -> Sequence[ActivityLogRow]:
        if not work_order_ids:
            return []
        stmt = (
            select(ActivityLogRow)
            .where(ActivityLogRow.work_order_id.in_(list(work_order_ids)))
            .order_by(ActivityLogRow.timestamp, ActivityLogRow.id)
        )
        return list(self._session.execute(stmt).scalars().all())


class SqliteRuleRepository(RuleRepository):
    """SQLite implementation of automation rule storage."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, rule_id: str) -> AutomationRuleRow | None:
        stmt = select(AutomationRuleRow).where(AutomationRuleRow.id == rule_id)
        return self._session.execute(stmt).scalar_one_or_none()

    def save(self, rule: AutomationRuleRow) -> None:
        self._session.merge(rule)
        self._session.flush()

    def list_rules(
        self, rule_type: str | None = None, *, active_only: bool = True
    ) -> Sequence[AutomationRuleRow]:
        conditions = []
        if active_only:
            conditions.append(AutomationRuleRow.is_active.is_(True))
        if rule_type is not None:
            conditions.append(AutomationRuleRow.rule_type == rule_type)
        stmt = (
            select(AutomationRuleRow)
            .where(*conditions)
            .order_by(
                AutomationRuleRow.priority.desc(),
                AutomationRuleRow.created_at,
                AutomationRuleRow.id,
            )
        )
        return list(self._session.execute(stmt).scalars().all())

    def increment_execution(self, rule_id: str, executed_at: datetime) -> None:
        row = self.get(rule_id)
        if row is None:
            raise RuleNotFoundError(rule_id)
        row.execution_count = (row.execution_count or 0) + 1
        row.last_executed_at = executed_at
        self._session.flush()


class SqliteSettingRepository(SettingRepository):
    """SQLite implementation of automation settings."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, key: str) -> Any | None:
        stmt = select(AutomationSettingRow).where(AutomationSettingRow.setting_key == key)
        row = self._session.execute(stmt).scalar_one_or_none()
        return row.setting_value_json if row is not None else None

    def set(self, key: str, value: Any, updated_at: datetime) -> None:
        self._session.merge(
            AutomationSettingRow(setting_key=key, setting_value_json=value, updated_at=updated_at)
        )
        self._session.flush()


class SqliteExecutionLogRepository(ExecutionLogRepository):
    """SQLite implementation of the execution log.

    Insert-only apart from the dismissed_at tombstone.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def append(self, entry: ExecutionLogRow) -> int:
        self._session.add(entry)
        self._session.flush()
        return entry.id

    def get(self, log_id: int) -> ExecutionLogRow | None:
        stmt = select(ExecutionLogRow).where(ExecutionLogRow.id == log_id)
        return self._session.execute(stmt).scalar_one_or_none()

    def query(self, log_filter: LogFilter) -> Sequence[ExecutionLogRow]:
        conditions = []
        if log_filter.rule_id is not None:
            conditions.append(ExecutionLogRow.rule_id == log_filter.rule_id)
        if log_filter.work_order_id is not None:
            conditions.append(ExecutionLogRow.work_order_id == log_filter.work_order_id)
        if log_filter.action_type is not None:
            conditions.append(ExecutionLogRow.action_type == log_filter.action_type)
        if log_filter.statuses:
            conditions.append(
                ExecutionLogRow.status.in_([ExecutionStatus(s).value for s in log_filter.statuses])
            )
        if log_filter.since is not None:
            conditions.append(ExecutionLogRow.created_at >= log_filter.since)
        if log_filter.until is not None:
            conditions.append(ExecutionLogRow.created_at <= log_filter.until)
        if not log_filter.include_dismissed:
            conditions.append(ExecutionLogRow.dismissed_at.is_(None))

        stmt = (
            select(ExecutionLogRow)
            .where(*conditions)
            .order_by(ExecutionLogRow.created_at.desc(), ExecutionLogRow.id.desc())
        )
        if log_filter.limit is not None:
            stmt = stmt.limit(log_filter.limit)
        return list(self._session.execute(stmt).scalars().all())

    def dismiss(self, log_id: int, dismissed_at: datetime) -> None:
        row = self.get(log_id)
        if row is None:
            raise LogEntryNotFoundError(log_id)
        if row.dismissed_at is None:
            row.dismissed_at = dismissed_at
            self._session.flush()


class SqliteNotificationRepository(NotificationRepository):
    """SQLite implementation of the notification queue."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def enqueue(self, notification: NotificationRow) -> None:
        self._session.add(notification)
        self._session.flush()

    def list_for(self, work_order_id: str) -> Sequence[NotificationRow]:
        stmt = (
            select(NotificationRow)
            .where(NotificationRow.work_order_id == work_order_id)
            .order_by(NotificationRow.id)
        )
        return list(self._session.execute(stmt).scalars().all())


class SqliteTaskRepository(TaskRepository):
    """SQLite implementation of automation-created tasks."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def create(self, task: TaskRow) -> None:
        self._session.add(task)
        self._session.flush()

    def list_for(self, work_order_id: str) -> Sequence[TaskRow]:
        stmt = (
            select(TaskRow).where(TaskRow.work_order_id == work_order_id).order_by(TaskRow.id)
        )
        return list(self._session.execute(stmt).scalars().all())


class SqliteTechnicianRepository(TechnicianRepository):
    """SQLite implementation of technician lookups for assignment."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def save(self, technician: TechnicianRow, shifts: Sequence[ShiftRow]) -> None:
        self._session.merge(technician)
        self._session.execute(delete(ShiftRow).where(ShiftRow.technician_id == technician.id))
        self._session.add_all(list(shifts))
        self._session.flush()

    def list_active(self, location_ids: Sequence[str] | None = None) -> Sequence[TechnicianRow]:
        stmt = select(TechnicianRow).where(TechnicianRow.status == "active")
        if location_ids:
            stmt = stmt.where(TechnicianRow.location_id.in_(list(location_ids)))
        return list(self._session.execute(stmt.order_by(TechnicianRow.id)).scalars().all())

    def shifts_for(self, technician_ids: Sequence[str]) -> Sequence[ShiftRow]:
        if not technician_ids:
            return []
        stmt = (
            select(ShiftRow)
            .where(ShiftRow.technician_id.in_(list(technician_ids)))
            .order_by(ShiftRow.start_at)
        )
        return list(self._session.execute(stmt).scalars().all())

    def workload(self, technician_ids: Sequence[str], statuses: Sequence[str]) -> dict[str, int]:
        if not technician_ids:
            return {}
        stmt = (
            select(WorkOrderRow.assigned_technician_id, func.count(WorkOrderRow.id))
            .where(
                WorkOrderRow.assigned_technician_id.in_(list(technician_ids)),
                WorkOrderRow.status.in_(list(statuses)),
            )
            .group_by(WorkOrderRow.assigned_technician_id)
        )
        return {tech_id: count for tech_id, count in self._session.execute(stmt).all()}


# ---------------------------------------------------------------------------
# Row <-> domain conversion
# ---------------------------------------------------------------------------


def _to_snapshot(row: WorkOrderRow, activity: Sequence[ActivityLogRow] = ()) -> WorkOrderSnapshot:
    return WorkOrderSnapshot(
        id=row.id,
        work_order_number=row.work_order_number,
        status=row.status,
        priority=row.priority,
        created_at=row.created_at,
        title=row.title or "",
        category=row.category,
        subcategory=row.subcategory,
        assigned_technician_id=row.assigned_technician_id,
        assigned_location_id=row.assigned_location_id,
        sla_due=row.sla_due,
        total_paused_duration_seconds=row.total_paused_duration_seconds or 0.0,
        asset_mileage=row.asset_mileage,
        asset_properties=dict(row.asset_properties_json or {}),
        latitude=row.latitude,
        longitude=row.longitude,
        required_specialization=row.required_specialization,
        activity_log=tuple(
            ActivityLogEntry(
                timestamp=a.timestamp, text=a.text, actor=a.actor, automated=a.automated
            )
            for a in activity
        ),
    )


def _rule_record(row: AutomationRuleRow) -> dict[str, Any]:
    return {
        "id": row.id,
        "name": row.name,
        "description": row.description,
        "rule_type": row.rule_type,
        "is_active": row.is_active,
        "priority": row.priority,
        "trigger_conditions": row.trigger_conditions_json or {},
        "actions": row.actions_json or [],
        "execution_count": row.execution_count,
        "last_executed_at": row.last_executed_at,
        "created_at": row.created_at,
    }


def _to_technician(
    row: TechnicianRow, shifts: Sequence[ShiftRow], active_orders: int
) -> Technician:
    return Technician(
        id=row.id,
        name=row.name,
        status=row.status,
        location_id=row.location_id,
        latitude=row.latitude,
        longitude=row.longitude,
        specializations=tuple(row.specializations_json or ()),
        max_concurrent_orders=row.max_concurrent_orders,
        performance_score=row.performance_score,
        shifts=tuple(Shift(start=s.start_at, end=s.end_at, status=s.status) for s in shifts),
        active_orders=active_orders,
    )


def _to_log_entry(row: ExecutionLogRow) -> ExecutionLogEntry:
    return ExecutionLogEntry(
        id=row.id,
        rule_id=row.rule_id,
        rule_name=row.rule_name,
        rule_type=row.rule_type,
        work_order_id=row.work_order_id,
        action_type=row.action_type,
        status=ExecutionStatus(row.status),
        created_at=row.created_at,
        action_details=dict(row.action_details_json or {}),
        error_message=row.error_message,
        execution_time_ms=row.execution_time_ms,
        trigger_context=dict(row.trigger_context_json or {}),
        decision_factors=dict(row.decision_factors_json or {}),
        dismissed_at=row.dismissed_at,
    )


def _to_log_row(entry: ExecutionLogEntry) -> ExecutionLogRow:
    return ExecutionLogRow(
        rule_id=entry.rule_id,
        rule_name=entry.rule_name,
        rule_type=entry.rule_type,
        work_order_id=entry.work_order_id,
        action_type=entry.action_type,
        status=ExecutionStatus(entry.status).value,
        action_details_json=entry.action_details or None,
        error_message=entry.error_message,
        execution_time_ms=entry.execution_time_ms,
        trigger_context_json=entry.trigger_context or None,
        decision_factors_json=entry.decision_factors or None,
        created_at=entry.created_at,
        dismissed_at=None,
    )


def _translate(exc: Exception) -> StoreError:
    message = str(exc).lower()
    if isinstance(exc, PoolTimeoutError) or "locked" in message or "timeout" in message:
        return StoreTimeoutError(str(exc))
    return StoreUnavailableError(str(exc))


# ---------------------------------------------------------------------------
# Store facade
# ---------------------------------------------------------------------------


class SqlAutomationStore:
    """SQL-backed implementation of every engine boundary.

    Use :meth:`open` for the common case::

        store = SqlAutomationStore.open("fixflow.db")
    """

    def __init__(
        self,
        engine: Engine,
        *,
        terminal_statuses: frozenset[str] = TERMINAL_STATUSES,
        owns_engine: bool = False,
    ) -> None:
        self._engine = engine
        self._session_factory = create_session_factory(engine)
        self._terminal_statuses = frozenset(terminal_statuses)
        self._owns_engine = owns_engine
        # One SQLite connection may be shared across worker threads.
        self._lock: contextlib.AbstractContextManager[Any] = (
            threading.RLock() if engine.dialect.name == "sqlite" else contextlib.nullcontext()
        )

    @classmethod
    def open(
        cls,
        db_path: str = ":memory:",
        *,
        url: str | None = None,
        config: EngineConfig | None = None,
    ) -> SqlAutomationStore:
        """Create an engine, initialize the schema, and wrap it."""
        config = config or EngineConfig(db_path=db_path, db_url=url)
        busy_timeout_ms = 5000
        if config.action_timeout_seconds is not None:
            busy_timeout_ms = int(config.action_timeout_seconds * 1000)
        engine = create_fixflow_engine(
            db_path if db_path != ":memory:" else config.db_path,
            url=url or config.db_url,
            busy_timeout_ms=busy_timeout_ms,
        )
        init_db(engine)
        return cls(engine, terminal_statuses=config.terminal_statuses, owns_engine=True)

    @property
    def engine(self) -> Engine:
        return self._engine

    def close(self) -> None:
        if self._owns_engine:
            self._engine.dispose()

    def __enter__(self) -> SqlAutomationStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @contextlib.contextmanager
    def _scope(self) -> Iterator[Session]:
        """One session and transaction per boundary call."""
        with self._lock:
            session = self._session_factory()
            try:
                yield session
                session.commit()
            except (OperationalError, PoolTimeoutError) as exc:
                session.rollback()
                raise _translate(exc) from exc
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    # ------------------------------------------------------------------
    # SnapshotProvider
    # ------------------------------------------------------------------

    def get_snapshot(self, entity_id: str) -> WorkOrderSnapshot:
        with self._scope() as session:
            row = SqliteWorkOrderRepository(session).get(entity_id)
            if row is None:
                raise WorkOrderNotFoundError(entity_id)
            activity = SqliteActivityLogRepository(session).list_for([entity_id])
            return _to_snapshot(row, activity)

    def list_active_sla_entities(self) -> list[WorkOrderSnapshot]:
        with self._scope() as session:
            rows = SqliteWorkOrderRepository(session).list_with_sla(self._terminal_statuses)
            activity = SqliteActivityLogRepository(session).list_for([r.id for r in rows])
            by_order: dict[str, list[ActivityLogRow]] = {}
            for entry in activity:
                by_order.setdefault(entry.work_order_id, []).append(entry)
            return [_to_snapshot(r, by_order.get(r.id, ())) for r in rows]

    # ------------------------------------------------------------------
    # WorkOrderMutator
    # ------------------------------------------------------------------

    def update_fields(self, entity_id: str, field_map: Mapping[str, Any]) -> None:
        with self._scope() as session:
            SqliteWorkOrderRepository(session).update_fields(entity_id, dict(field_map), _now())

    def append_activity_log(self, entity_id: str, entry: ActivityLogEntry) -> None:
        with self._scope() as session:
            if SqliteWorkOrderRepository(session).get(entity_id) is None:
                raise WorkOrderNotFoundError(entity_id)
            SqliteActivityLogRepository(session).append(
                ActivityLogRow(
                    work_order_id=entity_id,
                    timestamp=entry.timestamp,
                    actor=entry.actor,
                    text=entry.text,
                    automated=entry.automated,
                )
            )

    def enqueue_notification(self, entity_id: str, notification_spec: Mapping[str, Any]) -> None:
        spec = dict(notification_spec)
        with self._scope() as session:
            if SqliteWorkOrderRepository(session).get(entity_id) is None:
                raise WorkOrderNotFoundError(entity_id)
            SqliteNotificationRepository(session).enqueue(
                NotificationRow(
                    work_order_id=entity_id,
                    notification_type=str(spec.pop("notification_type")),
                    recipient_id=spec.pop("recipient_id", None),
                    recipient_role=spec.pop("recipient_role", None),
                    message=spec.pop("message", None),
                    payload_json=spec or None,
                    created_at=_now(),
                )
            )

    def create_task(self, entity_id: str, task_spec: Mapping[str, Any]) -> None:
        with self._scope() as session:
            if SqliteWorkOrderRepository(session).get(entity_id) is None:
                raise WorkOrderNotFoundError(entity_id)
            SqliteTaskRepository(session).create(
                TaskRow(
                    work_order_id=entity_id,
                    title=str(task_spec["title"]),
                    description=task_spec.get("description"),
                    assigned_to=task_spec.get("assigned_to"),
                    rule_id=task_spec.get("rule_id"),
                    created_at=_now(),
                )
            )

    # ------------------------------------------------------------------
    # RuleStore / SettingsStore
    # ------------------------------------------------------------------

    def get_setting(self, key: str) -> bool:
        """Missing settings read as disabled."""
        with self._scope() as session:
            value = SqliteSettingRepository(session).get(key)
        if isinstance(value, dict):
            value = value.get("enabled", False)
        return bool(value)

    def list_active_rules(self, rule_type: str | None = None) -> list[AutomationRule]:
        """Active rules, priority descending; unusable records are skipped."""
        with self._scope() as session:
            rows = SqliteRuleRepository(session).list_rules(rule_type, active_only=True)
            records = [_rule_record(r) for r in rows]
        rules = []
        for record in records:
            try:
                rules.append(AutomationRule.from_record(record))
            except RuleConfigError as exc:
                logger.warning("Skipping rule %s: %s", record.get("id"), exc)
        return rules

    def list_rules(self, *, include_inactive: bool = False) -> list[AutomationRule]:
        with self._scope() as session:
            rows = SqliteRuleRepository(session).list_rules(active_only=not include_inactive)
            records = [_rule_record(r) for r in rows]
        return [AutomationRule.from_record(r) for r in records]

    def get_rule(self, rule_id: str) -> AutomationRule:
        with self._scope() as session:
            row = SqliteRuleRepository(session).get(rule_id)
            if row is None:
                raise RuleNotFoundError(rule_id)
            record = _rule_record(row)
        return AutomationRule.from_record(record)

    def increment_execution(self, rule_id: str, executed_at: datetime) -> None:
        with self._scope() as session:
            SqliteRuleRepository(session).increment_execution(rule_id, executed_at)

    # ------------------------------------------------------------------
    # AuditLog
    # ------------------------------------------------------------------

    def append_log(self, entry: ExecutionLogEntry) -> int:
        with self._scope() as session:
            return SqliteExecutionLogRepository(session).append(_to_log_row(entry))

    def get_log(self, log_id: int) -> ExecutionLogEntry:
        with self._scope() as session:
            row = SqliteExecutionLogRepository(session).get(log_id)
            if row is None:
                raise LogEntryNotFoundError(log_id)
            return _to_log_entry(row)

    def list_recent_logs(self, log_filter: LogFilter | None = None) -> list[ExecutionLogEntry]:
        with self._scope() as session:
            rows = SqliteExecutionLogRepository(session).query(log_filter or LogFilter())
            return [_to_log_entry(r) for r in rows]

    def dismiss_log(self, log_id: int, dismissed_at: datetime) -> None:
        with self._scope() as session:
            SqliteExecutionLogRepository(session).dismiss(log_id, dismissed_at)

    # ------------------------------------------------------------------
    # TechnicianDirectory
    # ------------------------------------------------------------------

    def list_assignment_candidates(
        self, location_ids: Sequence[str] | None = None
    ) -> list[Technician]:
        """Active technicians with their shifts and current workload."""
        with self._scope() as session:
            repo = SqliteTechnicianRepository(session)
            rows = repo.list_active(location_ids)
            ids = [r.id for r in rows]
            shifts: dict[str, list[ShiftRow]] = {}
            for shift in repo.shifts_for(ids):
                shifts.setdefault(shift.technician_id, []).append(shift)
            load = repo.workload(ids, WORKLOAD_STATUSES)
            return [_to_technician(r, shifts.get(r.id, ()), load.get(r.id, 0)) for r in rows]

    # ------------------------------------------------------------------
    # Seeding and inspection (rule editor / work order forms stand-ins)
    # ------------------------------------------------------------------

    def save_work_order(
        self,
        snapshot: WorkOrderSnapshot,
        *,
        asset_id: str | None = None,
        completed_at: datetime | None = None,
    ) -> None:
        """Insert or replace a work order. Activity entries are added on insert only."""
        with self._scope() as session:
            repo = SqliteWorkOrderRepository(session)
            is_new = repo.get(snapshot.id) is None
            repo.save(
                WorkOrderRow(
                    id=snapshot.id,
                    work_order_number=snapshot.work_order_number,
                    title=snapshot.title,
                    status=snapshot.status,
                    priority=snapshot.priority,
                    category=snapshot.category,
                    subcategory=snapshot.subcategory,
                    assigned_technician_id=snapshot.assigned_technician_id,
                    assigned_location_id=snapshot.assigned_location_id,
                    asset_id=asset_id,
                    asset_mileage=snapshot.asset_mileage,
                    asset_properties_json=dict(snapshot.asset_properties) or None,
                    sla_due=snapshot.sla_due,
                    total_paused_duration_seconds=snapshot.total_paused_duration_seconds,
                    latitude=snapshot.latitude,
                    longitude=snapshot.longitude,
                    required_specialization=snapshot.required_specialization,
                    created_at=snapshot.created_at,
                    completed_at=completed_at,
                )
            )
            if is_new:
                activity = SqliteActivityLogRepository(session)
                for entry in snapshot.activity_log:
                    activity.append(
                        ActivityLogRow(
                            work_order_id=snapshot.id,
                            timestamp=entry.timestamp,
                            actor=entry.actor,
                            text=entry.text,
                            automated=entry.automated,
                        )
                    )

    def save_rule(self, record: Mapping[str, Any]) -> AutomationRule:
        """Validate and store a rule record as the rule editor would.

        Raises:
            RuleConfigError: If the record is structurally unusable.
        """
        record = dict(record)
        record.setdefault("id", uuid.uuid4().hex)
        record.setdefault("created_at", _now())
        rule = AutomationRule.from_record(record)
        with self._scope() as session:
            SqliteRuleRepository(session).save(
                AutomationRuleRow(
                    id=rule.id,
                    name=rule.name,
                    description=rule.description,
                    rule_type=rule.rule_type.value,
                    is_active=rule.is_active,
                    priority=rule.priority,
                    trigger_conditions_json=dict(record.get("trigger_conditions") or {}),
                    actions_json=list(record.get("actions") or []),
                    execution_count=rule.execution_count,
                    last_executed_at=rule.last_executed_at,
                    created_at=record["created_at"],
                    updated_at=_now(),
                )
            )
        return rule

    def save_technician(self, technician: Technician) -> None:
        """Insert or replace a technician and its shifts. Workload is derived."""
        with self._scope() as session:
            SqliteTechnicianRepository(session).save(
                TechnicianRow(
                    id=technician.id,
                    name=technician.name,
                    status=technician.status,
                    location_id=technician.location_id,
                    latitude=technician.latitude,
                    longitude=technician.longitude,
                    specializations_json=list(technician.specializations) or None,
                    max_concurrent_orders=technician.max_concurrent_orders,
                    performance_score=technician.performance_score,
                ),
                [
                    ShiftRow(
                        technician_id=technician.id,
                        start_at=s.start,
                        end_at=s.end,
                        status=s.status,
                    )
                    for s in technician.shifts
                ],
            )

    def set_setting(self, key: str, enabled: bool) -> None:
        with self._scope() as session:
            SqliteSettingRepository(session).set(key, {"enabled": bool(enabled)}, _now())

    def list_notifications(self, work_order_id: str) -> list[dict[str, Any]]:
        with self._scope() as session:
            rows = SqliteNotificationRepository(session).list_for(work_order_id)
            return [
                {
                    "notification_type": r.notification_type,
                    "recipient_id": r.recipient_id,
                    "recipient_role": r.recipient_role,
                    "message": r.message,
                    **(r.payload_json or {}),
                }
                for r in rows
            ]

    def list_tasks(self, work_order_id: str) -> list[dict[str, Any]]:
        with self._scope() as session:
            rows = SqliteTaskRepository(session).list_for(work_order_id)
            return [
                {
                    "title": r.title,
                    "description": r.description,
                    "assigned_to": r.assigned_to,
                    "rule_id": r.rule_id,
                    "status": r.status,
                }
                for r in rows
            ]
