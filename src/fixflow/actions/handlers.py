"""Per-action-type handlers.

Each handler performs one bounded mutation through the WorkOrderMutator
and returns a short success message. escalate is the exception: it makes
two calls and is not atomic across them (see its docstring). Classified
failures are raised as ActionError; the executor turns every exception
into a failed outcome.

Handlers return a message, or an ActionReport when they have decision
data worth logging.

Handlers are registered by Action model class, so a new action type is
a new model plus one ``registry.register()`` call.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel

from fixflow.assignment.scorer import rank_candidates
from fixflow.exceptions import ActionError
from fixflow.models.actions import (
    DUE_DATE_OFFSETS,
    NOTIFICATION_TYPES,
    AddActivityLogAction,
    AssignCategoryAction,
    AssignLocationAction,
    AssignTechnicianAction,
    AutoAssignAction,
    CreateTaskAction,
    EscalateAction,
    InvalidAction,
    ReassignAction,
    SendNotificationAction,
    SetDueDateAction,
    UnknownAction,
    UpdatePriorityAction,
    UpdateStatusAction,
)
from fixflow.models.rule import AutomationRule
from fixflow.models.sla import SLAStatus
from fixflow.models.work_order import (
    WORK_ORDER_PRIORITIES,
    WORK_ORDER_STATUSES,
    ActivityLogEntry,
    WorkOrderSnapshot,
)
from fixflow.protocols import TechnicianDirectory, WorkOrderMutator

logger = logging.getLogger(__name__)

NOT_IMPLEMENTED_MESSAGE = "action type not implemented"


@dataclass(frozen=True)
class ActionContext:
    """What a handler may use besides the action and the snapshot."""

    mutator: WorkOrderMutator
    now: datetime
    rule: AutomationRule
    sla_status: SLAStatus | None = None
    directory: TechnicianDirectory | None = None


@dataclass(frozen=True)
class ActionReport:
    """A success message plus decision data to keep in the execution log."""

    message: str
    details: dict[str, Any] = field(default_factory=dict)


Handler = Callable[[Any, WorkOrderSnapshot, ActionContext], str | ActionReport]


class HandlerRegistry:
    """Maps Action model classes to handlers."""

    def __init__(self) -> None:
        self._handlers: dict[type[BaseModel], Handler] = {}

    def register(self, action_cls: type[BaseModel], handler: Handler) -> None:
        self._handlers[action_cls] = handler

    def get(self, action_cls: type[BaseModel]) -> Handler | None:
        return self._handlers.get(action_cls)

    def __contains__(self, action_cls: object) -> bool:
        return action_cls in self._handlers

    def copy(self) -> HandlerRegistry:
        clone = HandlerRegistry()
        clone._handlers = dict(self._handlers)
        return clone


def _canonical(value: str, allowed: tuple[str, ...], kind: str) -> str:
    for candidate in allowed:
        if candidate.lower() == value.strip().lower():
            return candidate
    raise ActionError(f"unknown {kind} '{value}'", error_type="validation")


def _default_log_message(ctx: ActionContext) -> str:
    if ctx.sla_status is not None:
        return f"SLA {ctx.sla_status.status.value} - escalated by automation"
    return f"Rule '{ctx.rule.name}' applied by automation"


def _automated_entry(ctx: ActionContext, text: str) -> ActivityLogEntry:
    return ActivityLogEntry(timestamp=ctx.now, text=text, actor=None, automated=True)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def assign_technician(action: AssignTechnicianAction, snap: WorkOrderSnapshot, ctx: ActionContext) -> str:
    ctx.mutator.update_fields(snap.id, {"assigned_technician_id": action.technician_id})
    return f"Assigned to technician {action.technician_id}"


def update_status(action: UpdateStatusAction, snap: WorkOrderSnapshot, ctx: ActionContext) -> str:
    status = _canonical(action.status, WORK_ORDER_STATUSES, "status")
    ctx.mutator.update_fields(snap.id, {"status": status})
    return f"Status changed to {status}"


def update_priority(action: UpdatePriorityAction, snap: WorkOrderSnapshot, ctx: ActionContext) -> str:
    priority = _canonical(action.priority, WORK_ORDER_PRIORITIES, "priority")
    ctx.mutator.update_fields(snap.id, {"priority": priority})
    return f"Priority changed to {priority}"


def send_notification(action: SendNotificationAction, snap: WorkOrderSnapshot, ctx: ActionContext) -> str:
    ntype = action.notification_type
    if ntype not in NOTIFICATION_TYPES:
        raise ActionError(f"unknown notification type '{ntype}'", error_type="validation")

    recipient_id = None
    recipient_role = action.recipient_role
    if ntype in ("email_assigned_user", "reminder_due_date", "reminder_sla") and not recipient_role:
        recipient_id = snap.assigned_technician_id
        if recipient_id is None:
            raise ActionError(
                f"'{ntype}' needs an assigned technician", error_type="validation"
            )
    elif ntype == "email_customer":
        recipient_role = recipient_role or "customer"
    elif ntype in ("email_manager", "escalation"):
        recipient_role = recipient_role or "manager"

    ctx.mutator.enqueue_notification(
        snap.id,
        {
            "notification_type": ntype,
            "recipient_id": recipient_id,
            "recipient_role": recipient_role,
            "message": action.message or _default_log_message(ctx),
            "rule_id": ctx.rule.id,
            "work_order_number": snap.work_order_number,
        },
    )
    return f"Notification '{ntype}' queued for {recipient_id or recipient_role}"


def add_activity_log(action: AddActivityLogAction, snap: WorkOrderSnapshot, ctx: ActionContext) -> str:
    text = action.message or _default_log_message(ctx)
    ctx.mutator.append_activity_log(snap.id, _automated_entry(ctx, text))
    return "Activity log entry added"


def create_task(action: CreateTaskAction, snap: WorkOrderSnapshot, ctx: ActionContext) -> str:
    ctx.mutator.create_task(
        snap.id,
        {
            "title": action.title,
            "description": action.description,
            "assigned_to": action.assigned_to,
            "rule_id": ctx.rule.id,
        },
    )
    return f"Task '{action.title}' created"


def assign_location(action: AssignLocationAction, snap: WorkOrderSnapshot, ctx: ActionContext) -> str:
    ctx.mutator.update_fields(snap.id, {"assigned_location_id": action.location_id})
    return f"Assigned to location {action.location_id}"


def assign_category(action: AssignCategoryAction, snap: WorkOrderSnapshot, ctx: ActionContext) -> str:
    ctx.mutator.update_fields(snap.id, {"category": action.category_id})
    return f"Category set to {action.category_id}"


def set_due_date(action: SetDueDateAction, snap: WorkOrderSnapshot, ctx: ActionContext) -> str:
    seconds = DUE_DATE_OFFSETS.get(action.offset)
    if seconds is None:
        raise ActionError(f"unknown due date offset '{action.offset}'", error_type="validation")
    due = ctx.now + timedelta(seconds=seconds)
    ctx.mutator.update_fields(snap.id, {"sla_due": due})
    return f"Due date set to {due.isoformat(timespec='minutes')}"


def escalate(action: EscalateAction, snap: WorkOrderSnapshot, ctx: ActionContext) -> str:
    """Record the escalation on the work order, then notify ``to_role``.

    The activity entry and the notification are written by two separate
    store calls. If queueing the notification fails the action is reported
    as failed, but the activity entry already written is kept.
    """
    text = action.message or _default_log_message(ctx)
    ctx.mutator.append_activity_log(
        snap.id, _automated_entry(ctx, f"Escalated to {action.to_role}: {text}")
    )
    ctx.mutator.enqueue_notification(
        snap.id,
        {
            "notification_type": "escalation",
            "recipient_id": None,
            "recipient_role": action.to_role,
            "message": text,
            "rule_id": ctx.rule.id,
            "work_order_number": snap.work_order_number,
        },
    )
    return f"Escalated to {action.to_role}"


def reassign(action: ReassignAction, snap: WorkOrderSnapshot, ctx: ActionContext) -> str:
    ctx.mutator.update_fields(snap.id, {"assigned_technician_id": action.technician_id})
    if action.technician_id is None:
        return "Technician unassigned"
    return f"Reassigned to technician {action.technician_id}"


def auto_assign(action: AutoAssignAction, snap: WorkOrderSnapshot, ctx: ActionContext) -> ActionReport:
    """Assign the best-scoring technician, or apply the rule's fallback.

    The winner is assigned (and the status set) in one update. Candidate
    scores are reported as decision data whether or not anyone qualified.
    """
    if snap.assigned_technician_id:
        raise ActionError(
            f"already assigned to technician {snap.assigned_technician_id}",
            error_type="validation",
        )
    if ctx.directory is None:
        raise ActionError("no technician directory available", error_type="validation")
    status = None
    if action.set_status:
        status = _canonical(action.set_status, WORK_ORDER_STATUSES, "status")

    technicians = ctx.directory.list_assignment_candidates(action.allowed_locations)
    ranking = rank_candidates(technicians, snap, action, ctx.now)
    factors = ranking.decision_factors()
    best = ranking.best
    if best is None:
        return _assignment_fallback(action, snap, ctx, factors)

    field_map: dict[str, Any] = {"assigned_technician_id": best.technician_id}
    if status is not None:
        field_map["status"] = status
    ctx.mutator.update_fields(snap.id, field_map)
    factors["assigned_technician_id"] = best.technician_id
    logger.debug(
        "Work order %s assigned to %s (score %.2f, %d candidate(s))",
        snap.id, best.technician_id, best.total, len(ranking.candidates),
    )
    return ActionReport(f"Assigned to {best.technician_name} (score {best.total:g})", factors)


def _assignment_fallback(
    action: AutoAssignAction, snap: WorkOrderSnapshot, ctx: ActionContext, factors: dict
) -> ActionReport:
    reason = (
        "no suitable technician after scoring" if factors["excluded"] else "no technicians available"
    )
    factors["failure_reason"] = reason
    factors["fallback_action"] = action.fallback_action
    if action.fallback_action == "assign_user":
        ctx.mutator.update_fields(snap.id, {"assigned_technician_id": action.fallback_user_id})
        return ActionReport(f"{reason}; assigned fallback technician {action.fallback_user_id}", factors)
    if action.fallback_action == "notify_manager":
        ctx.mutator.enqueue_notification(
            snap.id,
            {
                "notification_type": "email_manager",
                "recipient_id": None,
                "recipient_role": "manager",
                "message": f"Automatic assignment failed: {reason}",
                "rule_id": ctx.rule.id,
                "work_order_number": snap.work_order_number,
            },
        )
        return ActionReport(f"{reason}; manager notified", factors)
    raise ActionError(reason, error_type="execution", details=factors)


def unknown(action: UnknownAction, snap: WorkOrderSnapshot, ctx: ActionContext) -> str:
    raise ActionError(NOT_IMPLEMENTED_MESSAGE, error_type="validation")


def invalid(action: InvalidAction, snap: WorkOrderSnapshot, ctx: ActionContext) -> str:
    raise ActionError(
        f"invalid parameters for '{action.original_type}': {action.reason}",
        error_type="validation",
    )


def default_registry() -> HandlerRegistry:
    """A registry with every built-in action type registered."""
    registry = HandlerRegistry()
    registry.register(AssignTechnicianAction, assign_technician)
    registry.register(UpdateStatusAction, update_status)
    registry.register(UpdatePriorityAction, update_priority)
    registry.register(SendNotificationAction, send_notification)
    registry.register(AddActivityLogAction, add_activity_log)
    registry.register(CreateTaskAction, create_task)
    registry.register(AssignLocationAction, assign_location)
    registry.register(AssignCategoryAction, assign_category)
    registry.register(SetDueDateAction, set_due_date)
    registry.register(EscalateAction, escalate)
    registry.register(ReassignAction, reassign)
    registry.register(AutoAssignAction, auto_assign)
    registry.register(UnknownAction, unknown)
    registry.register(InvalidAction, invalid)
    return registry
