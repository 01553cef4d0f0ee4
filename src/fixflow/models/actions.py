"""Action type system for automation rules.

Actions are stored as ``{"type", "parameters", "execute_on"}`` records.
parse_action() normalizes the rule editor's legacy type names and turns
each record into one variant of a closed discriminated union. Records
with an unrecognized type become UnknownAction; records whose parameters
do not fit their type become InvalidAction. Both are executed as failed
actions, never as crashes.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, ValidationError, model_validator

_FROZEN = {"frozen": True}


class ActionType(str, enum.Enum):
    """Closed set of action types the executor knows how to run."""

    ASSIGN_TECHNICIAN = "assign_technician"
    UPDATE_STATUS = "update_status"
    UPDATE_PRIORITY = "update_priority"
    SEND_NOTIFICATION = "send_notification"
    ADD_ACTIVITY_LOG = "add_activity_log"
    CREATE_TASK = "create_task"
    ASSIGN_LOCATION = "assign_location"
    ASSIGN_CATEGORY = "assign_category"
    SET_DUE_DATE = "set_due_date"
    ESCALATE = "escalate"
    REASSIGN = "reassign"
    AUTO_ASSIGN = "auto_assign"


# Names written by the rule editor for the same operations.
ACTION_TYPE_ALIASES: dict[str, str] = {
    "assign_user": ActionType.ASSIGN_TECHNICIAN.value,
    "change_status": ActionType.UPDATE_STATUS.value,
    "assign_priority": ActionType.UPDATE_PRIORITY.value,
    "add_comment": ActionType.ADD_ACTIVITY_LOG.value,
    "auto_assign_technician": ActionType.AUTO_ASSIGN.value,
}

NOTIFICATION_TYPES: frozenset[str] = frozenset({
    "email_assigned_user",
    "email_customer",
    "email_manager",
    "reminder_due_date",
    "reminder_sla",
    "escalation",
})

# set_due_date offset tokens -> seconds
DUE_DATE_OFFSETS: dict[str, int] = {
    "1_hour": 3600,
    "2_hours": 2 * 3600,
    "4_hours": 4 * 3600,
    "8_hours": 8 * 3600,
    "1_day": 86400,
    "2_days": 2 * 86400,
    "1_week": 7 * 86400,
}


class _ActionBase(BaseModel):
    model_config = _FROZEN

    execute_on: str = "immediate"


class AssignTechnicianAction(_ActionBase):
    type: Literal["assign_technician"] = "assign_technician"
    technician_id: str = Field(min_length=1)


class UpdateStatusAction(_ActionBase):
    type: Literal["update_status"] = "update_status"
    status: str = Field(min_length=1)


class UpdatePriorityAction(_ActionBase):
    type: Literal["update_priority"] = "update_priority"
    priority: str = "High"


class SendNotificationAction(_ActionBase):
    type: Literal["send_notification"] = "send_notification"
    notification_type: str = Field(min_length=1)
    recipient_role: str | None = None
    message: str | None = None


class AddActivityLogAction(_ActionBase):
    type: Literal["add_activity_log"] = "add_activity_log"
    message: str | None = None


class CreateTaskAction(_ActionBase):
    type: Literal["create_task"] = "create_task"
    title: str = Field(min_length=1)
    description: str | None = None
    assigned_to: str | None = None


class AssignLocationAction(_ActionBase):
    type: Literal["assign_location"] = "assign_location"
    location_id: str = Field(min_length=1)


class AssignCategoryAction(_ActionBase):
    type: Literal["assign_category"] = "assign_category"
    category_id: str = Field(min_length=1)


class SetDueDateAction(_ActionBase):
    type: Literal["set_due_date"] = "set_due_date"
    offset: str


class EscalateAction(_ActionBase):
    type: Literal["escalate"] = "escalate"
    to_role: str = "manager"
    message: str | None = None


class ReassignAction(_ActionBase):
    """Replace the assigned technician, or clear it when technician_id is None."""

    type: Literal["reassign"] = "reassign"
    technician_id: str | None = None


FALLBACK_ACTIONS: frozenset[str] = frozenset({"none", "notify_manager", "assign_user"})


class AutoAssignAction(_ActionBase):
    """Score eligible technicians and assign the best one.

    Each weight scales one 0-100 dimension of the candidate score; the
    total is their weighted average. When nobody qualifies,
    ``fallback_action`` decides what happens instead.
    """

    type: Literal["auto_assign"] = "auto_assign"
    weight_availability: float = Field(default=0.3, ge=0)
    weight_specialization: float = Field(default=0.25, ge=0)
    weight_proximity: float = Field(default=0.2, ge=0)
    weight_workload: float = Field(default=0.15, ge=0)
    weight_performance: float = Field(default=0.1, ge=0)
    max_distance_km: float | None = Field(default=None, gt=0)
    require_specialization_match: bool = False
    respect_max_concurrent_orders: bool = True
    allowed_locations: tuple[str, ...] | None = None
    set_status: str | None = "In Progress"
    fallback_action: str = "none"
    fallback_user_id: str | None = None

    @model_validator(mode="after")
    def _check(self) -> AutoAssignAction:
        if self.total_weight <= 0:
            raise ValueError("at least one weight must be positive")
        if self.fallback_action not in FALLBACK_ACTIONS:
            raise ValueError(f"unknown fallback_action '{self.fallback_action}'")
        if self.fallback_action == "assign_user" and not self.fallback_user_id:
            raise ValueError("fallback_action 'assign_user' needs fallback_user_id")
        return self

    @property
    def total_weight(self) -> float:
        return (
            self.weight_availability
            + self.weight_specialization
            + self.weight_proximity
            + self.weight_workload
            + self.weight_performance
        )


class UnknownAction(_ActionBase):
    type: Literal["unknown"] = "unknown"
    original_type: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class InvalidAction(_ActionBase):
    type: Literal["invalid"] = "invalid"
    original_type: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    reason: str


Action = Annotated[
    Union[
        AssignTechnicianAction,
        UpdateStatusAction,
        UpdatePriorityAction,
        SendNotificationAction,
        AddActivityLogAction,
        CreateTaskAction,
        AssignLocationAction,
        AssignCategoryAction,
        SetDueDateAction,
        EscalateAction,
        ReassignAction,
        AutoAssignAction,
        UnknownAction,
        InvalidAction,
    ],
    Field(discriminator="type"),
]

_ACTION_MODELS: dict[str, type[_ActionBase]] = {
    ActionType.ASSIGN_TECHNICIAN.value: AssignTechnicianAction,
    ActionType.UPDATE_STATUS.value: UpdateStatusAction,
    ActionType.UPDATE_PRIORITY.value: UpdatePriorityAction,
    ActionType.SEND_NOTIFICATION.value: SendNotificationAction,
    ActionType.ADD_ACTIVITY_LOG.value: AddActivityLogAction,
    ActionType.CREATE_TASK.value: CreateTaskAction,
    ActionType.ASSIGN_LOCATION.value: AssignLocationAction,
    ActionType.ASSIGN_CATEGORY.value: AssignCategoryAction,
    ActionType.SET_DUE_DATE.value: SetDueDateAction,
    ActionType.ESCALATE.value: EscalateAction,
    ActionType.REASSIGN.value: ReassignAction,
    ActionType.AUTO_ASSIGN.value: AutoAssignAction,
}

# Parameter names used by the source system and the rule editor, per type.
# The editor stored the single configured value under "value".
_PARAM_ALIASES: dict[str, dict[str, str]] = {
    "assign_technician": {"value": "technician_id", "user_id": "technician_id"},
    "update_status": {"value": "status", "new_status": "status"},
    "update_priority": {"value": "priority", "new_priority": "priority"},
    "send_notification": {"value": "notification_type", "type": "notification_type"},
    "add_activity_log": {"value": "message", "comment": "message"},
    "create_task": {"value": "title"},
    "assign_location": {"value": "location_id"},
    "assign_category": {"value": "category_id"},
    "set_due_date": {"value": "offset"},
    "escalate": {"value": "to_role", "role": "to_role"},
    "reassign": {"value": "technician_id"},
    "auto_assign": {"locations": "allowed_locations", "max_distance": "max_distance_km"},
}


def normalize_action_type(raw_type: str) -> str:
    return ACTION_TYPE_ALIASES.get(raw_type, raw_type)


def parse_action(record: Mapping[str, Any]) -> _ActionBase:
    """Turn a stored action record into a typed Action. Never raises."""
    raw_type = str(record.get("type") or "")
    params = dict(record.get("parameters") or {})
    # Editor records carry the value at the top level.
    if "value" in record and "value" not in params:
        params["value"] = record["value"]
    execute_on = str(record.get("execute_on") or "immediate")

    atype = normalize_action_type(raw_type)
    model = _ACTION_MODELS.get(atype)
    if model is None:
        return UnknownAction(
            original_type=raw_type, parameters=params, execute_on=execute_on
        )

    aliases = _PARAM_ALIASES.get(atype, {})
    fields: dict[str, Any] = {}
    for key, val in params.items():
        name = aliases.get(key, key)
        if name in model.model_fields and name not in ("type", "execute_on"):
            fields.setdefault(name, val)
    try:
        return model(execute_on=execute_on, **fields)
    except ValidationError as exc:
        reasons = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in exc.errors()
        )
        return InvalidAction(
            original_type=raw_type,
            parameters=params,
            execute_on=execute_on,
            reason=reasons,
        )


def parse_actions(records: list[Mapping[str, Any]] | None) -> list[_ActionBase]:
    return [parse_action(r) for r in (records or [])]


def action_type_name(action: BaseModel) -> str:
    """The type name to report for an action, preserving unknown raw names."""
    if isinstance(action, (UnknownAction, InvalidAction)):
        return action.original_type or "unknown"
    return action.type
