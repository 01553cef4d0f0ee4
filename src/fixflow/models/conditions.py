"""Condition type system for automation rules.

Rule records store every condition as ``{"type", "value", "operator"}``
with a string-encoded value whose meaning depends on ``type``. This module
turns those records into a discriminated union of Pydantic models at
rule-load time, so the evaluator only ever sees typed values.

Anything that cannot be turned into a satisfiable condition (unknown type,
empty value, missing operator, unparsable value) becomes an
InvalidCondition, which always evaluates to False and carries the reason.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import time
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

_FROZEN = {"frozen": True}

DAYS_OF_WEEK: tuple[str, ...] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


# ---------------------------------------------------------------------------
# Condition variants
# ---------------------------------------------------------------------------


class CategoryCondition(BaseModel):
    """Work order category id equals ``category_id``."""

    model_config = _FROZEN

    type: Literal["category"] = "category"
    category_id: str


class PriorityCondition(BaseModel):
    """Work order priority equals ``priority`` (case-insensitive)."""

    model_config = _FROZEN

    type: Literal["priority"] = "priority"
    priority: str


class TechnicianCondition(BaseModel):
    """Assigned technician id equals ``technician_id``."""

    model_config = _FROZEN

    type: Literal["user"] = "user"
    technician_id: str


class LocationCondition(BaseModel):
    """Assigned location id equals ``location_id``."""

    model_config = _FROZEN

    type: Literal["location"] = "location"
    location_id: str


class TitleContainsCondition(BaseModel):
    """Case-insensitive substring match against the work order title."""

    model_config = _FROZEN

    type: Literal["title_contains"] = "title_contains"
    text: str


class DayOfWeekCondition(BaseModel):
    """Evaluation time falls on ``day`` (lower-case English day name)."""

    model_config = _FROZEN

    type: Literal["day_of_week"] = "day_of_week"
    day: str


class TimeOfDayCondition(BaseModel):
    """Evaluation time of day is before/after ``start`` or between start and end."""

    model_config = _FROZEN

    type: Literal["time_of_day"] = "time_of_day"
    operator: Literal["before", "after", "between"]
    start: time
    end: time | None = None


class AssetMileageCondition(BaseModel):
    """Asset mileage is greater/less than ``threshold``."""

    model_config = _FROZEN

    type: Literal["asset_mileage"] = "asset_mileage"
    operator: Literal["greater_than", "less_than"]
    threshold: float


class InvalidCondition(BaseModel):
    """A condition that can never match.

    Keeps the original record so the reason can be attributed in the log.
    """

    model_config = _FROZEN

    type: Literal["invalid"] = "invalid"
    original_type: str
    value: str = ""
    operator: str | None = None
    reason: str


Condition = Annotated[
    Union[
        CategoryCondition,
        PriorityCondition,
        TechnicianCondition,
        LocationCondition,
        TitleContainsCondition,
        DayOfWeekCondition,
        TimeOfDayCondition,
        AssetMileageCondition,
        InvalidCondition,
    ],
    Field(discriminator="type"),
]

_condition_adapter = TypeAdapter(Condition)

# Types whose comparison needs an operator.
ORDERED_CONDITION_TYPES: frozenset[str] = frozenset({"asset_mileage", "time_of_day"})

_TYPED_TAGS: frozenset[str] = frozenset({
    "category", "priority", "user", "location", "title_contains",
    "day_of_week", "time_of_day", "asset_mileage",
})


# ---------------------------------------------------------------------------
# Record parsing
# ---------------------------------------------------------------------------


def _parse_time(raw: str) -> time:
    hours, _, minutes = raw.strip().partition(":")
    return time(int(hours), int(minutes or 0))


def _parse_time_of_day(value: str, operator: str | None) -> TimeOfDayCondition:
    if operator == "between":
        start_raw, sep, end_raw = value.partition("-")
        if not sep:
            raise ValueError("'between' needs a value of the form HH:MM-HH:MM")
        return TimeOfDayCondition(
            operator="between", start=_parse_time(start_raw), end=_parse_time(end_raw)
        )
    return TimeOfDayCondition(operator=operator, start=_parse_time(value))


def _parse_day(value: str) -> DayOfWeekCondition:
    day = value.strip().lower()
    if day not in DAYS_OF_WEEK:
        raise ValueError(f"unknown day of week '{value}'")
    return DayOfWeekCondition(day=day)


_PARSERS: dict[str, Callable[[str, str | None], BaseModel]] = {
    "category": lambda v, _op: CategoryCondition(category_id=v),
    "priority": lambda v, _op: PriorityCondition(priority=v),
    "user": lambda v, _op: TechnicianCondition(technician_id=v),
    "technician": lambda v, _op: TechnicianCondition(technician_id=v),
    "location": lambda v, _op: LocationCondition(location_id=v),
    "title_contains": lambda v, _op: TitleContainsCondition(text=v),
    "day_of_week": lambda v, _op: _parse_day(v),
    "time_of_day": _parse_time_of_day,
    "asset_mileage": lambda v, op: AssetMileageCondition(
        operator=op, threshold=float(v)
    ),
}


def parse_condition(record: Mapping[str, Any]) -> BaseModel:
    """Turn a stored condition record into a typed Condition.

    Accepts ``operator`` or the rule editor's ``propertyType`` key for the
    comparison operator. Never raises: malformed records come back as
    InvalidCondition.
    """
    ctype = str(record.get("type") or "")
    if ctype == "invalid" or (ctype in _TYPED_TAGS and "value" not in record):
        # Already-typed payload (e.g. a model_dump() round trip).
        try:
            return _condition_adapter.validate_python(dict(record))
        except ValueError:
            pass

    value = record.get("value")
    value = "" if value is None else str(value)
    operator = record.get("operator") or record.get("propertyType") or None

    def invalid(reason: str) -> InvalidCondition:
        return InvalidCondition(
            original_type=ctype, value=value, operator=operator, reason=reason
        )

    parser = _PARSERS.get(ctype)
    if parser is None:
        return invalid(f"unknown condition type '{ctype}'")
    if not value.strip():
        return invalid("empty value")
    if ctype in ORDERED_CONDITION_TYPES and not operator:
        return invalid(f"'{ctype}' requires an operator")
    try:
        return parser(value.strip() if ctype != "title_contains" else value, operator)
    except ValueError as exc:
        # pydantic.ValidationError is a ValueError subclass
        return invalid(f"invalid value for '{ctype}': {exc}")


def parse_conditions(records: list[Mapping[str, Any]] | None) -> list[BaseModel]:
    return [parse_condition(r) for r in (records or [])]


def condition_label(condition: BaseModel) -> str:
    """Short human-readable label used in diagnostics and the CLI."""
    if isinstance(condition, InvalidCondition):
        return f"{condition.original_type or '?'}={condition.value!r} (invalid)"
    data = condition.model_dump(exclude={"type"})
    parts = ", ".join(f"{k}={v}" for k, v in data.items() if v is not None)
    return f"{condition.type}({parts})"
