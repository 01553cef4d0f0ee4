"""Action handlers and the Action Executor."""

from fixflow.actions.executor import ActionExecutor, classify_error
from fixflow.actions.handlers import (
    ActionContext,
    ActionReport,
    HandlerRegistry,
    default_registry,
)

__all__ = [
    "ActionContext",
    "ActionExecutor",
    "ActionReport",
    "HandlerRegistry",
    "classify_error",
    "default_registry",
]
