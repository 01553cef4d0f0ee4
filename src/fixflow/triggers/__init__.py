"""Trigger classification -- which rule triggers a domain event satisfies."""

from fixflow.triggers.classifier import classify, trigger_types

__all__ = ["classify", "trigger_types"]
