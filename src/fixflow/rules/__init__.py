"""Rule selection and conflict detection."""

from fixflow.rules.conflicts import RuleConflict, detect_conflicts
from fixflow.rules.selector import MatchedRule, RuleSelector, order_by_priority, select, trigger_matches

__all__ = [
    "MatchedRule",
    "RuleConflict",
    "RuleSelector",
    "detect_conflicts",
    "order_by_priority",
    "select",
    "trigger_matches",
]
