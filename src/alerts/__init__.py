"""Alert rules evaluation and alert lifecycle management."""

from src.alerts.evaluator import candidate_rules, compare, evaluate, parse_rule, parse_sample
from src.alerts.exceptions import AlertError, AlertNotFoundError, InvalidAlertTransitionError
from src.alerts.lifecycle import AlertEventCallback, AlertManager, describe_violation

__all__ = [
    "AlertError",
    "AlertEventCallback",
    "AlertManager",
    "AlertNotFoundError",
    "InvalidAlertTransitionError",
    "candidate_rules",
    "compare",
    "describe_violation",
    "evaluate",
    "parse_rule",
    "parse_sample",
]
