"""Validation checks and the fail-soft validator."""

from .checks import DEFAULT_CHECKS, Check, CheckContext, CheckResult
from .validator import ScenarioValidation, ValidationOutcome, Validator

__all__ = [
    "DEFAULT_CHECKS",
    "Check",
    "CheckContext",
    "CheckResult",
    "ScenarioValidation",
    "ValidationOutcome",
    "Validator",
]
