"""Fail-soft evaluation of the check battery against one sample."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..config import BenchmarkSettings
from ..errors import ValidationError
from .checks import DEFAULT_CHECKS, Check, CheckContext

logger = logging.getLogger(__name__)


@dataclass
class ValidationOutcome:
    """Result of one check for one scenario."""

    scenario_id: str
    check_name: str
    passed: bool
    detail: str = ""
    value: Any = None
    errored: bool = False  # the check raised instead of returning

    def to_dict(self) -> dict[str, Any]:
        return {
            "scenario_id": self.scenario_id,
            "check_name": self.check_name,
            "passed": self.passed,
            "detail": self.detail,
            "value": self.value,
            "errored": self.errored,
        }


@dataclass
class ScenarioValidation:
    """All outcomes for one scenario, in check order."""

    scenario_id: str
    outcomes: list[ValidationOutcome] = field(default_factory=list)
    checks: list[Check] = field(default_factory=list, repr=False)

    def outcome(self, check_name: str) -> ValidationOutcome | None:
        return next((o for o in self.outcomes if o.check_name == check_name), None)

    def _scored(self, category: str | None = None) -> list[ValidationOutcome]:
        scored = {c.name for c in self.checks if c.scored}
        if category is not None:
            scored &= {c.name for c in self.checks if c.category == category}
        return [o for o in self.outcomes if o.check_name in scored]

    @property
    def passed_checks(self) -> int:
        return sum(1 for o in self._scored() if o.passed)

    @property
    def total_checks(self) -> int:
        return len(self._scored())

    @property
    def score(self) -> float:
        total = self.total_checks
        return self.passed_checks / total if total else 0.0

    @property
    def features_implemented(self) -> int:
        return sum(1 for o in self._scored("feature") if o.passed)

    @property
    def code_quality(self) -> float:
        quality = self._scored("quality")
        return sum(1 for o in quality if o.passed) / len(quality) if quality else 0.0

    @property
    def lines_added(self) -> int:
        outcome = self.outcome("linesAdded")
        if outcome is None or not isinstance(outcome.value, int):
            return 0
        return outcome.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "scenario_id": self.scenario_id,
            "passed_checks": self.passed_checks,
            "total_checks": self.total_checks,
            "score": round(self.score, 4),
            "features_implemented": self.features_implemented,
            "code_quality": round(self.code_quality, 4),
            "lines_added": self.lines_added,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


class Validator:
    """Runs an ordered list of checks; one failing check never stops the rest."""

    def __init__(
        self,
        checks: list[Check] | None = None,
        settings: BenchmarkSettings | None = None,
    ) -> None:
        self._checks = list(DEFAULT_CHECKS if checks is None else checks)
        self._settings = settings or BenchmarkSettings()

    @property
    def checks(self) -> list[Check]:
        return list(self._checks)

    def evaluate(
        self,
        scenario_id: str,
        project_path: str | Path,
        template_path: str | Path | None = None,
    ) -> ScenarioValidation:
        ctx = CheckContext(
            scenario_id=scenario_id,
            project_path=Path(project_path),
            template_path=Path(template_path) if template_path else None,
            settings=self._settings,
        )
        validation = ScenarioValidation(scenario_id=scenario_id, checks=self._checks)
        for check in self._checks:
            try:
                outcome = self._run_check(check, ctx)
            except ValidationError as e:
                logger.warning("Check %s failed for %s: %s", check.name, scenario_id, e)
                outcome = ValidationOutcome(
                    scenario_id=scenario_id,
                    check_name=check.name,
                    passed=False,
                    detail=f"{type(e.cause).__name__}: {e.cause}",
                    errored=True,
                )
            validation.outcomes.append(outcome)
        logger.info(
            "Validated %s: %d/%d checks passed",
            scenario_id, validation.passed_checks, validation.total_checks,
        )
        return validation

    def _run_check(self, check: Check, ctx: CheckContext) -> ValidationOutcome:
        try:
            result = check(ctx)
        except Exception as e:
            raise ValidationError(check.name, e) from e
        return ValidationOutcome(
            scenario_id=ctx.scenario_id,
            check_name=check.name,
            passed=bool(result.passed),
            detail=result.detail,
            value=result.value,
        )
