"""Benchmark analyzer: validates each session's sample and compares scenarios.

Flow: load latest results -> validate each scenario -> compare -> report.
Validation for a scenario only ever runs from a recorded SessionResult.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..metrics import AggregatedMetrics, compute_effect_size, interpret_effect_size
from ..runner import RESULTS_PREFIX, RUN_DIR_PREFIX, SessionResult
from ..validation.validator import ScenarioValidation, Validator

logger = logging.getLogger(__name__)

ANALYZER_NAME = "benchmark-runner analyzer v1"


@dataclass
class LoadedRun:
    """A persisted benchmark run read back from disk."""

    run_id: str
    run_dir: Path
    results_file: Path
    timestamp: str
    results: list[SessionResult]
    scenarios: dict[str, dict[str, Any]] = field(default_factory=dict)

    def result_for(self, scenario_id: str) -> SessionResult | None:
        return next((r for r in self.results if r.scenario_id == scenario_id), None)


def find_run_dirs(results_dir: str | Path) -> list[Path]:
    """Run directories under *results_dir*, newest first."""
    results_dir = Path(results_dir)
    if not results_dir.is_dir():
        return []
    runs = [
        p for p in results_dir.iterdir()
        if p.is_dir() and p.name.startswith(RUN_DIR_PREFIX)
    ]
    return sorted(runs, key=lambda p: p.name, reverse=True)


def load_run(run_dir: str | Path) -> LoadedRun:
    run_dir = Path(run_dir)
    candidates = sorted(run_dir.glob(f"{RESULTS_PREFIX}*.json"))
    if not candidates:
        raise FileNotFoundError(
            f"No benchmark results found in {run_dir.name}. Run the benchmark first."
        )
    results_file = candidates[-1]
    with open(results_file, encoding="utf-8") as fh:
        payload = json.load(fh)
    return LoadedRun(
        run_id=payload.get("run_id", run_dir.name[len(RUN_DIR_PREFIX):]),
        run_dir=run_dir,
        results_file=results_file,
        timestamp=payload.get("timestamp", ""),
        results=[SessionResult.from_dict(r) for r in payload.get("results", [])],
        scenarios={s["id"]: s for s in payload.get("scenarios", [])},
    )


def load_latest_results(results_dir: str | Path) -> LoadedRun:
    """Load the newest run under *results_dir*.

    Raises:
        FileNotFoundError: when no run (or no results file) exists.
    """
    runs = find_run_dirs(results_dir)
    if not runs:
        raise FileNotFoundError(
            "No benchmark run directories found. Run the benchmark first."
        )
    loaded = load_run(runs[0])
    logger.info("Analyzing results from: %s", runs[0].name)
    return loaded


def is_tdd_scenario(scenario_id: str) -> bool:
    """``tdd-strict`` counts as TDD; ``no-tdd`` does not."""
    sid = scenario_id.lower()
    return "tdd" in sid and "no-tdd" not in sid and "non-tdd" not in sid


def _ranking_entry(
    result: SessionResult | None, validation: ScenarioValidation
) -> dict[str, Any]:
    return {
        "scenario_id": validation.scenario_id,
        "duration_seconds": round(result.duration_seconds, 3) if result else 0.0,
        "passed_checks": validation.passed_checks,
        "total_checks": validation.total_checks,
        "score": round(validation.score, 4),
        "lines_added": validation.lines_added,
        "features_implemented": validation.features_implemented,
    }


class BenchmarkAnalyzer:
    """Validates a loaded run and produces the comparison report."""

    def __init__(
        self,
        validator: Validator,
        template_path: str | Path | None = None,
    ) -> None:
        self._validator = validator
        self._template_path = Path(template_path) if template_path else None

    def run_validation(self, run: LoadedRun) -> dict[str, ScenarioValidation]:
        """Evaluate the check battery for every recorded session."""
        validations: dict[str, ScenarioValidation] = {}
        for result in run.results:
            logger.info("Validating %s", result.scenario_id)
            validations[result.scenario_id] = self._validator.evaluate(
                scenario_id=result.scenario_id,
                project_path=result.project_path,
                template_path=self._template_path,
            )
        return validations

    def generate_comparison(
        self,
        run: LoadedRun,
        validations: dict[str, ScenarioValidation],
    ) -> dict[str, Any]:
        """Cross-scenario comparison: summary, rankings, per-scenario detail."""
        entries = [
            _ranking_entry(run.result_for(sid), v) for sid, v in validations.items()
        ]

        summary = {
            "total_scenarios": len(validations),
            "completion_time": AggregatedMetrics.from_values(
                [r.duration_seconds for r in run.results]
            ).to_dict(),
            "score": AggregatedMetrics.from_values([e["score"] for e in entries]).to_dict(),
            "lines_added": AggregatedMetrics.from_values(
                [float(e["lines_added"]) for e in entries]
            ).to_dict(),
        }

        # Ties keep registry order (sorted is stable).
        rankings = {
            "by_passed_checks": sorted(entries, key=lambda e: -e["passed_checks"]),
            "by_completion_time": sorted(entries, key=lambda e: e["duration_seconds"]),
            "by_lines_added": sorted(entries, key=lambda e: -e["lines_added"]),
            "by_feature_completion": sorted(
                entries, key=lambda e: -e["features_implemented"]
            ),
        }

        detailed: dict[str, Any] = {}
        checks = {c.name: c for c in self._validator.checks}
        for sid, validation in validations.items():
            scenario = run.scenarios.get(sid, {})
            result = run.result_for(sid)
            strengths, weaknesses = [], []
            for outcome in validation.outcomes:
                check = checks.get(outcome.check_name)
                if check is None:
                    continue
                if outcome.passed and check.strength:
                    strengths.append(check.strength)
                elif not outcome.passed and check.weakness:
                    weaknesses.append(check.weakness)
            detailed[sid] = {
                "name": scenario.get("name", sid),
                "description": scenario.get("description", ""),
                "performance": {
                    "completion_time": round(result.duration_seconds, 3) if result else 0.0,
                    "completed": result.completed if result else False,
                    "exit_code": result.exit_code if result else None,
                    "timed_out": result.timed_out if result else False,
                },
                "validation": validation.to_dict(),
                "strengths": strengths,
                "weaknesses": weaknesses,
            }

        return {"summary": summary, "rankings": rankings, "detailed": detailed}

    def generate_insights(self, comparison: dict[str, Any]) -> dict[str, Any]:
        rankings = comparison["rankings"]
        insights: dict[str, Any] = {
            "top_performer": (rankings["by_passed_checks"] or [None])[0],
            "fastest_completion": (rankings["by_completion_time"] or [None])[0],
            "most_thorough": (rankings["by_lines_added"] or [None])[0],
            "recommendations": [],
        }
        entries = rankings["by_passed_checks"]

        tdd = [e["score"] for e in entries if is_tdd_scenario(e["scenario_id"])]
        non_tdd = [e["score"] for e in entries if not is_tdd_scenario(e["scenario_id"])]
        if tdd and non_tdd:
            tdd_mean = sum(tdd) / len(tdd)
            non_tdd_mean = sum(non_tdd) / len(non_tdd)
            d = compute_effect_size(tdd, non_tdd)
            insights["tdd_effect_size"] = {
                "cohens_d": round(d, 4),
                "interpretation": interpret_effect_size(d),
            }
            if tdd_mean > non_tdd_mean:
                insights["recommendations"].append("TDD approach shows better overall results")
            else:
                insights["recommendations"].append(
                    "Non-TDD approaches perform comparably or better"
                )

        avg_time = comparison["summary"]["completion_time"]["mean"]
        fast = [e["score"] for e in entries if e["duration_seconds"] < avg_time]
        slow = [e["score"] for e in entries if e["duration_seconds"] >= avg_time]
        if fast and slow:
            if sum(slow) / len(slow) > sum(fast) / len(fast):
                insights["recommendations"].append(
                    "Longer completion times correlate with higher quality output"
                )
            else:
                insights["recommendations"].append(
                    "Faster completion does not compromise output quality"
                )
        return insights

    def generate_report(
        self,
        run: LoadedRun,
        comparison: dict[str, Any],
        validations: dict[str, ScenarioValidation],
    ) -> dict[str, Any]:
        return {
            "metadata": {
                "generated_at": datetime.now(UTC).isoformat(),
                "run_id": run.run_id,
                "benchmark_results": run.timestamp,
                "analyzer": ANALYZER_NAME,
            },
            "summary": comparison["summary"],
            "rankings": comparison["rankings"],
            "detailed": comparison["detailed"],
            "insights": self.generate_insights(comparison),
            "validation": {
                sid: [o.to_dict() for o in v.outcomes] for sid, v in validations.items()
            },
        }

    def analyze(self, run: LoadedRun) -> dict[str, Any]:
        """Validate, compare and build the report for *run*."""
        validations = self.run_validation(run)
        comparison = self.generate_comparison(run, validations)
        return self.generate_report(run, comparison, validations)
