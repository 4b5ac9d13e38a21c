"""Report generator for benchmark analyses.

Produces a markdown summary and the full JSON report for one run, written
next to the run's raw results.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

REPORT_PREFIX = "analysis-report-"
SUMMARY_PREFIX = "analysis-summary-"

_CHECK_COLUMNS = [
    ("componentExists", "Component"),
    ("testsWritten", "Tests"),
    ("hasLocalStorage", "Storage"),
    ("hasErrorHandling", "Errors"),
    ("passesLinting", "Lint"),
    ("testsPass", "Tests Pass"),
]


def _mark(passed: bool | None) -> str:
    if passed is None:
        return "-"
    return "✅" if passed else "❌"


class ReportGenerator:
    """Writes analysis reports into a run directory."""

    def __init__(self, output_dir: str | Path) -> None:
        self._output_dir = Path(output_dir)

    def generate(self, report: dict[str, Any], report_id: str) -> tuple[Path, Path]:
        """Generate both markdown and JSON reports.

        Returns:
            Tuple of (markdown_path, json_path).
        """
        self._output_dir.mkdir(parents=True, exist_ok=True)

        md_path = self._output_dir / f"{SUMMARY_PREFIX}{report_id}.md"
        json_path = self._output_dir / f"{REPORT_PREFIX}{report_id}.json"

        md_path.write_text(self._generate_markdown(report), encoding="utf-8")
        json_path.write_text(json.dumps(report, indent=2, default=str), encoding="utf-8")

        return md_path, json_path

    def _generate_markdown(self, report: dict[str, Any]) -> str:
        lines: list[str] = []
        metadata = report.get("metadata", {})
        summary = report.get("summary", {})
        rankings = report.get("rankings", {})
        insights = report.get("insights", {})
        detailed = report.get("detailed", {})

        lines.append("# Benchmark Analysis Summary")
        lines.append(f"\nGenerated: {metadata.get('generated_at', '')}")
        lines.append(f"Run: {metadata.get('run_id', '')}\n")

        lines.append("## Overview\n")
        completion = summary.get("completion_time", {})
        score = summary.get("score", {})
        lines.append(f"- **Scenarios tested**: {summary.get('total_scenarios', 0)}")
        lines.append(
            f"- **Average completion time**: {completion.get('mean', 0.0):.1f}s "
            f"(CI: {completion.get('ci_95_lower', 0.0):.1f}"
            f"-{completion.get('ci_95_upper', 0.0):.1f})"
        )
        lines.append(f"- **Average score**: {score.get('mean', 0.0):.0%}")
        lines.append("")

        lines.append("## Top Performers\n")
        for label, key, fmt in (
            ("Best overall", "top_performer", self._fmt_checks),
            ("Fastest completion", "fastest_completion", self._fmt_time),
            ("Most thorough", "most_thorough", self._fmt_lines),
        ):
            entry = insights.get(key)
            if entry:
                lines.append(f"- **{label}**: {entry['scenario_id']} ({fmt(entry)})")
        lines.append("")

        lines.append("## Results\n")
        header = ["Scenario", "Time (s)", "Score"] + [c[1] for c in _CHECK_COLUMNS] + ["Lines"]
        lines.append("| " + " | ".join(header) + " |")
        lines.append("|" + "|".join("---" for _ in header) + "|")
        for entry in rankings.get("by_passed_checks", []):
            sid = entry["scenario_id"]
            outcomes = {
                o["check_name"]: o["passed"]
                for o in detailed.get(sid, {}).get("validation", {}).get("outcomes", [])
            }
            row = [
                sid,
                f"{entry['duration_seconds']:.0f}",
                f"{entry['passed_checks']}/{entry['total_checks']}",
            ]
            row += [_mark(outcomes.get(name)) for name, _ in _CHECK_COLUMNS]
            row.append(f"{entry['lines_added']:+d}")
            lines.append("| " + " | ".join(row) + " |")
        lines.append("")

        recommendations = insights.get("recommendations", [])
        effect = insights.get("tdd_effect_size")
        if recommendations or effect:
            lines.append("## Insights\n")
            for rec in recommendations:
                lines.append(f"- {rec}")
            if effect:
                lines.append(
                    f"- TDD vs non-TDD effect size: d={effect['cohens_d']:.2f} "
                    f"({effect['interpretation']})"
                )
            lines.append("")

        lines.append("## Detailed Analysis\n")
        for sid, data in detailed.items():
            lines.append(f"### {data.get('name', sid)}\n")
            if data.get("description"):
                lines.append(f"{data['description']}\n")
            perf = data.get("performance", {})
            lines.append(f"- **Completion time**: {perf.get('completion_time', 0.0):.0f}s")
            lines.append(f"- **Exit code**: {perf.get('exit_code')}")
            if data.get("strengths"):
                lines.append("- **Strengths**: " + "; ".join(data["strengths"]))
            if data.get("weaknesses"):
                lines.append("- **Weaknesses**: " + "; ".join(data["weaknesses"]))
            lines.append("")

        return "\n".join(lines)

    @staticmethod
    def _fmt_checks(entry: dict[str, Any]) -> str:
        return f"{entry['passed_checks']}/{entry['total_checks']} checks"

    @staticmethod
    def _fmt_time(entry: dict[str, Any]) -> str:
        return f"{entry['duration_seconds']:.0f}s"

    @staticmethod
    def _fmt_lines(entry: dict[str, Any]) -> str:
        return f"{entry['lines_added']:+d} lines"
