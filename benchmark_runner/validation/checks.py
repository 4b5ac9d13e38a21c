"""The fixed battery of validation checks applied to a session's sample.

Checks are plain functions taking a ``CheckContext`` and returning a
``CheckResult``. They are allowed to raise; the validator records any
exception as a failed outcome and moves on to the next check.
"""

from __future__ import annotations

import logging
import os
import re
import shlex
import subprocess
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..config import BenchmarkSettings

logger = logging.getLogger(__name__)

_SKIPPED_DIRS = {"node_modules"}
_ERROR_HANDLING_RE = re.compile(r"\btry\b|\bcatch\b|\berror\b", re.IGNORECASE)


@dataclass
class CheckContext:
    """Everything a check may look at."""

    scenario_id: str
    project_path: Path
    template_path: Path | None
    settings: BenchmarkSettings = field(default_factory=BenchmarkSettings)


@dataclass
class CheckResult:
    passed: bool
    detail: str = ""
    value: Any = None


@dataclass(frozen=True)
class Check:
    """A named check plus the wording used for it in reports."""

    name: str
    func: Callable[[CheckContext], CheckResult]
    category: str  # "feature", "quality" or "metric"
    strength: str = ""
    weakness: str = ""
    scored: bool = True

    def __call__(self, ctx: CheckContext) -> CheckResult:
        return self.func(ctx)


def iter_source_files(root: Path, extensions: list[str]) -> Iterator[Path]:
    """Yield source files under *root*, skipping hidden dirs and node_modules."""
    suffixes = tuple(extensions)
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(
            d for d in dirnames if not d.startswith(".") and d not in _SKIPPED_DIRS
        )
        for filename in sorted(filenames):
            if filename.endswith(suffixes):
                yield Path(dirpath) / filename


def count_source_lines(root: Path, extensions: list[str]) -> int:
    total = 0
    for path in iter_source_files(root, extensions):
        # Matches the "split on newline" count: a trailing newline adds a line.
        total += path.read_text(encoding="utf-8", errors="replace").count("\n") + 1
    return total


def _run_command(command: str, cwd: Path, timeout: float) -> int:
    result = subprocess.run(
        shlex.split(command),
        cwd=str(cwd),
        capture_output=True,
        timeout=timeout,
    )
    return result.returncode


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------

def component_exists(ctx: CheckContext) -> CheckResult:
    for candidate in ctx.settings.component_paths:
        if (ctx.project_path / candidate).is_file():
            return CheckResult(True, f"found {candidate}")
    return CheckResult(
        False, "none of " + ", ".join(ctx.settings.component_paths) + " exist"
    )


def tests_written(ctx: CheckContext) -> CheckResult:
    tests_dir = ctx.project_path / ctx.settings.tests_dir
    if not tests_dir.is_dir():
        return CheckResult(False, f"no {ctx.settings.tests_dir}/ directory")
    keyword = ctx.settings.test_name_keyword.lower()
    suffixes = tuple(
        f"{kind}{ext}" for kind in (".test", ".spec") for ext in ctx.settings.source_extensions
    )
    for entry in sorted(tests_dir.iterdir()):
        name = entry.name.lower()
        if keyword in name and name.endswith(suffixes):
            return CheckResult(True, f"found {entry.name}")
    return CheckResult(False, f"no test file mentioning '{keyword}'")


def _search_sources(ctx: CheckContext, predicate: Callable[[str], bool]) -> Path | None:
    for path in iter_source_files(ctx.project_path, ctx.settings.source_extensions):
        if predicate(path.read_text(encoding="utf-8", errors="replace")):
            return path
    return None


def has_local_storage(ctx: CheckContext) -> CheckResult:
    hit = _search_sources(ctx, lambda text: "localStorage" in text)
    if hit is None:
        return CheckResult(False, "localStorage not referenced")
    return CheckResult(True, f"localStorage used in {hit.relative_to(ctx.project_path)}")


def has_error_handling(ctx: CheckContext) -> CheckResult:
    hit = _search_sources(ctx, lambda text: _ERROR_HANDLING_RE.search(text) is not None)
    if hit is None:
        return CheckResult(False, "no try/catch or error handling found")
    return CheckResult(True, f"error handling in {hit.relative_to(ctx.project_path)}")


def passes_linting(ctx: CheckContext) -> CheckResult:
    """Pass if any configured lint command exits 0."""
    attempts: list[str] = []
    for command in ctx.settings.lint_commands:
        try:
            code = _run_command(command, ctx.project_path, ctx.settings.check_timeout_seconds)
        except FileNotFoundError:
            attempts.append(f"{command}: not found")
            continue
        except subprocess.TimeoutExpired:
            attempts.append(f"{command}: timed out")
            continue
        if code == 0:
            return CheckResult(True, f"{command} exited 0", value=code)
        attempts.append(f"{command}: exit {code}")
    return CheckResult(False, "; ".join(attempts) or "no lint commands configured")


def tests_pass(ctx: CheckContext) -> CheckResult:
    command = ctx.settings.test_command
    code = _run_command(command, ctx.project_path, ctx.settings.check_timeout_seconds)
    return CheckResult(code == 0, f"{command} exited {code}", value=code)


def lines_added(ctx: CheckContext) -> CheckResult:
    """Line delta of source files versus the template."""
    if ctx.template_path is None or not ctx.template_path.is_dir():
        raise FileNotFoundError(f"template not available: {ctx.template_path}")
    extensions = ctx.settings.source_extensions
    delta = count_source_lines(ctx.project_path, extensions) - count_source_lines(
        ctx.template_path, extensions
    )
    return CheckResult(delta > 0, f"{delta:+d} lines vs template", value=delta)


DEFAULT_CHECKS: list[Check] = [
    Check(
        "componentExists", component_exists, "feature",
        strength="Successfully implemented the feature component",
        weakness="Failed to implement the feature component",
    ),
    Check(
        "testsWritten", tests_written, "feature",
        strength="Wrote tests for the feature",
        weakness="No tests written",
    ),
    Check(
        "hasLocalStorage", has_local_storage, "feature",
        strength="Implemented local storage persistence",
        weakness="Missing local storage implementation",
    ),
    Check(
        "hasErrorHandling", has_error_handling, "feature",
        strength="Added error handling",
        weakness="Lacks error handling",
    ),
    Check(
        "passesLinting", passes_linting, "quality",
        strength="Code passes linting standards",
        weakness="Code fails linting standards",
    ),
    Check(
        "testsPass", tests_pass, "quality",
        strength="All tests pass",
        weakness="Tests fail or missing",
    ),
    Check(
        "linesAdded", lines_added, "metric",
        strength="Added code on top of the template",
        weakness="No code added on top of the template",
        scored=False,
    ),
]
