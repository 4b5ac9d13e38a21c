"""Session runner: one external agent process per scenario.

Sessions run sequentially (with an optional pause between them) or
concurrently, bounded by ``max_parallel_sessions``. A scenario id never has
two sessions in flight at once. Results are appended to an in-memory list
by the control loop only, and persisted with ``save_results``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from . import git
from .backends.base import EXIT_SPAWN_FAILED, AgentBackend
from .config import BenchmarkSettings
from .errors import BenchmarkError, ConfigError, ProcessError
from .scenarios.registry import Scenario

logger = logging.getLogger(__name__)

RESULTS_PREFIX = "benchmark-results-"
RUN_DIR_PREFIX = "run-"


def new_run_id() -> str:
    """Sortable, unique run id: UTC timestamp with microseconds plus a suffix."""
    stamp = datetime.now(UTC).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    return f"{stamp}-{uuid.uuid4().hex[:6]}"


@dataclass
class SessionResult:
    """Outcome of one agent session against one scenario's sample."""

    scenario_id: str
    project_path: str
    start_time: float
    end_time: float
    exit_code: int | str | None
    log_output: str = ""
    error_output: str = ""
    timed_out: bool = False
    completed: bool = False  # a completion marker appeared in stdout
    error: str | None = None
    log_file: str | None = None
    change_log_file: str | None = None

    @property
    def duration_seconds(self) -> float:
        return max(self.end_time - self.start_time, 0.0)

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["duration_seconds"] = round(self.duration_seconds, 3)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionResult:
        return cls(
            scenario_id=data["scenario_id"],
            project_path=data["project_path"],
            start_time=float(data.get("start_time", 0.0)),
            end_time=float(data.get("end_time", 0.0)),
            exit_code=data.get("exit_code"),
            log_output=data.get("log_output", ""),
            error_output=data.get("error_output", ""),
            timed_out=data.get("timed_out", False),
            completed=data.get("completed", False),
            error=data.get("error"),
            log_file=data.get("log_file"),
            change_log_file=data.get("change_log_file"),
        )


def _git_snapshot(project_path: Path, label: str) -> str:
    status = git.status_porcelain(project_path)
    stamp = datetime.now(UTC).isoformat()
    return f"\n=== {label} ===\nTimestamp: {stamp}\nGit Status:\n{status}\n"


def _git_changes(project_path: Path) -> str:
    diff = git.diff_against_head(project_path)
    files = git.changed_files(project_path)
    parts = ["\n=== CHANGES MADE BY AGENT ===\n"]
    parts.append(diff if diff.strip() else "No changes detected\n")
    parts.append("\n=== MODIFIED FILES ===\n")
    parts.append("\n".join(files) + "\n" if files else "No files modified\n")
    return "".join(parts)


class SessionRunner:
    """Starts agent sessions and collects their results."""

    def __init__(
        self,
        settings: BenchmarkSettings,
        backend: AgentBackend,
        results_dir: str | Path,
        default_prompt: str = "",
        run_id: str | None = None,
    ) -> None:
        self._settings = settings
        self._backend = backend
        self._results_dir = Path(results_dir)
        self._default_prompt = default_prompt
        self._run_id = run_id or new_run_id()
        self._results: list[SessionResult] = []
        self._scenario_locks: dict[str, asyncio.Lock] = {}

    @property
    def run_id(self) -> str:
        return self._run_id

    @property
    def run_dir(self) -> Path:
        return self._results_dir / f"{RUN_DIR_PREFIX}{self._run_id}"

    @property
    def results(self) -> list[SessionResult]:
        return list(self._results)

    def initialize(self) -> Path:
        self.run_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Session runner initialized, run directory: %s", self.run_dir)
        return self.run_dir

    def resolve_prompt(self, scenario: Scenario, project_path: Path) -> str:
        """Pick the scenario's own prompt when it ships one, else the default."""
        candidates: list[Path] = []
        if scenario.prompt_file:
            candidates.append(project_path / scenario.prompt_file)
        if scenario.config_folder:
            candidates.append(project_path / "prompt.md")
        for candidate in candidates:
            if candidate.is_file():
                logger.info("Using custom prompt for %s: %s", scenario.id, candidate.name)
                return candidate.read_text(encoding="utf-8", errors="replace")
        return self._default_prompt

    async def run(
        self,
        scenario: Scenario,
        prompt: str,
        timeout: float,
        project_path: str | Path,
    ) -> SessionResult:
        """Run one session for *scenario* in *project_path*.

        Spawn failures are recorded in the result rather than raised.
        """
        lock = self._scenario_locks.setdefault(scenario.id, asyncio.Lock())
        async with lock:
            result = await self._run_session(scenario, prompt, timeout, Path(project_path))
        self._results.append(result)
        return result

    async def _run_session(
        self,
        scenario: Scenario,
        prompt: str,
        timeout: float,
        project_path: Path,
    ) -> SessionResult:
        self.run_dir.mkdir(parents=True, exist_ok=True)
        log_file = self.run_dir / f"{scenario.id}-session.log"
        change_log_file = self.run_dir / f"{scenario.id}-changes.log"
        track_changes = git.is_git_repo(project_path)

        change_log: list[str] = []
        if track_changes:
            change_log.append(
                await asyncio.to_thread(_git_snapshot, project_path, "BEFORE SESSION")
            )
        change_log.append(f"\n=== SCENARIO: {scenario.id} ===\n")

        logger.info("Starting session for %s", scenario.id)
        start_time = time.time()
        try:
            outcome = await self._backend.run_session(
                prompt=prompt,
                working_dir=project_path,
                timeout_seconds=timeout,
                log_path=log_file,
            )
        except ProcessError as e:
            logger.error("Session for %s could not start: %s", scenario.id, e)
            return SessionResult(
                scenario_id=scenario.id,
                project_path=str(project_path),
                start_time=start_time,
                end_time=time.time(),
                exit_code=EXIT_SPAWN_FAILED,
                error=str(e),
                log_file=str(log_file) if log_file.exists() else None,
            )
        end_time = time.time()

        if track_changes:
            change_log.append(
                await asyncio.to_thread(_git_snapshot, project_path, "AFTER SESSION")
            )
            change_log.append(await asyncio.to_thread(_git_changes, project_path))
        change_log_file.write_text("".join(change_log), encoding="utf-8")

        completed = any(m in outcome.stdout for m in self._settings.completion_markers)
        error = None
        if outcome.timed_out:
            error = f"Session timeout after {timeout:.0f}s"
        elif outcome.exit_code != 0:
            error = outcome.stderr.strip()[-2000:] or f"exit code {outcome.exit_code}"

        result = SessionResult(
            scenario_id=scenario.id,
            project_path=str(project_path),
            start_time=start_time,
            end_time=end_time,
            exit_code=outcome.exit_code,
            log_output=outcome.stdout,
            error_output=outcome.stderr,
            timed_out=outcome.timed_out,
            completed=completed,
            error=error,
            log_file=str(log_file),
            change_log_file=str(change_log_file),
        )
        logger.info(
            "Session %s finished in %.0fs (exit %s)",
            scenario.id, result.duration_seconds, result.exit_code,
        )
        return result

    async def run_scenario(
        self,
        scenario: Scenario,
        samples_dir: str | Path,
        prompt: str | None = None,
    ) -> SessionResult:
        """Run *scenario* against its materialized sample under *samples_dir*."""
        project_path = Path(samples_dir) / scenario.id
        if not project_path.is_dir():
            raise ConfigError(
                f"Sample directory for {scenario.id} not found. Run setup first."
            )
        session_prompt = prompt if prompt is not None else self.resolve_prompt(
            scenario, project_path
        )
        return await self.run(
            scenario, session_prompt, self._settings.timeout_seconds, project_path
        )

    async def run_all(
        self,
        scenarios: list[Scenario],
        samples_dir: str | Path,
        prompt: str | None = None,
    ) -> list[SessionResult]:
        """Run every scenario; one scenario's failure never aborts the others.

        Returns results in registry order.
        """
        if self._settings.parallel_execution:
            results = await self._run_parallel(scenarios, samples_dir, prompt)
        else:
            results = await self._run_sequential(scenarios, samples_dir, prompt)
        order = {s.id: i for i, s in enumerate(scenarios)}
        return sorted(results, key=lambda r: order.get(r.scenario_id, len(order)))

    async def _run_guarded(
        self,
        scenario: Scenario,
        samples_dir: str | Path,
        prompt: str | None,
    ) -> SessionResult | None:
        """Run one scenario of a batch; its failure never reaches the others.

        Configuration errors (such as a missing sample) skip the scenario.
        Anything else is recorded as a failed SessionResult.
        """
        try:
            return await self.run_scenario(scenario, samples_dir, prompt)
        except BenchmarkError as e:
            logger.warning("Skipping %s due to error: %s", scenario.id, e)
            return None
        except Exception as e:
            logger.exception("Session for %s failed", scenario.id)
            now = time.time()
            result = SessionResult(
                scenario_id=scenario.id,
                project_path=str(Path(samples_dir) / scenario.id),
                start_time=now,
                end_time=now,
                exit_code=None,
                error=f"{type(e).__name__}: {e}",
            )
            self._results.append(result)
            return result

    async def _run_sequential(
        self,
        scenarios: list[Scenario],
        samples_dir: str | Path,
        prompt: str | None,
    ) -> list[SessionResult]:
        results: list[SessionResult] = []
        for index, scenario in enumerate(scenarios):
            result = await self._run_guarded(scenario, samples_dir, prompt)
            if result is None:
                continue
            results.append(result)
            delay = self._settings.session_delay_seconds
            if delay > 0 and index < len(scenarios) - 1:
                logger.info("Waiting %.0f seconds before next session", delay)
                await asyncio.sleep(delay)
        return results

    async def _run_parallel(
        self,
        scenarios: list[Scenario],
        samples_dir: str | Path,
        prompt: str | None,
    ) -> list[SessionResult]:
        semaphore = asyncio.Semaphore(self._settings.max_parallel_sessions)

        async def _bounded(scenario: Scenario) -> SessionResult | None:
            async with semaphore:
                return await self._run_guarded(scenario, samples_dir, prompt)

        gathered = await asyncio.gather(*(_bounded(s) for s in scenarios))
        skipped = sum(1 for r in gathered if r is None)
        if skipped:
            logger.warning("%d scenarios skipped", skipped)
        return [r for r in gathered if r is not None]

    def save_results(
        self,
        scenarios: list[Scenario],
        settings_summary: dict[str, Any] | None = None,
    ) -> Path:
        """Persist raw session results for this run."""
        self.run_dir.mkdir(parents=True, exist_ok=True)
        path = self.run_dir / f"{RESULTS_PREFIX}{self._run_id}.json"
        payload = {
            "run_id": self._run_id,
            "timestamp": datetime.now(UTC).isoformat(),
            "total_scenarios": len(scenarios),
            "completed_scenarios": len(self._results),
            "results": [r.to_dict() for r in self._results],
            "scenarios": [s.to_dict() for s in scenarios],
            "settings": settings_summary or self._settings.to_dict(),
        }
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        logger.info("Results saved to %s", path)
        return path
