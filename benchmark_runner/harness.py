"""Benchmark harness: the setup -> run -> save -> analyze -> cleanup pipeline.

Loads the scenario registry and resolves settings from every layer, then
drives the materializer, session runner and analyzer for either all
scenarios or a single one.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from . import materializer
from .analysis.analyzer import BenchmarkAnalyzer, find_run_dirs, load_latest_results, load_run
from .backends import AgentBackend, create_backend
from .config import (
    BenchmarkPaths,
    BenchmarkSettings,
    env_overrides,
    load_local_overrides,
    resolve_settings,
)
from .errors import ConfigError
from .reports.generator import ReportGenerator
from .runner import SessionResult, SessionRunner, new_run_id
from .scenarios.registry import Scenario, ScenarioRegistry, load_registry
from .validation.validator import Validator

logger = logging.getLogger(__name__)


@dataclass
class RunOptions:
    """Per-invocation switches for a benchmark run."""

    skip_setup: bool = False
    skip_analysis: bool = False
    cleanup: bool = False
    scenario_id: str | None = None
    prompt_file: Path | None = None


@dataclass
class RunSummary:
    """What a pipeline run produced."""

    run_id: str
    results: list[SessionResult] = field(default_factory=list)
    results_file: Path | None = None
    report: dict[str, Any] | None = None
    report_paths: tuple[Path, Path] | None = None

    @property
    def completed(self) -> int:
        return sum(1 for r in self.results if r.completed)


@dataclass
class AnalysisOutput:
    report: dict[str, Any]
    markdown_path: Path
    json_path: Path


class BenchmarkHarness:
    """Orchestrates benchmark runs.

    Flow: setup samples -> run sessions -> save results -> analyze -> cleanup.
    """

    def __init__(
        self,
        paths: BenchmarkPaths,
        registry: ScenarioRegistry,
        settings: BenchmarkSettings,
        backend: AgentBackend | None = None,
        validator: Validator | None = None,
    ) -> None:
        self._paths = paths
        self._registry = registry
        self._settings = settings
        self._backend = backend
        self._validator = validator or Validator(settings=settings)

    @classmethod
    def from_paths(
        cls,
        paths: BenchmarkPaths,
        cli_overrides: dict[str, Any] | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> BenchmarkHarness:
        """Load the registry and resolve settings from all layers."""
        document = load_registry(paths.registry)
        settings = resolve_settings(
            document.settings,
            load_local_overrides(paths.local_overrides),
            env_overrides(environ),
            cli_overrides or {},
            environ=environ,
        )
        return cls(paths, ScenarioRegistry(document.scenarios), settings)

    @property
    def paths(self) -> BenchmarkPaths:
        return self._paths

    @property
    def settings(self) -> BenchmarkSettings:
        return self._settings

    @property
    def registry(self) -> ScenarioRegistry:
        return self._registry

    @property
    def backend(self) -> AgentBackend:
        if self._backend is None:
            self._backend = create_backend(
                self._settings.agent, self._settings.termination_grace_seconds
            )
        return self._backend

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------

    def _select(self, scenario_id: str | None) -> list[Scenario]:
        if scenario_id:
            return [self._registry.require(scenario_id)]
        return self._registry.list_scenarios()

    def setup(self, scenario_id: str | None = None) -> list[materializer.SampleDirectory]:
        """Materialize samples; a full setup starts from an empty samples root."""
        scenarios = self._select(scenario_id)
        if scenario_id is None and materializer.clean(self._paths.samples_dir):
            logger.info("Cleared existing samples")
        samples = materializer.materialize_all(
            scenarios,
            self._paths.template_dir,
            self._paths.samples_dir,
            self._paths.configs_dir,
            self._settings,
        )
        logger.info("Created %d sample directories", len(samples))
        return samples

    def clean(self) -> bool:
        removed = materializer.clean(self._paths.samples_dir)
        if removed:
            logger.info("Removed %s", self._paths.samples_dir)
        return removed

    def load_prompt(self, prompt_file: Path | None = None) -> str:
        """Read the custom prompt file if given, else the default prompt."""
        if prompt_file is not None:
            if not prompt_file.is_file():
                raise ConfigError(f"Prompt file not found: {prompt_file}")
            return prompt_file.read_text(encoding="utf-8", errors="replace")
        if not self._paths.prompt.is_file():
            logger.warning("Default prompt %s not found; using an empty prompt", self._paths.prompt)
            return ""
        return self._paths.prompt.read_text(encoding="utf-8", errors="replace")

    async def run(self, options: RunOptions | None = None) -> RunSummary:
        """Execute the full pipeline for all scenarios or ``options.scenario_id``."""
        options = options or RunOptions()
        scenarios = self._select(options.scenario_id)
        run_id = new_run_id()
        logger.info("Starting benchmark run %s (%d scenarios)", run_id, len(scenarios))

        default_prompt = self.load_prompt()
        # An explicit prompt file applies to every scenario, replacing per-scenario prompts.
        prompt = self.load_prompt(options.prompt_file) if options.prompt_file else None

        if not options.skip_setup:
            self.setup(options.scenario_id)

        if not await self.backend.health_check():
            logger.warning(
                "Agent executable for backend %s not found; sessions will fail to start",
                self.backend.name,
            )

        runner = SessionRunner(
            settings=self._settings,
            backend=self.backend,
            results_dir=self._paths.results_dir,
            default_prompt=default_prompt,
            run_id=run_id,
        )
        runner.initialize()
        results = await runner.run_all(scenarios, self._paths.samples_dir, prompt)
        results_file = runner.save_results(scenarios)
        summary = RunSummary(run_id=run_id, results=results, results_file=results_file)

        if not options.skip_analysis and results:
            analysis = self.analyze(run_dir=runner.run_dir)
            summary.report = analysis.report
            summary.report_paths = (analysis.markdown_path, analysis.json_path)

        if options.cleanup or self._settings.cleanup_after_run:
            self.clean()

        logger.info(
            "Benchmark run %s finished: %d/%d sessions completed",
            run_id, summary.completed, len(scenarios),
        )
        return summary

    async def run_single(self, scenario_id: str, options: RunOptions | None = None) -> RunSummary:
        options = options or RunOptions()
        options.scenario_id = scenario_id
        return await self.run(options)

    def analyze(self, run_dir: Path | None = None) -> AnalysisOutput:
        """Validate and report on *run_dir*, or the newest run.

        Raises:
            FileNotFoundError: when there are no results to analyze.
        """
        run = load_run(run_dir) if run_dir else load_latest_results(self._paths.results_dir)
        analyzer = BenchmarkAnalyzer(self._validator, self._paths.template_dir)
        report = analyzer.analyze(run)
        md_path, json_path = ReportGenerator(run.run_dir).generate(report, new_run_id())
        logger.info("Analysis written to %s", md_path)
        return AnalysisOutput(report=report, markdown_path=md_path, json_path=json_path)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def list_scenarios(self) -> list[Scenario]:
        return self._registry.list_scenarios()

    def status(self) -> dict[str, Any]:
        """Samples present, scenarios without a sample, and recorded runs."""
        samples = {s.scenario_id for s in materializer.list_samples(self._paths.samples_dir)}
        runs = find_run_dirs(self._paths.results_dir)
        return {
            "scenarios": len(self._registry),
            "samples": sorted(samples),
            "missing_samples": [i for i in self._registry.ids() if i not in samples],
            "runs": [r.name for r in runs],
            "latest_run": runs[0].name if runs else None,
        }
