"""Benchmark harness for coding-agent sessions under configuration profiles.

Materializes one sample project per scenario, runs an agent session in
each, validates the results with a fixed battery of checks and writes a
comparison report.
"""

from .config import AgentBackendConfig, BenchmarkPaths, BenchmarkSettings, resolve_settings
from .errors import BenchmarkError, ConfigError, MaterializeError, ProcessError, ValidationError
from .harness import BenchmarkHarness, RunOptions, RunSummary
from .runner import SessionResult, SessionRunner, new_run_id
from .scenarios import Scenario, ScenarioRegistry

__version__ = "0.1.0"

__all__ = [
    "AgentBackendConfig",
    "BenchmarkError",
    "BenchmarkHarness",
    "BenchmarkPaths",
    "BenchmarkSettings",
    "ConfigError",
    "MaterializeError",
    "ProcessError",
    "RunOptions",
    "RunSummary",
    "Scenario",
    "ScenarioRegistry",
    "SessionResult",
    "SessionRunner",
    "ValidationError",
    "new_run_id",
    "resolve_settings",
]
