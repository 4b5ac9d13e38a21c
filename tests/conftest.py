"""Pytest fixtures for benchmark-runner tests."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from benchmark_runner.backends.command import CommandBackend
from benchmark_runner.config import ENV_SETTINGS, BenchmarkPaths, BenchmarkSettings
from benchmark_runner.scenarios.registry import Scenario

EMPTY_CONFIG = "# Intentionally minimal configuration\n"
TDD_CONFIG = "# TDD\n\nWrite a failing test first.\n"

REGISTRY_YAML = """\
scenarios:
  - id: minimal
    name: Minimal
    config_document: CLAUDE_EMPTY.md
    description: Baseline
  - id: tdd-strict
    name: TDD Strict
    config_document: CLAUDE_TDD.md
    description: Tests first
settings:
  session_delay_seconds: 0
  init_git: false
  timeout_minutes: 1
"""

# Prints the prompt it was given, then a completion marker.
ECHO_AGENT = (
    "import sys; data = sys.stdin.read(); "
    "print('PROMPT:' + data); print('Task completed')"
)


# =============================================================================
# Environment Setup
# =============================================================================


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep BENCHMARK_* variables from the outer environment out of tests."""
    for var in ENV_SETTINGS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.delenv("BENCHMARK_AGENT_BIN", raising=False)


@pytest.fixture
def fast_settings() -> BenchmarkSettings:
    return BenchmarkSettings(session_delay_seconds=0, init_git=False, termination_grace_seconds=2)


# =============================================================================
# Workspace
# =============================================================================


def write_template(template: Path) -> None:
    (template / "src").mkdir(parents=True)
    (template / "tests").mkdir()
    (template / "src" / "App.js").write_text(
        "function App() {\n  return null;\n}\n\nexport default App;\n"
    )
    (template / "tests" / "app.test.js").write_text("test('renders', () => {});\n")
    (template / "package.json").write_text('{"name": "fixture-app"}\n')


@pytest.fixture
def workspace(tmp_path) -> BenchmarkPaths:
    """A complete benchmark workspace with two scenarios."""
    root = tmp_path / "bench"
    (root / "config").mkdir(parents=True)
    (root / "config" / "scenarios.yaml").write_text(REGISTRY_YAML)
    (root / "config" / "prompt.md").write_text("Build a todo list.\n")
    configs = root / "claude-configs"
    configs.mkdir()
    (configs / "CLAUDE_EMPTY.md").write_text(EMPTY_CONFIG)
    (configs / "CLAUDE_TDD.md").write_text(TDD_CONFIG)
    write_template(root / "templates" / "react-app")
    return BenchmarkPaths.from_root(root)


@pytest.fixture
def scenarios() -> list[Scenario]:
    return [
        Scenario(id="minimal", name="Minimal", config_document="CLAUDE_EMPTY.md"),
        Scenario(id="tdd-strict", name="TDD Strict", config_document="CLAUDE_TDD.md"),
    ]


# =============================================================================
# Backends
# =============================================================================


def python_backend(code: str, grace: float = 2.0) -> CommandBackend:
    """A CommandBackend running an inline Python program."""
    return CommandBackend(sys.executable, ["-c", code], termination_grace_seconds=grace)


@pytest.fixture
def echo_backend() -> CommandBackend:
    return python_backend(ECHO_AGENT)


@pytest.fixture
def make_python_backend():
    """Factory for backends running inline Python code."""
    return python_backend
