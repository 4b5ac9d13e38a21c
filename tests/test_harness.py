"""Tests for the benchmark harness and its command-line interface."""

import json
import shlex
import sys

import pytest
import yaml

from benchmark_runner.__main__ import main
from benchmark_runner.errors import ConfigError
from benchmark_runner.harness import BenchmarkHarness, RunOptions

PY = shlex.quote(sys.executable)

# Writes the feature component, then reports completion.
FAKE_AGENT = (
    "import pathlib, sys; prompt = sys.stdin.read(); "
    "pathlib.Path('src/TodoList.js').write_text("
    "'try { localStorage.setItem(1, 2); } catch (e) {}\\n'); "
    "print('Task completed')"
)


def _fake_agent_settings() -> dict:
    return {
        "agent": {"name": "command", "command": sys.executable, "args": ["-c", FAKE_AGENT]},
        "lint_commands": [f"{PY} -c 'pass'"],
        "test_command": f"{PY} -c 'pass'",
        "termination_grace_seconds": 2,
    }


@pytest.fixture
def local_agent(workspace):
    """Point the workspace at the fake agent through benchmark.local.yaml."""
    workspace.local_overrides.write_text(yaml.safe_dump({"settings": _fake_agent_settings()}))
    return workspace


class TestSettingsLayers:
    def test_registry_settings_applied(self, workspace):
        harness = BenchmarkHarness.from_paths(workspace, environ={})
        assert harness.settings.timeout_minutes == 1
        assert harness.settings.session_delay_seconds == 0
        assert harness.registry.ids() == ["minimal", "tdd-strict"]

    def test_local_then_env_then_cli(self, workspace):
        workspace.local_overrides.write_text(
            "settings:\n  timeout_minutes: 5\n  max_parallel_sessions: 4\n  parallel_execution: true\n"
        )
        environ = {"BENCHMARK_TIMEOUT_MINUTES": "7", "BENCHMARK_MAX_PARALLEL_SESSIONS": "3"}

        harness = BenchmarkHarness.from_paths(
            workspace, cli_overrides={"max_parallel_sessions": 1}, environ=environ
        )

        assert harness.settings.timeout_minutes == 7
        assert harness.settings.max_parallel_sessions == 1
        assert harness.settings.parallel_execution is True

    def test_invalid_override_rejected(self, workspace):
        with pytest.raises(ConfigError):
            BenchmarkHarness.from_paths(workspace, environ={"BENCHMARK_TIMEOUT_MINUTES": "-1"})


class TestHarness:
    def test_setup_creates_one_sample_per_scenario(self, workspace):
        harness = BenchmarkHarness.from_paths(workspace, environ={})
        (workspace.samples_dir / "orphan").mkdir(parents=True)

        samples = harness.setup()

        assert [s.scenario_id for s in samples] == ["minimal", "tdd-strict"]
        assert sorted(p.name for p in workspace.samples_dir.iterdir()) == ["minimal", "tdd-strict"]
        for sample in samples:
            assert sample.config_document.is_file()

    def test_setup_single_scenario(self, workspace):
        harness = BenchmarkHarness.from_paths(workspace, environ={})
        samples = harness.setup("tdd-strict")
        assert [s.scenario_id for s in samples] == ["tdd-strict"]

    def test_setup_unknown_scenario(self, workspace):
        harness = BenchmarkHarness.from_paths(workspace, environ={})
        with pytest.raises(ConfigError):
            harness.setup("missing")

    @pytest.mark.asyncio
    async def test_full_pipeline(self, local_agent):
        harness = BenchmarkHarness.from_paths(local_agent, environ={})

        summary = await harness.run(RunOptions())

        assert [r.scenario_id for r in summary.results] == ["minimal", "tdd-strict"]
        assert all(r.exit_code == 0 and r.completed for r in summary.results)
        assert summary.results_file.is_file()
        md_path, json_path = summary.report_paths
        assert md_path.parent == summary.results_file.parent
        assert md_path.name.startswith("analysis-summary-")
        report = json.loads(json_path.read_text())
        assert report["rankings"]["by_passed_checks"][0]["passed_checks"] == 5
        outcomes = report["validation"]["minimal"]
        assert {"componentExists": True}.items() <= {
            o["check_name"]: o["passed"] for o in outcomes
        }.items()

    @pytest.mark.asyncio
    async def test_skip_analysis_and_cleanup(self, local_agent):
        harness = BenchmarkHarness.from_paths(local_agent, environ={})

        summary = await harness.run(RunOptions(skip_analysis=True, cleanup=True))

        assert summary.report is None
        assert summary.results_file.is_file()
        assert not local_agent.samples_dir.exists()

    @pytest.mark.asyncio
    async def test_run_single_with_custom_prompt(self, local_agent, tmp_path):
        prompt = tmp_path / "custom.md"
        prompt.write_text("custom task")
        harness = BenchmarkHarness.from_paths(local_agent, environ={})

        summary = await harness.run_single(
            "minimal", RunOptions(skip_analysis=True, prompt_file=prompt)
        )

        assert [r.scenario_id for r in summary.results] == ["minimal"]

    @pytest.mark.asyncio
    async def test_missing_prompt_file(self, local_agent, tmp_path):
        harness = BenchmarkHarness.from_paths(local_agent, environ={})
        with pytest.raises(ConfigError, match="Prompt file not found"):
            await harness.run(RunOptions(prompt_file=tmp_path / "absent.md"))

    @pytest.mark.asyncio
    async def test_missing_prompt_file_leaves_samples_untouched(self, local_agent, tmp_path):
        harness = BenchmarkHarness.from_paths(local_agent, environ={})
        harness.setup()
        marker = local_agent.samples_dir / "minimal" / "agent-output.js"
        marker.write_text("kept")

        with pytest.raises(ConfigError):
            await harness.run(RunOptions(prompt_file=tmp_path / "absent.md"))

        assert marker.read_text() == "kept"

    @pytest.mark.asyncio
    async def test_missing_agent_executable_warned(self, workspace, caplog):
        workspace.local_overrides.write_text(
            "settings:\n  agent:\n    name: command\n    command: definitely-not-a-command-xyz\n"
        )
        harness = BenchmarkHarness.from_paths(workspace, environ={})

        summary = await harness.run(RunOptions(scenario_id="minimal", skip_analysis=True))

        assert "Agent executable for backend command not found" in caplog.text
        assert [r.exit_code for r in summary.results] == ["spawn-failed"]

    @pytest.mark.asyncio
    async def test_two_runs_produce_distinct_reports(self, local_agent):
        harness = BenchmarkHarness.from_paths(local_agent, environ={})
        first = await harness.run(RunOptions(scenario_id="minimal"))
        second = await harness.run(RunOptions(scenario_id="minimal"))
        assert first.run_id != second.run_id
        assert first.report_paths[1] != second.report_paths[1]

    def test_analyze_without_results(self, workspace):
        harness = BenchmarkHarness.from_paths(workspace, environ={})
        with pytest.raises(FileNotFoundError):
            harness.analyze()

    def test_status(self, workspace):
        harness = BenchmarkHarness.from_paths(workspace, environ={})
        harness.setup("minimal")
        status = harness.status()
        assert status["scenarios"] == 2
        assert status["samples"] == ["minimal"]
        assert status["missing_samples"] == ["tdd-strict"]
        assert status["latest_run"] is None


class TestCli:
    def test_list(self, workspace, capsys):
        assert main(["list", "--root", str(workspace.root)]) == 0
        out = capsys.readouterr().out
        assert "minimal" in out
        assert "CLAUDE_TDD.md" in out

    def test_help(self, capsys):
        assert main(["help"]) == 0
        assert "benchmark-runner" in capsys.readouterr().out

    def test_setup_and_clean(self, workspace, capsys):
        root = str(workspace.root)
        assert main(["setup", "--root", root]) == 0
        assert (workspace.samples_dir / "minimal" / "CLAUDE.md").is_file()
        assert main(["clean", "--root", root]) == 0
        assert not workspace.samples_dir.exists()
        assert "Nothing to clean" not in capsys.readouterr().out

    def test_status(self, workspace, capsys):
        assert main(["status", "--root", str(workspace.root)]) == 0
        out = capsys.readouterr().out
        assert "Scenarios configured: 2" in out
        assert "missing: minimal" in out

    def test_unknown_scenario_exits_1(self, workspace, capsys):
        code = main(["scenario", "nope", "--root", str(workspace.root), "--skip-setup"])
        assert code == 1
        assert "Error:" in capsys.readouterr().err

    def test_scenario_command_needs_id(self, workspace, capsys):
        assert main(["scenario", "--root", str(workspace.root)]) == 1

    def test_missing_registry_exits_1(self, tmp_path, capsys):
        assert main(["list", "--root", str(tmp_path)]) == 1
        assert "Scenario registry not found" in capsys.readouterr().err

    def test_analyze_without_results_exits_1(self, workspace, capsys):
        assert main(["analyze", "--root", str(workspace.root)]) == 1

    def test_full_run(self, local_agent, capsys):
        code = main(["run", "--root", str(local_agent.root), "--parallel", "--max-parallel", "2"])
        assert code == 0
        out = capsys.readouterr().out
        assert "minimal: completed" in out
        assert "Report written:" in out
