"""Tests for the task orchestrator against real reference-worker processes."""

import io
import json
import sys

import pytest

from benchmark_runner.errors import ConfigError, ProcessError
from benchmark_runner.orchestrator import (
    AgentSpec,
    OrchestratorConfig,
    RetryPolicy,
    TaskOrchestrator,
    decode,
    encode,
)
from benchmark_runner.orchestrator import messages as m
from benchmark_runner.orchestrator.__main__ import main as orchestrator_main
from benchmark_runner.orchestrator.messages import Message
from benchmark_runner.orchestrator.worker import Worker


def _config(*agents, timeout=30.0, retry_budget=1, state_file=None, tick=0.05):
    return OrchestratorConfig(
        agents=list(agents),
        policy=RetryPolicy(task_timeout_seconds=timeout, retry_budget=retry_budget),
        state_file=state_file,
        tick_interval_seconds=tick,
    )


# =============================================================================
# Configuration
# =============================================================================


class TestOrchestratorConfig:
    def test_from_dict(self):
        config = OrchestratorConfig.from_dict({
            "agents": [
                {"name": "source-agent", "patterns": ["src/**/*.js"]},
                {"name": "docs", "patterns": ["**/*.md"], "action": "echo"},
            ],
            "policy": {"task_timeout_seconds": 5, "retry_budget": 2},
            "state_file": "out/state.json",
        })
        assert [a.name for a in config.agents] == ["source-agent", "docs"]
        assert config.agents[0].action == "process"
        assert config.policy.retry_budget == 2
        assert config.state_file.name == "state.json"

    @pytest.mark.parametrize(
        "data",
        [
            {},
            {"agents": [{"name": "a"}]},
            {"agents": [{"name": "a", "patterns": []}]},
            {"agents": [{"name": "a", "patterns": ["*"]}], "policy": {"retry_budget": -1}},
            {"agents": [{"name": "bad name", "patterns": ["*"]}]},
        ],
    )
    def test_invalid(self, data):
        with pytest.raises(ConfigError):
            OrchestratorConfig.from_dict(data)

    def test_duplicate_names(self):
        with pytest.raises(ConfigError, match="Duplicate agent names: a"):
            OrchestratorConfig.from_dict({
                "agents": [{"name": "a", "patterns": ["*"]}, {"name": "a", "patterns": ["*"]}]
            })

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "agents.yaml"
        path.write_text("agents:\n  - name: a\n    patterns: ['**/*.md']\n")
        config = OrchestratorConfig.from_yaml(path)
        assert config.agents[0].handles("docs/README.md")
        assert not config.agents[0].handles("src/App.js")

    def test_from_yaml_missing(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            OrchestratorConfig.from_yaml(tmp_path / "absent.yaml")

    def test_default_worker_command(self):
        spec = AgentSpec(name="a", patterns=["*"])
        assert spec.argv == [sys.executable, "-m", "benchmark_runner.orchestrator.worker", "--name", "a"]


# =============================================================================
# Worker
# =============================================================================


def _serve(*messages):
    stdin = io.StringIO("".join(encode(msg).decode("utf-8") for msg in messages))
    stdout = io.StringIO()
    assert Worker("w", stdin, stdout).serve() == 0
    return [decode(line) for line in stdout.getvalue().splitlines()]


class TestWorker:
    def test_process_existing_file(self, tmp_path):
        target = tmp_path / "App.js"
        target.write_text("a\nb\n")

        replies = _serve(Message(
            type=m.EXECUTE, task_id="t1", attempt=1, action="process",
            params={"path": str(target)},
        ))

        assert [r.type for r in replies] == [m.STARTED, m.COMPLETED]
        assert all(r.agent == "w" and r.attempt == 1 for r in replies)
        assert replies[1].result == {"path": str(target), "exists": True, "bytes": 4, "lines": 2}

    def test_fail_and_unknown_action(self):
        replies = _serve(
            Message(type=m.EXECUTE, task_id="t1", action="fail", params={"reason": "nope"}),
            Message(type=m.EXECUTE, task_id="t2", action="dance"),
        )
        assert [r.type for r in replies] == [m.STARTED, m.FAILED, m.STARTED, m.FAILED]
        assert replies[1].error == "RuntimeError: nope"
        assert replies[3].error == "unknown action: dance"

    def test_hang_sends_no_reply(self):
        replies = _serve(Message(type=m.EXECUTE, task_id="t1", action="hang"))
        assert [r.type for r in replies] == [m.STARTED]

    def test_sleep_heartbeats(self):
        replies = _serve(Message(
            type=m.EXECUTE, task_id="t1", action="sleep",
            params={"seconds": 0.06, "heartbeat_seconds": 0.02},
        ))
        assert replies[0].type == m.STARTED
        assert replies[-1].type == m.COMPLETED
        assert any(r.type == m.HEARTBEAT for r in replies)

    def test_shutdown_stops_serving(self):
        replies = _serve(
            Message(type=m.SHUTDOWN),
            Message(type=m.EXECUTE, task_id="t1", action="echo"),
        )
        assert replies == []

    def test_bad_lines_ignored(self):
        stdin = io.StringIO("garbage\n\n" + encode(Message(type=m.EXECUTE, task_id="t", action="echo")).decode())
        stdout = io.StringIO()
        Worker("w", stdin, stdout).serve()
        assert len(stdout.getvalue().splitlines()) == 2


# =============================================================================
# Orchestrator
# =============================================================================


@pytest.mark.integration
class TestTaskOrchestrator:
    @pytest.mark.asyncio
    async def test_routes_by_pattern_and_completes(self, tmp_path):
        state_file = tmp_path / "state" / "orchestrator.json"
        config = _config(
            AgentSpec(name="source", patterns=["src/**/*.js"], action="echo"),
            AgentSpec(name="tests", patterns=["tests/**/*.test.js", "src/**/*.test.js"], action="echo"),
            state_file=state_file,
        )

        async with TaskOrchestrator(config) as orchestrator:
            assert orchestrator.route_file_change("README.md") == []
            source_only = orchestrator.route_file_change("src/components/TodoList.js")
            both = orchestrator.route_file_change("src/TodoList.test.js")
            assert await orchestrator.wait_idle(10)
            state = orchestrator.state

        assert [t.split("-")[0] for t in source_only] == ["source"]
        assert sorted(t.split("-")[0] for t in both) == ["source", "tests"]
        assert state.completed_count == 3
        assert state.failed == ()
        payload = json.loads(state_file.read_text())
        assert payload["agents"] == ["source", "tests"]
        assert payload["completed_count"] == 3
        assert not state_file.with_name(state_file.name + ".tmp").exists()

    @pytest.mark.asyncio
    async def test_worker_failure_recorded(self):
        config = _config(AgentSpec(name="breaker", patterns=["**"], action="fail"))

        async with TaskOrchestrator(config) as orchestrator:
            orchestrator.route_file_change("src/App.js")
            assert await orchestrator.wait_idle(10)
            failed = orchestrator.state.failed

        assert len(failed) == 1
        assert failed[0].agent == "breaker"
        assert failed[0].error == "RuntimeError: requested failure"

    @pytest.mark.asyncio
    async def test_unwritable_state_file_keeps_dispatching(self, tmp_path, caplog):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file where a directory should be")
        config = _config(
            AgentSpec(name="docs", patterns=["**"], action="echo"),
            state_file=blocker / "state.json",
        )

        async with TaskOrchestrator(config) as orchestrator:
            orchestrator.route_file_change("README.md")
            assert await orchestrator.wait_idle(10)
            completed = orchestrator.state.completed_count

        assert completed == 1
        assert "Failed to handle" in caplog.text

    @pytest.mark.asyncio
    async def test_silent_task_retried_then_failed(self):
        config = _config(
            AgentSpec(name="stuck", patterns=["**"], action="hang"),
            timeout=0.2,
            retry_budget=1,
        )

        async with TaskOrchestrator(config) as orchestrator:
            orchestrator.route_file_change("src/App.js")
            assert await orchestrator.wait_idle(10)
            state = orchestrator.state

        assert state.completed_count == 0
        assert state.failed[0].attempt == 2
        assert "timed out after 2 attempt(s)" in state.failed[0].error

    @pytest.mark.asyncio
    async def test_worker_exit_fails_outstanding(self):
        config = _config(AgentSpec(
            name="crasher",
            patterns=["**"],
            command=[sys.executable, "-c", "import sys; sys.stdin.readline()"],
        ))

        async with TaskOrchestrator(config) as orchestrator:
            orchestrator.route_file_change("src/App.js")
            assert await orchestrator.wait_idle(10)
            failed = orchestrator.state.failed

        assert len(failed) == 1
        assert "exited with code 0" in failed[0].error

    @pytest.mark.asyncio
    async def test_spawn_failure(self):
        config = _config(AgentSpec(
            name="ghost", patterns=["**"], command=["definitely-not-a-command-xyz"]
        ))
        with pytest.raises(ProcessError, match="ghost"):
            await TaskOrchestrator(config).start()

    @pytest.mark.asyncio
    async def test_wait_idle_timeout(self):
        config = _config(AgentSpec(name="slow", patterns=["**"], action="hang"), timeout=30)

        async with TaskOrchestrator(config) as orchestrator:
            orchestrator.route_file_change("a.txt")
            assert await orchestrator.wait_idle(0.2) is False
            assert len(orchestrator.state.tasks) == 1


@pytest.mark.integration
class TestOrchestratorCli:
    def test_routes_and_reports(self, tmp_path, capsys):
        path = tmp_path / "agents.yaml"
        path.write_text(
            "agents:\n"
            "  - name: docs\n"
            "    patterns: ['**/*.md']\n"
            "    action: echo\n"
            "tick_interval_seconds: 0.05\n"
        )
        assert orchestrator_main(["--config", str(path), "docs/intro.md", "src/App.js"]) == 0
        out = capsys.readouterr().out
        assert "Completed: 1" in out
        assert "Failed: 0" in out

    def test_missing_config(self, tmp_path, capsys):
        assert orchestrator_main(["--config", str(tmp_path / "none.yaml"), "a.md"]) == 1
        assert "Error:" in capsys.readouterr().err
