"""Task orchestrator: routes file changes to long-lived worker processes.

One worker subprocess is spawned per configured agent and spoken to over
its stdin/stdout with JSON lines. Everything the orchestrator learns
(worker replies, routed file changes, timeout ticks, worker exits) goes
through a single queue drained by one dispatch loop, which applies the pure
handlers in ``state`` and sends whatever they emit. The dispatch loop is the
only writer of the state and of the optional on-disk state file.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError as SchemaValidationError
from jsonschema import validate

from ..errors import ConfigError, ProcessError
from . import messages as m
from .messages import Message, ProtocolError
from .patterns import matches
from .state import OrchestratorState, RetryPolicy, dispatch

logger = logging.getLogger(__name__)

WORKER_MODULE = "benchmark_runner.orchestrator.worker"

AGENTS_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["agents"],
    "properties": {
        "agents": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["name", "patterns"],
                "properties": {
                    "name": {"type": "string", "pattern": r"^[A-Za-z0-9][A-Za-z0-9_.-]*$"},
                    "patterns": {
                        "type": "array",
                        "items": {"type": "string", "minLength": 1},
                        "minItems": 1,
                    },
                    "action": {"type": "string"},
                    "command": {
                        "type": "array",
                        "items": {"type": "string"},
                        "minItems": 1,
                    },
                },
            },
        },
        "policy": {
            "type": "object",
            "properties": {
                "task_timeout_seconds": {"type": "number", "exclusiveMinimum": 0},
                "retry_budget": {"type": "integer", "minimum": 0},
            },
        },
        "state_file": {"type": "string"},
        "tick_interval_seconds": {"type": "number", "exclusiveMinimum": 0},
    },
}


@dataclass
class AgentSpec:
    """A worker agent and the file patterns it handles."""

    name: str
    patterns: list[str]
    action: str = "process"
    command: list[str] | None = None  # defaults to the reference worker

    @property
    def argv(self) -> list[str]:
        if self.command:
            return list(self.command)
        return [sys.executable, "-m", WORKER_MODULE, "--name", self.name]

    def handles(self, path: str) -> bool:
        return any(matches(p, path) for p in self.patterns)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AgentSpec:
        return cls(
            name=data["name"],
            patterns=list(data["patterns"]),
            action=data.get("action", "process"),
            command=list(data["command"]) if data.get("command") else None,
        )


@dataclass
class OrchestratorConfig:
    agents: list[AgentSpec] = field(default_factory=list)
    policy: RetryPolicy = field(default_factory=RetryPolicy)
    state_file: Path | None = None
    tick_interval_seconds: float = 1.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OrchestratorConfig:
        try:
            validate(instance=data, schema=AGENTS_SCHEMA)
        except SchemaValidationError as e:
            where = "/".join(str(p) for p in e.absolute_path) or "<root>"
            raise ConfigError(f"Invalid orchestrator config at {where}: {e.message}") from e
        agents = [AgentSpec.from_dict(a) for a in data["agents"]]
        names = [a.name for a in agents]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConfigError(f"Duplicate agent names: {', '.join(duplicates)}")
        state_file = data.get("state_file")
        return cls(
            agents=agents,
            policy=RetryPolicy.from_dict(data.get("policy") or {}),
            state_file=Path(state_file) if state_file else None,
            tick_interval_seconds=float(data.get("tick_interval_seconds", 1.0)),
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> OrchestratorConfig:
        path = Path(path)
        if not path.is_file():
            raise ConfigError(f"Orchestrator config not found: {path}")
        try:
            with open(path, encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{path} must contain a mapping")
        return cls.from_dict(data)


class TaskOrchestrator:
    """Spawns workers, routes file changes to them and tracks their tasks."""

    def __init__(
        self,
        config: OrchestratorConfig,
        clock: Callable[[], float] = time.monotonic,
        shutdown_grace_seconds: float = 5.0,
    ) -> None:
        self._config = config
        self._clock = clock
        self._shutdown_grace = shutdown_grace_seconds
        self._state = OrchestratorState(policy=config.policy)
        self._queue: asyncio.Queue[Message | None] = asyncio.Queue()
        self._workers: dict[str, asyncio.subprocess.Process] = {}
        self._readers: list[asyncio.Task[None]] = []
        self._dispatcher: asyncio.Task[None] | None = None
        self._ticker: asyncio.Task[None] | None = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._stopping = False

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def agents(self) -> list[AgentSpec]:
        return list(self._config.agents)

    async def __aenter__(self) -> TaskOrchestrator:
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.stop()

    async def start(self) -> None:
        for spec in self._config.agents:
            self._workers[spec.name] = await self._spawn(spec)
        for name, process in self._workers.items():
            self._readers.append(asyncio.create_task(self._read_worker(name, process)))
        self._dispatcher = asyncio.create_task(self._dispatch_loop())
        self._ticker = asyncio.create_task(self._tick_loop())
        logger.info("Orchestrator started with %d workers", len(self._workers))

    async def _spawn(self, spec: AgentSpec) -> asyncio.subprocess.Process:
        try:
            process = await asyncio.create_subprocess_exec(
                *spec.argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            await self.stop()
            raise ProcessError(f"Failed to spawn worker {spec.name}: {e}") from e
        logger.info("Spawned worker %s (pid %s)", spec.name, process.pid)
        return process

    def _enqueue(self, msg: Message) -> None:
        self._queue.put_nowait(replace(msg, timestamp=self._clock()))

    def route_file_change(self, path: str) -> list[str]:
        """Schedule a task on every agent whose patterns match *path*.

        Returns:
            The ids of the scheduled tasks, one per matching agent.
        """
        task_ids: list[str] = []
        for spec in self._config.agents:
            if not spec.handles(path):
                continue
            task_id = f"{spec.name}-{uuid.uuid4().hex[:8]}"
            self._idle.clear()
            self._enqueue(Message(
                type=m.SCHEDULE,
                agent=spec.name,
                task_id=task_id,
                action=spec.action,
                params={"path": path},
            ))
            task_ids.append(task_id)
        if task_ids:
            logger.info("Routed %s to %d agent(s)", path, len(task_ids))
        else:
            logger.debug("No agent handles %s", path)
        return task_ids

    async def wait_idle(self, timeout: float | None = None) -> bool:
        """Wait until no task is outstanding. Returns False on timeout."""
        try:
            await asyncio.wait_for(self._idle.wait(), timeout)
        except TimeoutError:
            return False
        return True

    async def _read_worker(self, name: str, process: asyncio.subprocess.Process) -> None:
        assert process.stdout is not None
        while True:
            line = await process.stdout.readline()
            if not line:
                break
            try:
                msg = m.decode(line)
            except ProtocolError as e:
                logger.warning("Ignoring bad line from %s: %s", name, e)
                continue
            if msg.type not in m.WORKER_MESSAGES:
                logger.warning("Ignoring %s message from worker %s", msg.type, name)
                continue
            self._enqueue(replace(msg, agent=name))
        code = await process.wait()
        if not self._stopping:
            logger.warning("Worker %s exited with code %s", name, code)
            self._enqueue(Message(
                type=m.WORKER_EXITED,
                agent=name,
                error=f"worker {name} exited with code {code}",
            ))

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.tick_interval_seconds)
            self._enqueue(Message(type=m.TICK))

    async def _dispatch_loop(self) -> None:
        while True:
            msg = await self._queue.get()
            if msg is None:
                break
            try:
                await self._apply(msg)
            except ProtocolError as e:
                logger.warning("Dropping message: %s", e)
            except Exception:
                logger.exception("Failed to handle %s message", msg.type)
            if self._state.idle and self._queue.empty():
                self._idle.set()

    async def _apply(self, msg: Message) -> None:
        new_state, outgoing = dispatch(self._state, msg)
        self._log_transition(self._state, new_state)
        self._state = new_state
        for out in outgoing:
            await self._send(out)
        self._persist()

    def _log_transition(self, old: OrchestratorState, new: OrchestratorState) -> None:
        for task_id, task in new.tasks.items():
            before = old.tasks.get(task_id)
            if before is None or before.status != task.status or before.attempt != task.attempt:
                logger.debug("Task %s -> %s (attempt %d)", task_id, task.status.value, task.attempt)
        for task in new.failed[len(old.failed):]:
            logger.warning("Task %s failed: %s", task.task_id, task.error)

    async def _send(self, msg: Message) -> None:
        process = self._workers.get(msg.agent)
        if process is None or process.stdin is None or process.stdin.is_closing():
            logger.warning("Cannot deliver %s to %s: worker unavailable", msg.type, msg.agent)
            return
        try:
            process.stdin.write(m.encode(msg))
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.warning("Cannot deliver %s to %s: %s", msg.type, msg.agent, e)

    def _persist(self) -> None:
        path = self._config.state_file
        if path is None:
            return
        payload = {
            "agents": [a.name for a in self._config.agents],
            **self._state.to_dict(),
        }
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
        os.replace(tmp, path)

    async def stop(self) -> None:
        """Shut workers down and drain the dispatch loop."""
        if self._stopping:
            return
        self._stopping = True
        if self._ticker is not None:
            self._ticker.cancel()
            try:
                await self._ticker
            except asyncio.CancelledError:
                pass

        for name, process in self._workers.items():
            await self._send(Message(type=m.SHUTDOWN, agent=name))
            if process.stdin is not None and not process.stdin.is_closing():
                process.stdin.close()
        for name, process in self._workers.items():
            try:
                await asyncio.wait_for(process.wait(), self._shutdown_grace)
            except TimeoutError:
                logger.warning("Worker %s did not exit, killing", name)
                process.kill()
                await process.wait()

        if self._readers:
            await asyncio.gather(*self._readers)
        if self._dispatcher is not None:
            self._queue.put_nowait(None)
            await self._dispatcher
        logger.info(
            "Orchestrator stopped: %d completed, %d failed, %d outstanding",
            self._state.completed_count, len(self._state.failed), len(self._state.tasks),
        )
