"""Orchestrator state store and its pure message handlers.

Every handler has the shape ``(state, message) -> (new_state, outgoing)``.
Handlers never mutate the state they are given, never perform I/O and never
read the clock; time arrives on ``message.timestamp``.

Task lifecycle::

    queued -> started -> completed   (removed from the store)
                      -> failed      (moved to ``failed``)

A task with no word from its worker for ``task_timeout_seconds`` is
re-dispatched while ``retry_budget`` allows, then marked failed.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from . import messages as m
from .messages import Message, ProtocolError


class TaskStatus(str, Enum):
    QUEUED = "queued"
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class RetryPolicy:
    """Timeout and retry budget for tasks whose worker goes quiet."""

    task_timeout_seconds: float = 300.0
    retry_budget: int = 1  # re-dispatches allowed after the first attempt

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RetryPolicy:
        default = cls()
        return cls(
            task_timeout_seconds=float(
                data.get("task_timeout_seconds", default.task_timeout_seconds)
            ),
            retry_budget=int(data.get("retry_budget", default.retry_budget)),
        )


@dataclass(frozen=True)
class Task:
    task_id: str
    agent: str
    action: str
    params: dict[str, Any] = field(default_factory=dict)
    status: TaskStatus = TaskStatus.QUEUED
    attempt: int = 1
    dispatched_at: float = 0.0
    last_seen: float = 0.0
    error: str | None = None
    result: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "agent": self.agent,
            "action": self.action,
            "params": self.params,
            "status": self.status.value,
            "attempt": self.attempt,
            "dispatched_at": self.dispatched_at,
            "last_seen": self.last_seen,
            "error": self.error,
            "result": self.result,
        }


@dataclass(frozen=True)
class OrchestratorState:
    """Everything the orchestrator knows; replaced wholesale by each handler."""

    tasks: dict[str, Task] = field(default_factory=dict)
    policy: RetryPolicy = field(default_factory=RetryPolicy)
    completed_count: int = 0
    failed: tuple[Task, ...] = ()

    @property
    def idle(self) -> bool:
        return not self.tasks

    def tasks_for(self, agent: str) -> list[Task]:
        return [t for t in self.tasks.values() if t.agent == agent]

    def with_task(self, task: Task) -> OrchestratorState:
        return replace(self, tasks={**self.tasks, task.task_id: task})

    def without_task(self, task_id: str) -> OrchestratorState:
        return replace(
            self, tasks={k: v for k, v in self.tasks.items() if k != task_id}
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "tasks": {k: v.to_dict() for k, v in self.tasks.items()},
            "policy": {
                "task_timeout_seconds": self.policy.task_timeout_seconds,
                "retry_budget": self.policy.retry_budget,
            },
            "completed_count": self.completed_count,
            "failed": [t.to_dict() for t in self.failed],
        }


Outgoing = list[Message]
Handler = Callable[[OrchestratorState, Message], tuple[OrchestratorState, Outgoing]]


def execute_message(task: Task) -> Message:
    return Message(
        type=m.EXECUTE,
        agent=task.agent,
        task_id=task.task_id,
        attempt=task.attempt,
        action=task.action,
        params=task.params,
    )


def _current_task(state: OrchestratorState, msg: Message) -> Task | None:
    """The task *msg* refers to, or None for unknown or superseded attempts."""
    task = state.tasks.get(msg.task_id)
    if task is None:
        return None
    if msg.agent and msg.agent != task.agent:
        return None
    if msg.attempt and msg.attempt != task.attempt:
        return None
    return task


def _fail(state: OrchestratorState, task: Task, error: str) -> OrchestratorState:
    failed = replace(task, status=TaskStatus.FAILED, error=error)
    return replace(state.without_task(task.task_id), failed=state.failed + (failed,))


def handle_schedule(state: OrchestratorState, msg: Message) -> tuple[OrchestratorState, Outgoing]:
    if msg.task_id in state.tasks:
        return state, []
    task = Task(
        task_id=msg.task_id,
        agent=msg.agent,
        action=msg.action,
        params=dict(msg.params),
        dispatched_at=msg.timestamp,
        last_seen=msg.timestamp,
    )
    return state.with_task(task), [execute_message(task)]


def handle_started(state: OrchestratorState, msg: Message) -> tuple[OrchestratorState, Outgoing]:
    task = _current_task(state, msg)
    if task is None:
        return state, []
    return state.with_task(replace(task, status=TaskStatus.STARTED, last_seen=msg.timestamp)), []


def handle_heartbeat(state: OrchestratorState, msg: Message) -> tuple[OrchestratorState, Outgoing]:
    task = _current_task(state, msg)
    if task is None:
        return state, []
    return state.with_task(replace(task, last_seen=msg.timestamp)), []


def handle_completed(state: OrchestratorState, msg: Message) -> tuple[OrchestratorState, Outgoing]:
    task = _current_task(state, msg)
    if task is None:
        return state, []
    new_state = state.without_task(task.task_id)
    return replace(new_state, completed_count=state.completed_count + 1), []


def handle_failed(state: OrchestratorState, msg: Message) -> tuple[OrchestratorState, Outgoing]:
    task = _current_task(state, msg)
    if task is None:
        return state, []
    return _fail(state, task, msg.error or "worker reported failure"), []


def handle_tick(state: OrchestratorState, msg: Message) -> tuple[OrchestratorState, Outgoing]:
    """Re-dispatch or fail every task whose worker has been quiet too long."""
    policy = state.policy
    outgoing: Outgoing = []
    for task in list(state.tasks.values()):
        if msg.timestamp - task.last_seen <= policy.task_timeout_seconds:
            continue
        if task.attempt <= policy.retry_budget:
            retry = replace(
                task,
                status=TaskStatus.QUEUED,
                attempt=task.attempt + 1,
                dispatched_at=msg.timestamp,
                last_seen=msg.timestamp,
                error=f"attempt {task.attempt} timed out",
            )
            state = state.with_task(retry)
            outgoing.append(execute_message(retry))
        else:
            state = _fail(
                state,
                task,
                f"timed out after {task.attempt} attempt(s) "
                f"of {policy.task_timeout_seconds:g}s",
            )
    return state, outgoing


def handle_worker_exited(
    state: OrchestratorState, msg: Message
) -> tuple[OrchestratorState, Outgoing]:
    for task in state.tasks_for(msg.agent):
        state = _fail(state, task, msg.error or f"worker {msg.agent} exited")
    return state, []


HANDLERS: dict[str, Handler] = {
    m.SCHEDULE: handle_schedule,
    m.STARTED: handle_started,
    m.HEARTBEAT: handle_heartbeat,
    m.COMPLETED: handle_completed,
    m.FAILED: handle_failed,
    m.TICK: handle_tick,
    m.WORKER_EXITED: handle_worker_exited,
}


def dispatch(state: OrchestratorState, msg: Message) -> tuple[OrchestratorState, Outgoing]:
    """Route *msg* to its handler.

    Raises:
        ProtocolError: for message types the orchestrator does not accept.
    """
    handler = HANDLERS.get(msg.type)
    if handler is None:
        raise ProtocolError(f"No handler for message type {msg.type!r}")
    return handler(state, msg)
