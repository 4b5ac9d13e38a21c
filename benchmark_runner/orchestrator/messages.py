"""Line-delimited JSON messages exchanged between orchestrator and workers.

Parent -> worker: ``execute``, ``shutdown``.
Worker -> parent: ``started``, ``heartbeat``, ``completed``, ``failed``.

The dispatch loop also carries orchestrator-internal messages that never
cross a pipe: ``schedule`` (a routed file change), ``tick`` (timeout sweep)
and ``worker_exited``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from ..errors import BenchmarkError

EXECUTE = "execute"
SHUTDOWN = "shutdown"
STARTED = "started"
HEARTBEAT = "heartbeat"
COMPLETED = "completed"
FAILED = "failed"
SCHEDULE = "schedule"
TICK = "tick"
WORKER_EXITED = "worker_exited"

WORKER_MESSAGES = frozenset({STARTED, HEARTBEAT, COMPLETED, FAILED})
PARENT_MESSAGES = frozenset({EXECUTE, SHUTDOWN})
INTERNAL_MESSAGES = frozenset({SCHEDULE, TICK, WORKER_EXITED})
MESSAGE_TYPES = WORKER_MESSAGES | PARENT_MESSAGES | INTERNAL_MESSAGES


class ProtocolError(BenchmarkError):
    """A line on a worker pipe could not be decoded into a message."""


@dataclass(frozen=True)
class Message:
    """One protocol message.

    ``timestamp`` is stamped by whoever enqueues the message for dispatch,
    so handlers never read the clock themselves.
    """

    type: str
    agent: str = ""
    task_id: str = ""
    attempt: int = 0
    action: str = ""
    params: dict[str, Any] = field(default_factory=dict)
    result: Any = None
    error: str | None = None
    timestamp: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type}
        for key in ("agent", "task_id", "action"):
            value = getattr(self, key)
            if value:
                data[key] = value
        if self.attempt:
            data["attempt"] = self.attempt
        if self.params:
            data["params"] = self.params
        if self.result is not None:
            data["result"] = self.result
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        msg_type = data.get("type")
        if msg_type not in MESSAGE_TYPES:
            raise ProtocolError(f"Unknown message type: {msg_type!r}")
        params = data.get("params") or {}
        if not isinstance(params, dict):
            raise ProtocolError("Message params must be an object")
        try:
            attempt = int(data.get("attempt", 0))
        except (TypeError, ValueError) as e:
            raise ProtocolError(f"Invalid attempt: {data.get('attempt')!r}") from e
        return cls(
            type=msg_type,
            agent=str(data.get("agent", "")),
            task_id=str(data.get("task_id", "")),
            attempt=attempt,
            action=str(data.get("action", "")),
            params=params,
            result=data.get("result"),
            error=data.get("error"),
        )


def encode(message: Message) -> bytes:
    """Serialize *message* as one newline-terminated JSON line."""
    return (json.dumps(message.to_dict(), separators=(",", ":")) + "\n").encode("utf-8")


def decode(line: bytes | str) -> Message:
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    line = line.strip()
    if not line:
        raise ProtocolError("Empty message line")
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Invalid JSON message: {e}") from e
    if not isinstance(data, dict):
        raise ProtocolError("Message must be a JSON object")
    return Message.from_dict(data)
