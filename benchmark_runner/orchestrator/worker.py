#!/usr/bin/env python3
"""Reference worker for the task orchestrator.

Reads ``execute`` messages from stdin, one JSON object per line, and answers
with ``started`` followed by ``completed`` or ``failed`` on stdout. Exits on
``shutdown`` or end of input.

Usage:
    python -m benchmark_runner.orchestrator.worker --name lint-agent
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from collections.abc import Callable
from dataclasses import replace
from pathlib import Path
from typing import Any, TextIO

from . import messages as m
from .messages import Message, ProtocolError

logger = logging.getLogger(__name__)


class _NoReply(Exception):
    """Raised by an action that must leave its task unanswered."""


def _process(params: dict[str, Any], emit: Callable[[Message], None], msg: Message) -> Any:
    """Summarize the changed file."""
    path = Path(params.get("path", ""))
    if not path.is_file():
        return {"path": str(path), "exists": False}
    text = path.read_text(encoding="utf-8", errors="replace")
    return {
        "path": str(path),
        "exists": True,
        "bytes": len(text.encode("utf-8")),
        "lines": text.count("\n") + (0 if text.endswith("\n") or not text else 1),
    }


def _echo(params: dict[str, Any], emit: Callable[[Message], None], msg: Message) -> Any:
    return params


def _fail(params: dict[str, Any], emit: Callable[[Message], None], msg: Message) -> Any:
    raise RuntimeError(params.get("reason", "requested failure"))


def _sleep(params: dict[str, Any], emit: Callable[[Message], None], msg: Message) -> Any:
    """Sleep for ``seconds``, sending a heartbeat every ``heartbeat_seconds``."""
    remaining = float(params.get("seconds", 1.0))
    interval = float(params.get("heartbeat_seconds", 0) or remaining)
    while remaining > 0:
        step = min(interval, remaining)
        time.sleep(step)
        remaining -= step
        if remaining > 0:
            emit(Message(type=m.HEARTBEAT, task_id=msg.task_id, attempt=msg.attempt))
    return {"slept": float(params.get("seconds", 1.0))}


def _hang(params: dict[str, Any], emit: Callable[[Message], None], msg: Message) -> Any:
    raise _NoReply()


ACTIONS: dict[str, Callable[[dict[str, Any], Callable[[Message], None], Message], Any]] = {
    "process": _process,
    "echo": _echo,
    "fail": _fail,
    "sleep": _sleep,
    "hang": _hang,
}


class Worker:
    """Synchronous line-protocol loop over a pair of text streams."""

    def __init__(self, name: str, stdin: TextIO, stdout: TextIO) -> None:
        self._name = name
        self._stdin = stdin
        self._stdout = stdout

    def emit(self, msg: Message) -> None:
        self._stdout.write(m.encode(replace(msg, agent=self._name)).decode("utf-8"))
        self._stdout.flush()

    def handle(self, msg: Message) -> None:
        action = ACTIONS.get(msg.action)
        self.emit(Message(type=m.STARTED, task_id=msg.task_id, attempt=msg.attempt))
        if action is None:
            self.emit(Message(
                type=m.FAILED,
                task_id=msg.task_id,
                attempt=msg.attempt,
                error=f"unknown action: {msg.action}",
            ))
            return
        try:
            result = action(msg.params, self.emit, msg)
        except _NoReply:
            logger.info("Leaving task %s unanswered", msg.task_id)
            return
        except Exception as e:
            self.emit(Message(
                type=m.FAILED,
                task_id=msg.task_id,
                attempt=msg.attempt,
                error=f"{type(e).__name__}: {e}",
            ))
            return
        self.emit(Message(
            type=m.COMPLETED, task_id=msg.task_id, attempt=msg.attempt, result=result
        ))

    def serve(self) -> int:
        for line in self._stdin:
            if not line.strip():
                continue
            try:
                msg = m.decode(line)
            except ProtocolError as e:
                logger.warning("Ignoring bad input: %s", e)
                continue
            if msg.type == m.SHUTDOWN:
                break
            if msg.type == m.EXECUTE:
                self.handle(msg)
            else:
                logger.warning("Ignoring %s message", msg.type)
        return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Reference orchestrator worker")
    parser.add_argument("--name", default="worker", help="Agent name reported in replies")
    args = parser.parse_args(argv)
    # stdout carries the protocol; logs go to stderr.
    logging.basicConfig(
        level=logging.INFO,
        stream=sys.stderr,
        format=f"%(asctime)s %(levelname)s [{args.name}] %(message)s",
    )
    return Worker(args.name, sys.stdin, sys.stdout).serve()


if __name__ == "__main__":
    sys.exit(main())
