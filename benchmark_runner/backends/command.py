"""Generic subprocess backend: runs any command as the agent.

The prompt is written to the process's stdin, which is then closed. Output
is streamed into an optional session log with ``[STDOUT]``/``[STDERR]``
prefixes. On timeout the process gets SIGTERM, then SIGKILL after a grace
period, and the result carries the ``EXIT_TIMED_OUT`` sentinel.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import time
from pathlib import Path
from typing import IO

from ..config import AgentBackendConfig
from ..errors import ProcessError
from .base import EXIT_TIMED_OUT, BackendResult

logger = logging.getLogger(__name__)

_READ_CHUNK = 4096


async def _pump(
    stream: asyncio.StreamReader | None,
    label: str,
    buffer: list[str],
    log_fh: IO[str] | None,
) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            break
        text = chunk.decode("utf-8", errors="replace")
        buffer.append(text)
        if log_fh is not None:
            log_fh.write(f"[{label}] {text}")
            log_fh.flush()


async def _feed(stdin: asyncio.StreamWriter | None, prompt: str) -> None:
    if stdin is None:
        return
    try:
        stdin.write(prompt.encode("utf-8"))
        await stdin.drain()
    except (BrokenPipeError, ConnectionResetError):
        logger.debug("Agent closed stdin before the prompt was fully written")
    finally:
        stdin.close()


class CommandBackend:
    """Backend that runs an arbitrary command per session."""

    def __init__(
        self,
        command: str,
        args: list[str] | None = None,
        env: dict[str, str] | None = None,
        termination_grace_seconds: float = 5.0,
    ) -> None:
        self._command = command
        self._args = args or []
        self._env = env or {}
        self._grace = termination_grace_seconds

    @property
    def name(self) -> str:
        return "command"

    @property
    def argv(self) -> list[str]:
        return [self._command, *self._args]

    async def run_session(
        self,
        prompt: str,
        working_dir: str | Path,
        timeout_seconds: float,
        log_path: str | Path | None = None,
    ) -> BackendResult:
        start_time = time.monotonic()
        env = {**os.environ, **self._env}

        # No agent is running yet if the log cannot be opened.
        log_fh = open(log_path, "w", encoding="utf-8") if log_path else None
        try:
            try:
                process = await asyncio.create_subprocess_exec(
                    *self.argv,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    cwd=str(working_dir),
                    env=env,
                )
            except FileNotFoundError as e:
                raise ProcessError(f"Command not found: {self._command}") from e
            except OSError as e:
                raise ProcessError(f"Failed to start {self._command}: {e}") from e

            out: list[str] = []
            err: list[str] = []
            pumps = asyncio.gather(
                _pump(process.stdout, "STDOUT", out, log_fh),
                _pump(process.stderr, "STDERR", err, log_fh),
                _feed(process.stdin, prompt),
            )
            timed_out = False
            try:
                await asyncio.wait_for(process.wait(), timeout=timeout_seconds)
            except TimeoutError:
                timed_out = True
                logger.warning(
                    "Timeout after %.1fs, terminating pid %s", timeout_seconds, process.pid
                )
                await self._terminate(process)

            # Grandchildren may keep the pipes open after the agent exits.
            try:
                await asyncio.wait_for(pumps, timeout=self._grace)
            except TimeoutError:
                pumps.cancel()
                logger.debug("Output pipes still open after exit; stopped reading")
        finally:
            if log_fh is not None:
                log_fh.close()

        return BackendResult(
            exit_code=EXIT_TIMED_OUT if timed_out else process.returncode,
            stdout="".join(out),
            stderr="".join(err),
            timed_out=timed_out,
            wall_clock_seconds=time.monotonic() - start_time,
        )

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        try:
            process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=self._grace)
        except TimeoutError:
            logger.warning("pid %s ignored SIGTERM, killing", process.pid)
            try:
                process.kill()
            except ProcessLookupError:
                return
            await process.wait()

    async def health_check(self) -> bool:
        return shutil.which(self._command) is not None

    @classmethod
    def from_config(
        cls, config: AgentBackendConfig, termination_grace_seconds: float = 5.0
    ) -> CommandBackend:
        return cls(
            command=config.command,
            args=config.args,
            env=config.env,
            termination_grace_seconds=termination_grace_seconds,
        )
