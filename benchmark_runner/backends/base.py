"""Agent backend protocol for benchmark sessions.

Defines the interface every agent backend implements to take part in a
benchmark run: start one process in a sample directory, hand it the prompt
on stdin, and report how it ended.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from ..config import AgentBackendConfig

# Sentinel exit codes. A timed-out session never reports the native code.
EXIT_TIMED_OUT = "timed-out"
EXIT_SPAWN_FAILED = "spawn-failed"


@dataclass
class BackendResult:
    """Standardized outcome of one agent process."""

    exit_code: int | str | None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    wall_clock_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.exit_code == 0


@runtime_checkable
class AgentBackend(Protocol):
    """Protocol for agent backends used in benchmark sessions."""

    @property
    def name(self) -> str:
        """Backend identifier (e.g. 'claude_code', 'command')."""
        ...

    async def run_session(
        self,
        prompt: str,
        working_dir: str | Path,
        timeout_seconds: float,
        log_path: str | Path | None = None,
    ) -> BackendResult:
        """Run the agent once and return how it ended.

        Args:
            prompt: Text written to the process's stdin.
            working_dir: The scenario's sample directory.
            timeout_seconds: Wall-clock budget before the process is terminated.
            log_path: Optional file receiving prefixed stdout/stderr.

        Raises:
            ProcessError: if the process could not be started.
        """
        ...

    async def health_check(self) -> bool:
        """Check if the backend's executable is available."""
        ...

    @classmethod
    def from_config(cls, config: AgentBackendConfig) -> AgentBackend:
        """Create a backend instance from configuration."""
        ...
