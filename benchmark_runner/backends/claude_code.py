"""Claude Code agent backend.

Runs the ``claude`` CLI in print mode inside the sample directory, with the
prompt delivered on stdin so the scenario's CLAUDE.md is picked up from the
working directory.
"""

from __future__ import annotations

from ..config import AgentBackendConfig
from .command import CommandBackend

DEFAULT_ARGS = ["--print", "--dangerously-skip-permissions"]


class ClaudeCodeBackend(CommandBackend):
    """Backend that executes sessions via the Claude Code CLI."""

    def __init__(
        self,
        command: str = "claude",
        args: list[str] | None = None,
        env: dict[str, str] | None = None,
        termination_grace_seconds: float = 5.0,
    ) -> None:
        super().__init__(
            command=command,
            args=list(DEFAULT_ARGS) if args is None else args,
            env=env,
            termination_grace_seconds=termination_grace_seconds,
        )

    @property
    def name(self) -> str:
        return "claude_code"

    @classmethod
    def from_config(
        cls, config: AgentBackendConfig, termination_grace_seconds: float = 5.0
    ) -> ClaudeCodeBackend:
        return cls(
            command=config.command,
            args=config.args,
            env=config.env,
            termination_grace_seconds=termination_grace_seconds,
        )
