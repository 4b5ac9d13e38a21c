"""Agent backend adapters for benchmark sessions.

Provides a protocol for starting an agent process against a sample
directory and collecting a standardized result.
"""

from ..config import AgentBackendConfig
from ..errors import ConfigError
from .base import EXIT_SPAWN_FAILED, EXIT_TIMED_OUT, AgentBackend, BackendResult
from .claude_code import ClaudeCodeBackend
from .command import CommandBackend

BACKENDS: dict[str, type[CommandBackend]] = {
    "claude_code": ClaudeCodeBackend,
    "command": CommandBackend,
}


def create_backend(
    config: AgentBackendConfig, termination_grace_seconds: float = 5.0
) -> AgentBackend:
    """Instantiate the backend named by ``config.name``."""
    backend_cls = BACKENDS.get(config.name)
    if backend_cls is None:
        raise ConfigError(
            f"Unknown agent backend '{config.name}' (expected one of: "
            f"{', '.join(sorted(BACKENDS))})"
        )
    return backend_cls.from_config(config, termination_grace_seconds)


__all__ = [
    "BACKENDS",
    "EXIT_SPAWN_FAILED",
    "EXIT_TIMED_OUT",
    "AgentBackend",
    "BackendResult",
    "ClaudeCodeBackend",
    "CommandBackend",
    "create_backend",
]
