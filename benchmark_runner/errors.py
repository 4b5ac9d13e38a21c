"""Error taxonomy for benchmark runs.

ConfigError and MaterializeError raised during setup are fatal to a run.
ProcessError is recorded per scenario in its SessionResult. ValidationError
is caught by the validator and downgraded to a failed outcome.
"""

from __future__ import annotations


class BenchmarkError(Exception):
    """Base class for all benchmark-runner errors."""


class ConfigError(BenchmarkError):
    """Missing or malformed registry, settings, or configuration document."""


class MaterializeError(BenchmarkError, OSError):
    """Filesystem failure while building a sample directory."""


class ProcessError(BenchmarkError):
    """An external process could not be spawned."""


class ValidationError(BenchmarkError):
    """A single validation check raised while evaluating a sample."""

    def __init__(self, check_name: str, cause: BaseException) -> None:
        super().__init__(f"{check_name}: {cause}")
        self.check_name = check_name
        self.cause = cause
