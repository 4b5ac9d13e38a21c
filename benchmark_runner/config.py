"""Benchmark configuration: typed settings, agent backend config, and paths.

Settings are resolved from ordered layers, lowest precedence first:

1. built-in defaults (``BenchmarkSettings()``)
2. the ``settings`` block of the scenario registry document
3. an optional ``benchmark.local.yaml`` next to the registry
4. environment variables (see ``ENV_SETTINGS``)
5. CLI overrides

Each layer is a plain dict; ``resolve_settings`` deep-merges them in order,
interpolates ``${VAR}`` / ``${VAR:-default}`` in string leaves, and builds a
validated ``BenchmarkSettings``.
"""

from __future__ import annotations

import logging
import os
import re
import shlex
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

LOCAL_OVERRIDE_NAME = "benchmark.local.yaml"

# Environment variable -> dotted settings path.
ENV_SETTINGS: dict[str, str] = {
    "BENCHMARK_PARALLEL": "parallel_execution",
    "BENCHMARK_MAX_PARALLEL_SESSIONS": "max_parallel_sessions",
    "BENCHMARK_TIMEOUT_MINUTES": "timeout_minutes",
    "BENCHMARK_CLEANUP_AFTER_RUN": "cleanup_after_run",
    "BENCHMARK_SESSION_DELAY_SECONDS": "session_delay_seconds",
    "BENCHMARK_AGENT_COMMAND": "agent.command",
}

_INTERPOLATION_RE = re.compile(
    r"(?<!\$)\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-(.*?))?\}"
)
_CAMEL_KEY_RE = re.compile(r"[a-z][a-zA-Z0-9]*")
_CAMEL_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off", ""}


# ---------------------------------------------------------------------------
# Merge helpers
# ---------------------------------------------------------------------------

def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *override* into a copy of *base*.

    - Dict values are merged recursively (override keys win).
    - Scalars and lists in *override* replace *base* values entirely.
    """
    merged: dict[str, Any] = dict(base)
    for key, value in override.items():
        if (
            key in merged
            and isinstance(merged[key], dict)
            and isinstance(value, dict)
        ):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _snake(key: str) -> str:
    if _CAMEL_KEY_RE.fullmatch(key) and not key.islower():
        return _CAMEL_RE.sub("_", key).lower()
    return key


def snake_keys(data: Any) -> Any:
    """Convert camelCase mapping keys to snake_case, recursively.

    Lets registry documents written in the JSON style (``timeoutMinutes``,
    ``claudeFile``) load unchanged. Keys under ``env`` are left alone.
    """
    if isinstance(data, dict):
        return {
            _snake(str(k)): (v if k == "env" else snake_keys(v))
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [snake_keys(item) for item in data]
    return data


def interpolate(value: str, environ: Mapping[str, str] | None = None) -> str:
    """Resolve ``${VAR}`` and ``${VAR:-default}`` in *value*.

    ``$${VAR}`` yields the literal ``${VAR}``. Unresolvable references
    without a default are left as-is.
    """
    env = os.environ if environ is None else environ

    def _replace(match: re.Match[str]) -> str:
        resolved = env.get(match.group(1))
        if resolved is not None:
            return resolved
        if match.group(2) is not None:
            return match.group(2)
        return match.group(0)

    return _INTERPOLATION_RE.sub(_replace, value).replace("$${", "${")


def _interpolate_tree(data: Any, environ: Mapping[str, str] | None) -> Any:
    if isinstance(data, str):
        return interpolate(data, environ)
    if isinstance(data, dict):
        return {k: _interpolate_tree(v, environ) for k, v in data.items()}
    if isinstance(data, list):
        return [_interpolate_tree(item, environ) for item in data]
    return data


def _set_dotted(target: dict[str, Any], dotted: str, value: Any) -> None:
    parts = dotted.split(".")
    node = target
    for part in parts[:-1]:
        node = node.setdefault(part, {})
    node[parts[-1]] = value


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------

def _as_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ConfigError(f"Setting '{name}' must be a boolean, got {value!r}")


def _as_number(value: Any, name: str, kind: type = float) -> Any:
    if isinstance(value, bool):
        raise ConfigError(f"Setting '{name}' must be a number, got {value!r}")
    try:
        return kind(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Setting '{name}' must be a number, got {value!r}") from e


def _as_command(value: Any, name: str) -> list[str]:
    """Accept either a shell-style string or an argv list."""
    if isinstance(value, str):
        return shlex.split(value)
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    raise ConfigError(f"Setting '{name}' must be a string or list of strings")


# ---------------------------------------------------------------------------
# Typed configuration
# ---------------------------------------------------------------------------

@dataclass
class AgentBackendConfig:
    """Configuration for the agent process started per session."""

    name: str = "claude_code"  # backend kind: "claude_code" or "command"
    command: str = "claude"
    args: list[str] = field(
        default_factory=lambda: ["--print", "--dangerously-skip-permissions"]
    )
    env: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AgentBackendConfig:
        default = cls()
        args = data.get("args", default.args)
        if not isinstance(args, list):
            raise ConfigError("agent.args must be a list")
        env = data.get("env", {})
        if not isinstance(env, dict):
            raise ConfigError("agent.env must be a mapping")
        return cls(
            name=str(data.get("name", default.name)),
            command=str(data.get("command", default.command)),
            args=[str(a) for a in args],
            env={str(k): str(v) for k, v in env.items()},
        )


@dataclass
class BenchmarkSettings:
    """Global settings for a benchmark run."""

    parallel_execution: bool = False
    max_parallel_sessions: int = 2
    timeout_minutes: float = 30.0
    cleanup_after_run: bool = False
    session_delay_seconds: float = 5.0
    termination_grace_seconds: float = 5.0

    # Sample setup
    install_command: list[str] | None = None
    init_git: bool = True

    # Session
    completion_markers: list[str] = field(
        default_factory=lambda: ["Task completed", "✓", "Generated with"]
    )
    agent: AgentBackendConfig = field(default_factory=AgentBackendConfig)

    # Validation
    component_paths: list[str] = field(
        default_factory=lambda: [
            "src/TodoList.js",
            "src/Todo.js",
            "src/components/TodoList.js",
            "src/components/Todo.js",
        ]
    )
    tests_dir: str = "tests"
    test_name_keyword: str = "todo"
    source_extensions: list[str] = field(default_factory=lambda: [".js", ".jsx"])
    lint_commands: list[str] = field(
        default_factory=lambda: ["npm run lint", "npx eslint .", "yarn lint"]
    )
    test_command: str = "npm test"
    check_timeout_seconds: float = 300.0

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_minutes * 60

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BenchmarkSettings:
        data = snake_keys(data)
        default = cls()

        install = data.get("install_command")
        settings = cls(
            parallel_execution=_as_bool(
                data.get("parallel_execution", default.parallel_execution),
                "parallel_execution",
            ),
            max_parallel_sessions=_as_number(
                data.get("max_parallel_sessions", default.max_parallel_sessions),
                "max_parallel_sessions",
                int,
            ),
            timeout_minutes=_as_number(
                data.get("timeout_minutes", default.timeout_minutes), "timeout_minutes"
            ),
            cleanup_after_run=_as_bool(
                data.get("cleanup_after_run", default.cleanup_after_run),
                "cleanup_after_run",
            ),
            session_delay_seconds=_as_number(
                data.get("session_delay_seconds", default.session_delay_seconds),
                "session_delay_seconds",
            ),
            termination_grace_seconds=_as_number(
                data.get(
                    "termination_grace_seconds", default.termination_grace_seconds
                ),
                "termination_grace_seconds",
            ),
            install_command=(
                _as_command(install, "install_command") if install else None
            ),
            init_git=_as_bool(data.get("init_git", default.init_git), "init_git"),
            completion_markers=list(
                data.get("completion_markers", default.completion_markers)
            ),
            agent=AgentBackendConfig.from_dict(data.get("agent") or {}),
            component_paths=list(data.get("component_paths", default.component_paths)),
            tests_dir=str(data.get("tests_dir", default.tests_dir)),
            test_name_keyword=str(
                data.get("test_name_keyword", default.test_name_keyword)
            ),
            source_extensions=list(
                data.get("source_extensions", default.source_extensions)
            ),
            lint_commands=list(data.get("lint_commands", default.lint_commands)),
            test_command=str(data.get("test_command", default.test_command)),
            check_timeout_seconds=_as_number(
                data.get("check_timeout_seconds", default.check_timeout_seconds),
                "check_timeout_seconds",
            ),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        if self.timeout_minutes <= 0:
            raise ConfigError("timeout_minutes must be positive")
        if self.max_parallel_sessions < 1:
            raise ConfigError("max_parallel_sessions must be at least 1")
        if self.session_delay_seconds < 0:
            raise ConfigError("session_delay_seconds must not be negative")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Layers
# ---------------------------------------------------------------------------

def load_local_overrides(path: Path) -> dict[str, Any]:
    """Load the optional local override file; missing file -> empty layer."""
    if not path.is_file():
        return {}
    try:
        with open(path, encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping")
    logger.debug("Loaded local overrides from %s", path)
    return snake_keys(data.get("settings", data))


def env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Build a settings layer from ``ENV_SETTINGS`` variables that are set."""
    env = os.environ if environ is None else environ
    layer: dict[str, Any] = {}
    for var, dotted in ENV_SETTINGS.items():
        if var in env:
            _set_dotted(layer, dotted, env[var])
            logger.debug("env -> %s=%s", dotted, env[var])
    return layer


def resolve_settings(
    *layers: dict[str, Any],
    environ: Mapping[str, str] | None = None,
) -> BenchmarkSettings:
    """Merge *layers* in order (later wins) on top of the defaults."""
    merged: dict[str, Any] = BenchmarkSettings().to_dict()
    for layer in layers:
        if layer:
            merged = deep_merge(merged, snake_keys(layer))
    return BenchmarkSettings.from_dict(_interpolate_tree(merged, environ))


@dataclass
class BenchmarkPaths:
    """Filesystem layout of a benchmark workspace."""

    root: Path
    registry: Path
    prompt: Path
    template_dir: Path
    configs_dir: Path
    samples_dir: Path
    results_dir: Path

    @classmethod
    def from_root(
        cls, root: str | Path, registry: str | Path | None = None
    ) -> BenchmarkPaths:
        root = Path(root).resolve()
        return cls(
            root=root,
            registry=Path(registry) if registry else root / "config" / "scenarios.yaml",
            prompt=root / "config" / "prompt.md",
            template_dir=root / "templates" / "react-app",
            configs_dir=root / "claude-configs",
            samples_dir=root / "samples",
            results_dir=root / "results",
        )

    @property
    def local_overrides(self) -> Path:
        return self.registry.parent / LOCAL_OVERRIDE_NAME
