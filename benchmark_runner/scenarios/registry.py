"""Scenario registry: the static list of configuration profiles under benchmark.

The registry is a YAML (or JSON) document::

    scenarios:
      - id: tdd-strict
        name: TDD Strict
        config_document: CLAUDE_TDD.md
        description: Red-green-refactor enforced
    settings:
      parallel_execution: false
      timeout_minutes: 30
      cleanup_after_run: false

``config_document`` may also be spelled ``claude_file``/``claudeFile``; a
scenario may instead name a ``config_folder`` (``claudeFolder``) that is
overlaid onto the sample wholesale.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError as SchemaValidationError
from jsonschema import validate

from ..config import snake_keys
from ..errors import ConfigError

logger = logging.getLogger(__name__)

_SCENARIO_ID_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_.-]*$"

REGISTRY_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["scenarios"],
    "properties": {
        "scenarios": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id"],
                "properties": {
                    "id": {"type": "string", "pattern": _SCENARIO_ID_PATTERN},
                    "name": {"type": "string"},
                    "description": {"type": "string"},
                    "config_document": {"type": "string", "minLength": 1},
                    "claude_file": {"type": "string", "minLength": 1},
                    "config_folder": {"type": "string", "minLength": 1},
                    "claude_folder": {"type": "string", "minLength": 1},
                    "prompt_file": {"type": "string", "minLength": 1},
                },
            },
        },
        "settings": {"type": "object"},
    },
}


@dataclass(frozen=True)
class Scenario:
    """A named configuration profile under benchmark comparison."""

    id: str
    name: str
    config_document: str | None = None  # relative to the configs directory
    description: str = ""
    config_folder: str | None = None  # overlaid as a tree instead of a document
    prompt_file: str | None = None  # custom prompt, relative to the sample dir

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Scenario:
        document = data.get("config_document") or data.get("claude_file")
        folder = data.get("config_folder") or data.get("claude_folder")
        return cls(
            id=data["id"],
            name=data.get("name") or data["id"],
            config_document=document,
            description=data.get("description", ""),
            config_folder=folder,
            prompt_file=data.get("prompt_file"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "config_document": self.config_document,
            "description": self.description,
            "config_folder": self.config_folder,
            "prompt_file": self.prompt_file,
        }


@dataclass(frozen=True)
class RegistryDocument:
    """Parsed registry: ordered scenarios plus the raw settings layer."""

    path: Path
    scenarios: list[Scenario]
    settings: dict[str, Any]


def _read_document(path: Path) -> dict[str, Any]:
    if not path.is_file():
        raise ConfigError(f"Scenario registry not found: {path}")
    try:
        with open(path, encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except yaml.YAMLError as e:
        raise ConfigError(f"Scenario registry {path} is not valid YAML/JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Scenario registry {path} must contain a mapping")
    return snake_keys(data)


def load_registry(path: str | Path) -> RegistryDocument:
    """Load and validate the registry document.

    Raises:
        ConfigError: on a missing or unparsable file, a schema violation,
            or a duplicated scenario id.
    """
    path = Path(path)
    data = _read_document(path)

    try:
        validate(instance=data, schema=REGISTRY_SCHEMA)
    except SchemaValidationError as e:
        where = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigError(f"Invalid scenario registry {path} at {where}: {e.message}") from e

    scenarios: list[Scenario] = []
    seen: set[str] = set()
    for entry in data["scenarios"]:
        scenario = Scenario.from_dict(entry)
        if scenario.id in seen:
            raise ConfigError(f"Duplicate scenario id '{scenario.id}' in {path}")
        seen.add(scenario.id)
        scenarios.append(scenario)

    logger.debug("Loaded %d scenarios from %s", len(scenarios), path)
    return RegistryDocument(
        path=path,
        scenarios=scenarios,
        settings=dict(data.get("settings") or {}),
    )


def load(path: str | Path) -> list[Scenario]:
    """Load the ordered list of scenarios from *path*."""
    return load_registry(path).scenarios


class ScenarioRegistry:
    """Lookup over a loaded, ordered list of scenarios."""

    def __init__(self, scenarios: list[Scenario]) -> None:
        self._scenarios = list(scenarios)
        self._by_id = {s.id: s for s in self._scenarios}

    @classmethod
    def from_file(cls, path: str | Path) -> ScenarioRegistry:
        return cls(load(path))

    def get(self, scenario_id: str) -> Scenario | None:
        return self._by_id.get(scenario_id)

    def require(self, scenario_id: str) -> Scenario:
        scenario = self._by_id.get(scenario_id)
        if scenario is None:
            known = ", ".join(self._by_id) or "none"
            raise ConfigError(f"Scenario '{scenario_id}' not found (known: {known})")
        return scenario

    def list_scenarios(self) -> list[Scenario]:
        return list(self._scenarios)

    def ids(self) -> list[str]:
        return [s.id for s in self._scenarios]

    def __len__(self) -> int:
        return len(self._scenarios)

    def __iter__(self):
        return iter(self._scenarios)
