"""Tests for the scenario registry."""

from pathlib import Path

import pytest

from benchmark_runner.config import resolve_settings
from benchmark_runner.errors import ConfigError
from benchmark_runner.scenarios import Scenario, ScenarioRegistry, load, load_registry


def _write(tmp_path, text):
    path = tmp_path / "scenarios.yaml"
    path.write_text(text)
    return path


class TestLoad:
    def test_ordered_scenarios(self, workspace):
        scenarios = load(workspace.registry)
        assert [s.id for s in scenarios] == ["minimal", "tdd-strict"]
        assert scenarios[0].config_document == "CLAUDE_EMPTY.md"
        assert scenarios[1].description == "Tests first"

    def test_settings_block_returned(self, workspace):
        document = load_registry(workspace.registry)
        assert document.settings["session_delay_seconds"] == 0

    def test_camel_case_document(self, tmp_path):
        path = _write(tmp_path, (
            "scenarios:\n"
            "  - id: tdd\n"
            "    claudeFile: CLAUDE_TDD.md\n"
            "  - id: folder\n"
            "    claudeFolder: tdd-folder\n"
            "settings:\n"
            "  timeoutMinutes: 15\n"
        ))
        document = load_registry(path)
        assert document.scenarios[0].config_document == "CLAUDE_TDD.md"
        assert document.scenarios[1].config_folder == "tdd-folder"
        assert document.settings == {"timeout_minutes": 15}

    def test_json_document(self, tmp_path):
        path = tmp_path / "scenarios.json"
        path.write_text('{"scenarios": [{"id": "a", "name": "A"}]}')
        assert load(path) == [Scenario(id="a", name="A")]

    def test_name_defaults_to_id(self, tmp_path):
        path = _write(tmp_path, "scenarios:\n  - id: plain\n")
        assert load(path)[0].name == "plain"

    def test_duplicate_id_rejected(self, tmp_path):
        path = _write(tmp_path, "scenarios:\n  - id: a\n  - id: a\n")
        with pytest.raises(ConfigError, match="Duplicate scenario id 'a'"):
            load(path)

    def test_invalid_yaml_rejected(self, tmp_path):
        path = _write(tmp_path, "scenarios: [\n  - id: a\n")
        with pytest.raises(ConfigError):
            load(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load(tmp_path / "nope.yaml")

    def test_non_mapping_rejected(self, tmp_path):
        path = _write(tmp_path, "- id: a\n")
        with pytest.raises(ConfigError):
            load(path)

    @pytest.mark.parametrize(
        "text",
        [
            "settings: {}\n",
            "scenarios:\n  - name: no id\n",
            "scenarios:\n  - id: ../escape\n",
            "scenarios:\n  - id: a\n    config_document: ''\n",
        ],
    )
    def test_schema_violations(self, tmp_path, text):
        with pytest.raises(ConfigError, match="Invalid scenario registry"):
            load(_write(tmp_path, text))


class TestScenarioRegistry:
    def test_lookup(self, scenarios):
        registry = ScenarioRegistry(scenarios)
        assert len(registry) == 2
        assert registry.ids() == ["minimal", "tdd-strict"]
        assert registry.get("minimal").name == "Minimal"
        assert registry.get("missing") is None
        assert [s.id for s in registry] == ["minimal", "tdd-strict"]

    def test_require_unknown(self, scenarios):
        with pytest.raises(ConfigError, match="not found"):
            ScenarioRegistry(scenarios).require("missing")

    def test_round_trip_dict(self):
        scenario = Scenario(id="x", name="X", config_folder="folder", prompt_file="p.md")
        assert Scenario.from_dict(scenario.to_dict()) == scenario

    def test_from_file(self, workspace):
        registry = ScenarioRegistry.from_file(workspace.registry)
        assert registry.require("tdd-strict").config_document == "CLAUDE_TDD.md"


class TestShippedRegistry:
    REGISTRY = Path(__file__).resolve().parents[1] / "config" / "scenarios.yaml"

    def test_scenarios(self):
        document = load_registry(self.REGISTRY)
        assert [s.id for s in document.scenarios] == [
            "minimal", "tdd-strict", "no-tdd", "strict-standards",
        ]

    def test_samples_get_dependencies_installed(self):
        settings = resolve_settings(load_registry(self.REGISTRY).settings, environ={})
        assert settings.install_command == ["npm", "install"]
