"""Scenario registry loading and lookup."""

from .registry import RegistryDocument, Scenario, ScenarioRegistry, load, load_registry

__all__ = [
    "RegistryDocument",
    "Scenario",
    "ScenarioRegistry",
    "load",
    "load_registry",
]
