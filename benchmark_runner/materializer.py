"""Sample materializer: builds one working copy of the template per scenario.

Each sample is the template project plus the scenario's configuration
document overlaid at ``CLAUDE.md``. Optionally dependencies are installed and
a git baseline is committed so session changes can be diffed afterwards.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from . import git
from .config import BenchmarkSettings
from .errors import ConfigError, MaterializeError
from .scenarios.registry import Scenario

logger = logging.getLogger(__name__)

# Where the scenario's configuration document lands inside a sample.
CONFIG_OVERLAY_NAME = "CLAUDE.md"

_IGNORED_TEMPLATE_ENTRIES = shutil.ignore_patterns("node_modules", ".git")


@dataclass(frozen=True)
class SampleDirectory:
    """A scenario's materialized working copy."""

    scenario_id: str
    path: Path

    @property
    def config_document(self) -> Path:
        return self.path / CONFIG_OVERLAY_NAME


def _clear(path: Path) -> None:
    if not path.exists() and not path.is_symlink():
        return
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
    except OSError as e:
        raise MaterializeError(f"Cannot clear existing sample {path}: {e}") from e


def _overlay_config(scenario: Scenario, dest: Path, configs_root: Path) -> None:
    if scenario.config_folder:
        source = configs_root / scenario.config_folder
        if not source.is_dir():
            raise ConfigError(
                f"Config folder for scenario '{scenario.id}' not found: {source}"
            )
        try:
            shutil.copytree(source, dest, dirs_exist_ok=True)
        except OSError as e:
            raise MaterializeError(f"Failed to overlay {source} onto {dest}: {e}") from e
        logger.info("Overlaid config folder %s onto %s", scenario.config_folder, dest)
        return

    if not scenario.config_document:
        logger.warning("Scenario '%s' has no configuration document", scenario.id)
        return

    source = configs_root / scenario.config_document
    if not source.is_file():
        raise ConfigError(
            f"Configuration document for scenario '{scenario.id}' not found: {source}"
        )
    try:
        shutil.copyfile(source, dest / CONFIG_OVERLAY_NAME)
    except OSError as e:
        raise MaterializeError(f"Failed to copy {source}: {e}") from e
    logger.info("Copied %s to %s", scenario.config_document, CONFIG_OVERLAY_NAME)


def _install_dependencies(command: list[str], dest: Path, scenario_id: str) -> bool:
    logger.info("Installing dependencies for %s: %s", scenario_id, " ".join(command))
    try:
        subprocess.run(command, cwd=str(dest), capture_output=True, check=True)
    except (OSError, subprocess.CalledProcessError) as e:
        logger.warning("Failed to install dependencies for %s: %s", scenario_id, e)
        return False
    return True


def _init_git(dest: Path, scenario_id: str) -> bool:
    try:
        git.init_baseline(dest)
    except (OSError, subprocess.CalledProcessError) as e:
        logger.warning("Failed to initialize git for %s: %s", scenario_id, e)
        return False
    logger.debug("Git baseline committed for %s", scenario_id)
    return True


def materialize(
    scenario: Scenario,
    template_root: str | Path,
    dest_root: str | Path,
    configs_root: str | Path,
    settings: BenchmarkSettings | None = None,
) -> Path:
    """Create ``dest_root/<scenario.id>`` from the template and overlay config.

    Returns:
        Path to the new sample directory.

    Raises:
        MaterializeError: destination cannot be cleared or the copy fails.
        ConfigError: template or configuration document is missing.
    """
    settings = settings or BenchmarkSettings(init_git=False)
    template_root = Path(template_root)
    configs_root = Path(configs_root)
    dest = Path(dest_root) / scenario.id

    if not template_root.is_dir():
        raise ConfigError(f"Template directory not found: {template_root}")

    _clear(dest)
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copytree(template_root, dest, ignore=_IGNORED_TEMPLATE_ENTRIES)
    except OSError as e:
        raise MaterializeError(f"Failed to copy template to {dest}: {e}") from e

    _overlay_config(scenario, dest, configs_root)

    if settings.install_command:
        _install_dependencies(settings.install_command, dest, scenario.id)
    if settings.init_git:
        _init_git(dest, scenario.id)

    return dest


def materialize_all(
    scenarios: list[Scenario],
    template_root: str | Path,
    dest_root: str | Path,
    configs_root: str | Path,
    settings: BenchmarkSettings | None = None,
) -> list[SampleDirectory]:
    """Materialize one sample per scenario, in registry order."""
    samples: list[SampleDirectory] = []
    for scenario in scenarios:
        logger.info("Creating sample for scenario: %s", scenario.name)
        path = materialize(scenario, template_root, dest_root, configs_root, settings)
        samples.append(SampleDirectory(scenario_id=scenario.id, path=path))
    return samples


def clean(dest_root: str | Path) -> bool:
    """Remove every sample. Returns False when there was nothing to remove."""
    dest_root = Path(dest_root)
    if not dest_root.exists():
        return False
    _clear(dest_root)
    return True


def list_samples(dest_root: str | Path) -> list[SampleDirectory]:
    dest_root = Path(dest_root)
    if not dest_root.is_dir():
        return []
    return [
        SampleDirectory(scenario_id=p.name, path=p)
        for p in sorted(dest_root.iterdir())
        if p.is_dir()
    ]
