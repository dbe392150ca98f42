"""Engine settings from ``.archrules/config.yml``."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import yaml

from archrules.engine.rules import DEFAULT_EXEMPTION_MARKER
from archrules.engine.scope import DEFAULT_TEST_MARKERS

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

CONFIG_DIR = ".archrules"
CONFIG_FILE = "config.yml"


@dataclass(frozen=True)
class EngineSettings:
    """Run-wide defaults.  Every field has a usable default."""

    max_workers: int = 1
    test_markers: tuple[str, ...] = DEFAULT_TEST_MARKERS
    exemption_marker: str = DEFAULT_EXEMPTION_MARKER
    require_non_empty: bool = False  # default for rules that omit it


def _parse_engine_section(section: dict[str, Any]) -> EngineSettings:
    defaults = EngineSettings()
    kwargs: dict[str, Any] = {}

    workers = section.get("max_workers")
    if workers is not None:
        if isinstance(workers, int) and not isinstance(workers, bool) and workers >= 1:
            kwargs["max_workers"] = workers
        else:
            logger.warning("config.yml: ignoring invalid engine.max_workers %r", workers)

    markers = section.get("test_markers")
    if markers is not None:
        if isinstance(markers, list) and all(isinstance(m, str) for m in markers):
            kwargs["test_markers"] = tuple(markers)
        else:
            logger.warning("config.yml: ignoring invalid engine.test_markers %r", markers)

    marker = section.get("exemption_marker")
    if marker is not None:
        if isinstance(marker, str) and marker.strip():
            kwargs["exemption_marker"] = marker
        else:
            logger.warning("config.yml: ignoring invalid engine.exemption_marker %r", marker)

    require = section.get("require_non_empty")
    if require is not None:
        if isinstance(require, bool):
            kwargs["require_non_empty"] = require
        else:
            logger.warning("config.yml: ignoring invalid engine.require_non_empty %r", require)

    return EngineSettings(
        max_workers=kwargs.get("max_workers", defaults.max_workers),
        test_markers=kwargs.get("test_markers", defaults.test_markers),
        exemption_marker=kwargs.get("exemption_marker", defaults.exemption_marker),
        require_non_empty=kwargs.get("require_non_empty", defaults.require_non_empty),
    )


def load_settings(project_root: Path) -> EngineSettings:
    """Load engine settings from ``config.yml`` ``engine`` section.

    Falls back to defaults for missing keys or a missing file.
    """
    config_path = project_root / CONFIG_DIR / CONFIG_FILE
    if not config_path.is_file():
        return EngineSettings()

    try:
        with config_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError):
        logger.warning("Failed to read config.yml, using default settings")
        return EngineSettings()

    if not isinstance(data, dict):
        return EngineSettings()

    section = data.get("engine")
    if not isinstance(section, dict):
        return EngineSettings()

    return _parse_engine_section(section)
