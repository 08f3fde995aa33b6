"""Project settings: ``.archguard/config.yml`` with per-key defaults."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

CONFIG_RELPATH = Path(".archguard") / "config.yml"
OUTPUT_FORMATS: tuple[str, ...] = ("rich", "json", "porcelain")


@dataclass(frozen=True)
class ArchguardConfig:
    """Resolved project settings.  Paths are relative to the project root."""

    rules: Path = Path("archguard.yml")
    model: Path = Path(".archguard") / "model.json"
    format: str | None = None
    error_traits: tuple[str, ...] | None = None  # None: as named by the code model

    def rules_path(self, project_root: Path) -> Path:
        return project_root / self.rules

    def model_path(self, project_root: Path) -> Path:
        return project_root / self.model


def load_config(project_root: Path) -> ArchguardConfig:
    """Load settings from ``.archguard/config.yml`` under *project_root*.

    Falls back to defaults for missing keys, a missing file, or an
    unreadable one.
    """
    config_path = project_root / CONFIG_RELPATH
    if not config_path.is_file():
        return ArchguardConfig()

    try:
        with config_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError):
        logger.warning("Failed to read %s, using default settings", config_path)
        return ArchguardConfig()

    if not isinstance(data, dict):
        return ArchguardConfig()

    kwargs: dict[str, object] = {}

    for key in ("rules", "model"):
        value = data.get(key)
        if isinstance(value, str) and value:
            kwargs[key] = Path(value)

    fmt = data.get("format")
    if fmt is not None:
        if fmt in OUTPUT_FORMATS:
            kwargs["format"] = fmt
        else:
            logger.warning("Ignoring unknown output format '%s' in %s", fmt, config_path)

    traits = data.get("error_traits")
    if isinstance(traits, list) and traits:
        kwargs["error_traits"] = tuple(str(t) for t in traits)

    return ArchguardConfig(**kwargs)  # type: ignore[arg-type]
