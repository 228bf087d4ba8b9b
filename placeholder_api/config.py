"""Engine settings.

Settings are a pydantic model so values coming from a JSON settings file
are validated before an engine is built from them. A missing file means
defaults; a malformed one is a ConfigError.
"""

import json
import logging
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from placeholder_api.exceptions import ConfigError

logger = logging.getLogger(__name__)


class EngineSettings(BaseModel):
    """Tunable engine behaviour."""

    version: int = 1
    debug_mode: bool = False  # warn on unresolved markers instead of debug-logging
    cache_capacity: int = Field(default=1024, ge=1)
    max_workers: int | None = Field(default=None, ge=1)  # None = executor default
    callback_timeout_ms: int = Field(default=2000, ge=1)
    failure_fallback: Literal["marker", "empty"] = "marker"

    @property
    def callback_timeout_seconds(self) -> float:
        return self.callback_timeout_ms / 1000.0


def load_settings(path: str | Path) -> EngineSettings:
    """Load settings from a JSON file.

    Args:
        path: Settings file location

    Returns:
        Parsed settings, or defaults if the file does not exist

    Raises:
        ConfigError: If the file is not valid JSON or fails validation
    """
    path = Path(path)
    if not path.exists():
        logger.info("[CONFIG] No settings file at %s, using defaults", path)
        return EngineSettings()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"Settings file {path} is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Settings file {path} must contain a JSON object")

    try:
        settings = EngineSettings(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {path}: {e}") from e

    logger.debug("[CONFIG] Loaded settings from %s: %s", path, settings.model_dump())
    return settings


def save_settings(settings: EngineSettings, path: str | Path) -> None:
    """Write settings to a JSON file, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(settings.model_dump(), indent=2), encoding="utf-8")
    logger.info("[CONFIG] Saved settings to %s", path)
