"""Runtime settings for rbox."""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

__all__ = ["RboxSettings", "SettingsError", "load_settings"]

logger = logging.getLogger(__name__)


class SettingsError(ValueError):
    """Settings file is unreadable or fails validation."""


class RboxSettings(BaseSettings):
    """Environment-driven settings for the script runtime."""

    verbose: bool = False
    # Bytes per LBA sector when translating partition records to mount offsets.
    sector_size: int = Field(default=512, gt=0)
    # Extra directories searched for user modules, after the in-tree library.
    library_path: list[Path] = []
    max_source_bytes: int = Field(default=1 << 20, gt=0)

    model_config = {"env_prefix": "RBOX_", "extra": "ignore"}


def load_settings(path: Path | str | None = None) -> RboxSettings:
    """Build settings from an optional YAML file, with ``RBOX_*`` env vars on top.

    Raises
    ------
    SettingsError
        If the file is not a YAML mapping or its values fail validation.
    """
    if path is None:
        return RboxSettings()

    path = Path(path)
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        msg = f"Expected YAML mapping at top level of {path}, got {type(data).__name__}"
        raise SettingsError(msg)

    try:
        from_env = RboxSettings().model_dump(exclude_unset=True)
        settings = RboxSettings(**{**data, **from_env})
    except ValidationError as exc:
        msg = f"{path}: settings validation failed: {exc}"
        raise SettingsError(msg) from exc

    logger.debug("Loaded settings from %s", path)
    return settings
