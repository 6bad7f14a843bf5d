"""Runtime configuration.

Settings come from three layers, later layers winning:

1. built-in defaults on ``Settings``
2. a YAML file (``--config``, ``$FFHUMAN_CONFIG`` or ``./ffhuman.yaml``)
3. ``FFHUMAN_*`` environment variables

Example ``ffhuman.yaml``::

    workers: 4
    log_level: INFO
    watch:
      poll_interval: 2.0
      settle_time: 1.0
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional

import pydantic
import yaml
from pydantic import BaseModel, Field

from .errors import ValidationError

logger = logging.getLogger("ffhuman")

DEFAULT_CONFIG_NAME = "ffhuman.yaml"

MEDIA_EXTENSIONS = [
    # Video
    ".mp4", ".avi", ".mov", ".mkv", ".webm", ".flv", ".wmv", ".mpg", ".mpeg", ".m4v",
    # Audio
    ".mp3", ".wav", ".aac", ".flac", ".ogg", ".m4a", ".wma",
]


class WatchSettings(BaseModel):
    """Folder-watch tuning."""
    poll_interval: float = Field(default=1.0, gt=0)
    settle_time: float = Field(default=0.5, ge=0)
    extensions: list[str] = Field(default_factory=lambda: list(MEDIA_EXTENSIONS))


class Settings(BaseModel):
    """Engine-wide settings."""
    ffmpeg_path: Optional[str] = None
    ffprobe_path: Optional[str] = None
    workers: int = Field(default=2, ge=1, le=64)
    log_level: str = "WARNING"
    temp_dir: Optional[str] = None
    watch: WatchSettings = Field(default_factory=WatchSettings)


# Environment variable → dotted settings key.
_ENV_KEYS: dict[str, str] = {
    "FFHUMAN_FFMPEG": "ffmpeg_path",
    "FFHUMAN_FFPROBE": "ffprobe_path",
    "FFHUMAN_WORKERS": "workers",
    "FFHUMAN_LOG_LEVEL": "log_level",
    "FFHUMAN_TEMP_DIR": "temp_dir",
    "FFHUMAN_WATCH_POLL_INTERVAL": "watch.poll_interval",
    "FFHUMAN_WATCH_SETTLE_TIME": "watch.settle_time",
}


def _find_config_file(explicit: Optional[str | Path], env: Mapping[str, str]) -> Optional[Path]:
    if explicit:
        path = Path(explicit)
        if not path.is_file():
            raise ValidationError("config", "file not found", str(path))
        return path
    if env.get("FFHUMAN_CONFIG"):
        path = Path(env["FFHUMAN_CONFIG"])
        if not path.is_file():
            raise ValidationError("FFHUMAN_CONFIG", "file not found", str(path))
        return path
    local = Path.cwd() / DEFAULT_CONFIG_NAME
    return local if local.is_file() else None


def _set_dotted(data: dict[str, Any], key: str, value: Any) -> None:
    parts = key.split(".")
    node = data
    for part in parts[:-1]:
        node = node.setdefault(part, {})
    node[parts[-1]] = value


def load_settings(
    config_path: Optional[str | Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build ``Settings`` from file and environment.

    Raises:
        ValidationError: unreadable file, non-mapping YAML, or values that
            fail the ``Settings`` schema.
    """
    env = os.environ if env is None else env
    data: dict[str, Any] = {}

    path = _find_config_file(config_path, env)
    if path is not None:
        try:
            with open(path, "r", encoding="utf-8") as fh:
                loaded = yaml.safe_load(fh)
        except (OSError, yaml.YAMLError) as exc:
            raise ValidationError("config", f"cannot read {path}: {exc}") from exc
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ValidationError("config", "top level must be a mapping", str(path))
        data.update(loaded)
        logger.debug("Loaded config from %s", path)

    for env_name, key in _ENV_KEYS.items():
        if env.get(env_name):
            _set_dotted(data, key, env[env_name])

    try:
        return Settings.model_validate(data)
    except pydantic.ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or "config"
        raise ValidationError(field, first.get("msg", "invalid value")) from exc
