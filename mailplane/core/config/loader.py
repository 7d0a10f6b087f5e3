"""
Configuration loader — reads mailplane.yml into a Settings model.

Discovery order:
    explicit path  >  MAILPLANE_CONFIG env var  >  /etc/mailplane/mailplane.yml

A missing default file means "use defaults". A missing file that was
asked for explicitly is an error.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from mailplane.core.config.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("/etc/mailplane/mailplane.yml")
CONFIG_ENV_VAR = "MAILPLANE_CONFIG"


class ConfigError(Exception):
    """Raised when configuration is invalid or missing."""


def find_config_file(explicit: Path | None = None) -> tuple[Path | None, bool]:
    """Resolve the config path to load.

    Returns:
        (path, required). ``required`` is True when the path came from
        the caller or the environment and must therefore exist.
    """
    if explicit is not None:
        return explicit, True

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path), True

    if DEFAULT_CONFIG_PATH.is_file():
        return DEFAULT_CONFIG_PATH, False
    return None, False


def load_settings(path: Path | None = None) -> Settings:
    """Load and validate settings.

    Args:
        path: Explicit path to mailplane.yml.

    Returns:
        Validated Settings model.

    Raises:
        ConfigError: If the file is missing (when required) or invalid.
    """
    path, required = find_config_file(path)

    if path is None:
        logger.debug("No config file found, using defaults")
        return Settings()

    if not path.is_file():
        if required:
            raise ConfigError(f"Config file not found: {path}")
        return Settings()

    logger.debug("Loading settings from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The file may nest everything under a "mailplane" key or be flat
    if "mailplane" in data and isinstance(data["mailplane"], dict):
        data = data["mailplane"]

    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    logger.info("Loaded settings from %s", path)
    return settings
