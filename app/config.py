"""Loading of the bridge config file."""

from __future__ import annotations

from pathlib import Path
from typing import Union

import yaml
from pydantic import ValidationError

from app.schemas import BridgeConfig


class ConfigError(Exception):
    """Base class for config loading failures."""


class ConfigReadError(ConfigError):
    """The config file could not be read."""


class ConfigFormatError(ConfigError):
    """The config file was read but does not decode into a BridgeConfig."""


def load_config(path: Union[str, Path]) -> BridgeConfig:
    config_path = Path(path)
    try:
        raw = config_path.read_bytes()
    except OSError as exc:
        raise ConfigReadError(f"Unable to read config {str(config_path)!r}: {exc}") from exc

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ConfigFormatError(f"Config {str(config_path)!r} is not valid YAML: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigFormatError(f"Config {str(config_path)!r} must be a mapping of sections.")

    try:
        return BridgeConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigFormatError(f"Config {str(config_path)!r} is malformed: {exc}") from exc
