"""Configuration loading utilities."""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any, Mapping

from loguru import logger
from pydantic import ValidationError

from o365mail.config.schema import Config
from o365mail.utils.helpers import ensure_dir, get_data_path

CONFIG_FILENAME = "config.json"
ENV_PREFIX = "O365_"


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return get_data_path() / CONFIG_FILENAME


def get_data_dir() -> Path:
    """Get the data directory, creating it if needed."""
    return ensure_dir(get_data_path())


def _env_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for name in Config.model_fields:
        value = env.get(ENV_PREFIX + name.upper())
        if value not in (None, ""):
            overrides[name] = value
    return overrides


def load_config(
    config_path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> Config:
    """
    Load configuration from file and environment.

    Values from ``O365_<FIELD>`` environment variables win over the file.
    An unreadable or invalid file falls back to defaults with a warning.
    """
    path = config_path or get_config_path()
    env = os.environ if env is None else env

    data: dict[str, Any] = {}
    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = convert_keys(json.load(f))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            logger.warning("Using default configuration.")
            data = {}

    data.update(_env_overrides(env))
    try:
        return Config.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Invalid configuration in {path}: {e}")
        logger.warning("Using default configuration.")
        return Config.model_validate(_env_overrides(env))


def save_config(config: Config, config_path: Path | None = None) -> None:
    """Save configuration to file."""
    path = config_path or get_config_path()
    ensure_dir(path.parent)

    data = convert_to_camel(config.model_dump())
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
    os.chmod(path, 0o600)


def set_value(config: Config, key: str, value: str) -> Config:
    """Return a copy of the config with one field changed and validated."""
    name = camel_to_snake(key.replace("-", "_"))
    if name not in Config.model_fields:
        raise ValueError(f"Unknown config key: {key}")
    data = config.model_dump()
    data[name] = value
    return Config.model_validate(data)


def get_value(config: Config, key: str) -> Any:
    name = camel_to_snake(key.replace("-", "_"))
    if name not in Config.model_fields:
        raise ValueError(f"Unknown config key: {key}")
    return getattr(config, name)


def convert_keys(data: Any) -> Any:
    """Convert camelCase keys to snake_case for Pydantic."""
    if isinstance(data, dict):
        return {camel_to_snake(k): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """Convert snake_case keys to camelCase."""
    if isinstance(data, dict):
        return {snake_to_camel(k): convert_to_camel(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def snake_to_camel(name: str) -> str:
    """Convert snake_case to camelCase."""
    components = name.split("_")
    return components[0] + "".join(x.title() for x in components[1:])
