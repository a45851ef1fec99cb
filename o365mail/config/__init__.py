"""Configuration module for o365mail."""

from o365mail.config.loader import get_config_path, load_config, save_config
from o365mail.config.schema import Config

__all__ = ["Config", "get_config_path", "load_config", "save_config"]
