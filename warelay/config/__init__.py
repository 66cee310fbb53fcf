"""Configuration module for warelay."""

from warelay.config.loader import get_config_path, load_config, save_config
from warelay.config.schema import Config

__all__ = ["Config", "get_config_path", "load_config", "save_config"]
