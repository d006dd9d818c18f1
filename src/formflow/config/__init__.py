"""Configuration exports."""

from formflow.config.loader import DEFAULT_CONFIG_PATH, load_app_config
from formflow.config.models import AppConfig

__all__ = ["AppConfig", "DEFAULT_CONFIG_PATH", "load_app_config"]
