"""Configuration loading and override resolution."""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path
from typing import Any, Mapping

import yaml

from formflow.config.models import AppConfig

DEFAULT_CONFIG_PATH = Path("config/settings.yaml")

# source key -> (section, setting, coercion)
ENV_OVERRIDES: dict[str, tuple[str, str, Callable[[str], Any]]] = {
    "FORMFLOW_LOG_LEVEL": ("logging", "level", str),
    "FORMFLOW_SUBMIT_TIMEOUT_SECONDS": ("submission", "timeout_seconds", float),
    "FORMFLOW_TRANSITIONS_DB": ("transitions", "db_path", str),
}
CLI_OVERRIDES: dict[str, tuple[str, str]] = {
    "log_level": ("logging", "level"),
    "timeout_seconds": ("submission", "timeout_seconds"),
    "transitions_db": ("transitions", "db_path"),
}


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError("Configuration file must deserialize to a mapping")
    return data


def _set(merged: dict[str, Any], section: str, setting: str, value: Any) -> None:
    target = merged.get(section)
    merged[section] = {**(target if isinstance(target, dict) else {}), setting: value}


def apply_overrides(
    raw_config: dict[str, Any],
    env: Mapping[str, str],
    cli_overrides: Mapping[str, Any] | None,
) -> dict[str, Any]:
    """Apply precedence: CLI > env > YAML defaults. ``raw_config`` is not mutated."""
    merged = dict(raw_config)
    for env_key, (section, setting, coerce) in ENV_OVERRIDES.items():
        raw_value = env.get(env_key, "").strip()
        if raw_value:
            _set(merged, section, setting, coerce(raw_value))
    if cli_overrides:
        for cli_key, (section, setting) in CLI_OVERRIDES.items():
            value = cli_overrides.get(cli_key)
            if value is not None and value != "":
                _set(merged, section, setting, value)
    return merged


def load_app_config(
    config_path: Path | None = None,
    *,
    env: Mapping[str, str] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> AppConfig:
    """Load and validate central application config.

    An explicit ``config_path`` must exist; the default path falls back to
    built-in defaults when absent.
    """
    active_env = os.environ if env is None else env
    if config_path is None and not DEFAULT_CONFIG_PATH.exists():
        raw: dict[str, Any] = {}
    else:
        raw = _load_yaml(config_path or DEFAULT_CONFIG_PATH)
    merged = apply_overrides(raw, active_env, cli_overrides)
    return AppConfig.model_validate(merged)
