"""Configuration loader with YAML files and environment variable overrides."""

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from .models import WispConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "config.yaml"
STRATEGIES_DIR = "strategies"

# env var -> (section, key, converter)
_ENV_OVERRIDES: dict[str, tuple[str, str, Any]] = {
    "WISP_EXECUTION_MODE": ("execution", "mode", str),
    "WISP_STRATEGY_NAME": ("strategy", "name", str),
    "WISP_STRATEGY_INTERVAL": ("strategy", "interval", str),
    "WISP_STRATEGY_ASSETS": ("strategy", "assets", lambda v: [a.strip() for a in v.split(",") if a.strip()]),
    "WISP_RISK_STARTING_CASH": ("risk", "starting_cash", float),
    "WISP_RISK_MAX_POSITION_SIZE": ("risk", "max_position_size", float),
    "WISP_DATABASE_URL": ("journal", "database_url", str),
    "WISP_REDIS_URL": ("control", "redis_url", str),
    "WISP_LOG_LEVEL": ("logging", "level", str),
}


def _load_yaml(path: Path) -> dict[str, Any]:
    """Read a YAML mapping; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping, got {type(data).__name__}")
    return data


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``. Lists are replaced."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def strategy_config_path(root: Path, strategy_name: str) -> Path:
    """``strategies/{name}/config.yaml`` under a project root."""
    return root / STRATEGIES_DIR / strategy_name / DEFAULT_CONFIG_FILE


def load_config(
    config_path: str | None = None,
    strategy_name: str | None = None,
) -> WispConfig:
    """
    Load configuration from YAML with per-strategy overrides and env vars.

    Priority: env vars > strategies/{name}/config.yaml > config.yaml > defaults

    Args:
        config_path: Path to the root YAML file. If None, uses WISP_CONFIG_PATH
                     or ``config.yaml`` in the current directory.
        strategy_name: Strategy whose ``strategies/{name}/config.yaml`` is merged
                       (defaults to ``strategy.name`` from the root file).

    Returns:
        Validated WispConfig instance

    Raises:
        FileNotFoundError: If the root config file doesn't exist
        yaml.YAMLError: If a config file has invalid YAML
        pydantic.ValidationError: If config values are invalid
    """
    if config_path is None:
        config_path = os.environ.get("WISP_CONFIG_PATH", DEFAULT_CONFIG_FILE)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {config_file}")

    config_data = _load_yaml(config_file)

    name = strategy_name or os.environ.get("WISP_STRATEGY_NAME")
    if name is None:
        name = (config_data.get("strategy") or {}).get("name")
    if name:
        strategy_file = strategy_config_path(config_file.resolve().parent, name)
        if strategy_file.exists():
            logger.info("Merging strategy config %s", strategy_file)
            config_data = deep_merge(config_data, _load_yaml(strategy_file))
        config_data = deep_merge(config_data, {"strategy": {"name": name}})

    for env_var, (section, key, convert) in _ENV_OVERRIDES.items():
        raw = os.environ.get(env_var)
        if raw:
            section_data = config_data.get(section) or {}
            config_data[section] = {**section_data, key: convert(raw)}

    return WispConfig(**config_data)
