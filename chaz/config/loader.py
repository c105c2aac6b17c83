"""Configuration loading utilities."""

import json
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from chaz.config.schema import Config
from chaz.utils.helpers import get_state_dir

YAML_SUFFIXES = (".yaml", ".yml")


def get_config_state_dir(config: Config) -> Path:
    """Get the state directory for the configured bot (session, sync token)."""
    return get_state_dir(config.name or config.username, config.state_dir)


def load_config(config_path: Path) -> Config:
    """
    Load configuration from a YAML or JSON file.

    JSON keys may be camelCase; they are converted to snake_case before
    validation. A missing or invalid file falls back to the defaults.

    Args:
        config_path: Path to the config file.

    Returns:
        Loaded configuration object.
    """
    if config_path.exists():
        try:
            data = _read_config_file(config_path)
            return Config.model_validate(convert_keys(data or {}))
        except (json.JSONDecodeError, yaml.YAMLError, ValueError, OSError) as e:
            logger.warning(f"Failed to load config from {config_path}: {e}")
            logger.warning("Using default configuration.")
    else:
        logger.warning(f"Config file {config_path} not found, using default configuration.")

    return Config()


def _read_config_file(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        if path.suffix.lower() in YAML_SUFFIXES:
            return yaml.safe_load(f)
        return json.load(f)


# ---------------------------------------------------------------------------
# Key conversion helpers
# ---------------------------------------------------------------------------


def convert_keys(data: Any) -> Any:
    """Convert camelCase keys to snake_case for Pydantic."""
    if isinstance(data, dict):
        return {camel_to_snake(k): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append("_")
        result.append(char.lower())
    return "".join(result)
