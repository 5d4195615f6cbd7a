"""Configuration loading utilities."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from ray_bridge.config.schema import Config
from ray_bridge.utils.helpers import ensure_dir, get_data_path


def get_data_dir() -> Path:
    """Get the data directory, creating it if needed."""
    return ensure_dir(get_data_path())


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return get_data_path() / "config.json"


def _camel_to_snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def _snake_to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _convert_keys(data: Any, convert) -> Any:
    if isinstance(data, dict):
        converted: dict[str, Any] = {}
        for key, value in data.items():
            # Header names are user data, not schema fields.
            if key == "headers" and isinstance(value, dict):
                converted[convert(key)] = dict(value)
                continue
            converted[convert(key)] = _convert_keys(value, convert)
        return converted
    if isinstance(data, list):
        return [_convert_keys(item, convert) for item in data]
    return data


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file or create default.

    Args:
        config_path: Optional path to config file. Uses default if not provided.

    Returns:
        Loaded configuration object. Invalid files fall back to defaults.
    """
    path = config_path or get_config_path()
    if path.exists():
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(raw, dict):
                raise ValueError("config root must be a JSON object")
            return Config(**_convert_keys(raw, _camel_to_snake))
        except (OSError, json.JSONDecodeError, ValueError, ValidationError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            logger.warning("Using default configuration.")
    return Config()


def save_config(config: Config, config_path: Path | None = None) -> Path:
    """Save configuration to file using camelCase keys."""
    path = config_path or get_config_path()
    ensure_dir(path.parent)
    payload = _convert_keys(config.model_dump(), _snake_to_camel)
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    return path
