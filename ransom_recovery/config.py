"""
Recovery Engine Configuration

This module handles loading and merging of the engine configuration from
various sources: the packaged default config, the user config, a file named
by an environment variable and an explicit config file.
"""

import os
import json
import logging
from typing import Dict, Any, Optional

logger = logging.getLogger("RecoveryConfig")

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), "default_config.json")
USER_CONFIG_PATH = os.path.expanduser("~/.ransom_recovery/config.json")
CONFIG_ENV_VAR = "RANSOM_RECOVERY_CONFIG"


def _read_json(path: str) -> Dict[str, Any]:
    with open(path, 'r') as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Top-level JSON value must be an object, got {type(data).__name__}")
    return data


with open(DEFAULT_CONFIG_PATH, 'r') as _f:
    DEFAULTS: Dict[str, Any] = json.load(_f)


def _load_layer(path: Optional[str], label: str) -> Dict[str, Any]:
    """Load one optional config layer, skipping missing or malformed files"""
    if not path or not os.path.exists(path):
        return {}
    try:
        layer = _read_json(path)
        logger.debug(f"Loaded {label} config from {path}")
        return layer
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to load {label} config {path}: {e}")
        return {}


def _coerce(key: str, value: Any) -> Any:
    """Coerce a value to the type of its default, if the key has one"""
    default = DEFAULTS.get(key)
    if default is None or value is None:
        return value
    try:
        if isinstance(default, bool):
            if isinstance(value, str):
                return value.strip().lower() in ("1", "true", "yes", "on")
            return bool(value)
        if isinstance(default, int):
            return int(value)
        if isinstance(default, float):
            return float(value)
        if isinstance(default, str):
            return str(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid value for {key!r}: {value!r}, using default {default!r}")
        return default
    return value


def load_config(config_path: Optional[str] = None, **overrides) -> Dict[str, Any]:
    """
    Load the recovery engine configuration.

    Args:
        config_path: Optional path to custom config file
        **overrides: Individual values that take precedence over every file

    Returns:
        Configuration dictionary
    """
    user_config = _load_layer(USER_CONFIG_PATH, "user")
    env_config = _load_layer(os.environ.get(CONFIG_ENV_VAR), "environment")
    custom_config = _load_layer(config_path, "custom")

    # Merge configs (overrides > custom > env > user > default)
    merged = {**DEFAULTS, **user_config, **env_config, **custom_config, **overrides}
    config = {key: _coerce(key, value) for key, value in merged.items()}

    if config.get("output_dir"):
        config["output_dir"] = os.path.expanduser(config["output_dir"])

    return config
