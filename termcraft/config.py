"""Configuration loading and saving.

Settings live in ``~/.termcraft/config.yaml`` (or the path named by
``$TERMCRAFT_CONFIG``).  The file is optional; missing keys take their
values from :data:`DEFAULT_CONFIG`.  The core only reads the
configuration; the ``configure`` CLI command writes it.
"""

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .errors import ConfigurationError
from .providers import resolve_api_key
from .validator import SAFETY_LEVELS


CONFIG_ENV = "TERMCRAFT_CONFIG"

DEFAULT_CONFIG: Dict[str, Any] = {
    "provider": "gemini",
    "api_key": None,
    "model": "gemini-1.5-pro",
    "history_size": 1000,
    "safety_level": "medium",
    "max_file_size": 100 * 1024 * 1024,
    "disallowed_commands": [],
    "protected_paths": [],
    "debug": False,
}


def config_dir() -> Path:
    """Return the configuration directory (``~/.termcraft``)."""
    return Path.home() / ".termcraft"


def config_file(path: Optional[Union[str, Path]] = None) -> Path:
    if path:
        return Path(path).expanduser()
    env_path = os.environ.get(CONFIG_ENV)
    if env_path:
        return Path(env_path).expanduser()
    return config_dir() / "config.yaml"


def _validate(config: Dict[str, Any], source: Path) -> None:
    unknown = set(config) - set(DEFAULT_CONFIG)
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys in {source}: {sorted(unknown)}")
    if config["safety_level"] not in SAFETY_LEVELS:
        raise ConfigurationError(
            f"'safety_level' in {source} must be one of: {list(SAFETY_LEVELS)}"
        )
    for key in ("history_size", "max_file_size"):
        value = config[key]
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise ConfigurationError(f"'{key}' in {source} must be a positive integer")
    for key in ("disallowed_commands", "protected_paths"):
        if not isinstance(config[key], list):
            raise ConfigurationError(f"'{key}' in {source} must be a list")


def load_config(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """Load the YAML configuration merged over the defaults.

    :raises ConfigurationError: if the file is not valid YAML, is not a
      mapping, or contains unknown or invalid values.
    """
    cfg_path = config_file(path)
    config = copy.deepcopy(DEFAULT_CONFIG)
    if not cfg_path.exists():
        return config
    try:
        with cfg_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in config file {cfg_path}", exc)
    except OSError as exc:
        raise ConfigurationError(f"failed to read config {cfg_path}", exc)
    if data is None:
        return config
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {cfg_path} must contain a mapping")
    config.update(data)
    _validate(config, cfg_path)
    return config


def save_config(config: Dict[str, Any], path: Optional[Union[str, Path]] = None) -> Path:
    """Persist configuration to disk and return the path written."""
    cfg_path = config_file(path)
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    with cfg_path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(config, f, default_flow_style=False, sort_keys=True)
    return cfg_path


def api_key_from(config: Dict[str, Any]) -> str:
    """Return the API key from ``config`` or ``$GEMINI_API_KEY``.

    :raises ConfigurationError: when neither supplies one.
    """
    key = resolve_api_key(config.get("api_key"))
    if not key:
        raise ConfigurationError(
            "API key not found in config or environment. "
            "Please set GEMINI_API_KEY or run 'ai configure --api-key'"
        )
    return key
