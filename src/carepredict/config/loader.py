"""
Configuration loading utilities.

Supports environment variable interpolation and config inheritance from a
``base.yaml`` sitting next to the main file.
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from carepredict.config.settings import ModelConfig
from carepredict.errors import ConfigurationError


def _interpolate_env_vars(value: str) -> str:
    """
    Interpolate environment variables in string values.

    Supports ${VAR} and ${VAR:default} syntax.
    """
    pattern = r"\$\{([^}:]+)(?::([^}]*))?\}"

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        default = match.group(2)
        return os.environ.get(var_name, default if default is not None else "")

    return re.sub(pattern, replacer, value)


def _process_config_values(obj: Any) -> Any:
    """Recursively process config values for env var interpolation."""
    if isinstance(obj, str):
        return _interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _process_config_values(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_process_config_values(item) for item in obj]
    return obj


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file and process environment variables."""
    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return _process_config_values(data) if data else {}


def build_config(data: dict[str, Any]) -> ModelConfig:
    """
    Validate a plain mapping into a ModelConfig.

    Raises:
        ConfigurationError: If any field is missing or inconsistent.
    """
    try:
        return ModelConfig.model_validate(data)
    except ValidationError as e:
        msg = f"Invalid configuration: {e}"
        raise ConfigurationError(msg) from e


def load_config(
    config_path: Path,
    base_path: Path | None = None,
    **overrides: Any,
) -> ModelConfig:
    """
    Load model configuration from YAML file(s).

    Minimal config requires only ``type`` and ``predicted_col``.

    Args:
        config_path: Path to the main configuration file.
        base_path: Optional base configuration for inheritance. Defaults to
            ``base.yaml`` in the same directory when present.
        **overrides: Top-level keys that take precedence over both files.

    Returns:
        Validated, frozen ModelConfig.
    """
    if base_path is not None:
        base_data = load_yaml(base_path)
    else:
        potential_base = config_path.parent / "base.yaml"
        base_data = (
            load_yaml(potential_base)
            if potential_base.exists() and potential_base != config_path
            else {}
        )

    main_data = load_yaml(config_path)
    merged = _deep_merge(base_data, main_data)
    merged = _deep_merge(merged, {k: v for k, v in overrides.items() if v is not None})

    return build_config(merged)
