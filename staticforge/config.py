"""Project configuration for StaticForge.

Configuration lives in ``staticforge.yaml`` at the project root and is merged
over DEFAULT_CONFIG. Scalar string settings can be overridden from the
environment with ``STATICFORGE_<KEY>``.

Key functions:
- load_config: Load, override and validate the project configuration.
- load_data: Load site data from YAML files in the data directory.
- validate_config: Check configuration values, raising ConfigError.
- resolve_dir: Resolve a configured directory against the project root.
"""

from __future__ import annotations

import copy
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog
import yaml

from .errors import ConfigError

log = structlog.get_logger(__name__)

CONFIG_FILENAME = "staticforge.yaml"
ENV_PREFIX = "STATICFORGE_"

DIRECTORY_KEYS = ("source_dir", "output_dir", "template_dir", "features_dir")

DEFAULT_CONFIG: dict[str, Any] = {
    "source_dir": "content",
    "output_dir": "public",
    "template_dir": "templates",
    "template": "default",
    "features_dir": "features",
    "site_name": "",
    "site_base_url": "",
    "disabled_features": [],
    "include_drafts": False,
    "reading_time": {},
}


def load_config(project_root: Path, environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Load site configuration from staticforge.yaml.

    Args:
        project_root: Root directory of the project.
        environ: Environment used for overrides (defaults to ``os.environ``).

    Returns:
        Dictionary containing configuration values, with defaults applied.

    Raises:
        ConfigError: If the file is not valid YAML, is not a mapping, or a
            value fails validation.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    config_path = project_root / CONFIG_FILENAME
    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"{config_path}: invalid YAML: {exc}") from exc
        if not isinstance(loaded, dict):
            raise ConfigError(f"{config_path}: top level must be a mapping")
        config.update(loaded)
    else:
        log.debug("No configuration file found, using defaults", path=str(config_path))

    _apply_env_overrides(config, os.environ if environ is None else environ)
    validate_config(config)
    return config


def _apply_env_overrides(config: dict[str, Any], environ: Mapping[str, str]) -> None:
    """Replace scalar string settings from ``STATICFORGE_<KEY>`` variables."""
    for key, value in list(config.items()):
        if not isinstance(value, str):
            continue
        override = environ.get(f"{ENV_PREFIX}{key.upper()}")
        if override is not None:
            config[key] = override
            log.debug("Configuration overridden from environment", key=key)


def validate_config(config: Mapping[str, Any]) -> None:
    """Validate configuration values.

    Raises:
        ConfigError: Describing the first invalid value found.
    """
    disabled = config.get("disabled_features", [])
    if not isinstance(disabled, list) or not all(isinstance(n, str) for n in disabled):
        raise ConfigError("disabled_features must be a list of feature names")
    if not isinstance(config.get("reading_time", {}), Mapping):
        raise ConfigError("reading_time must be a mapping")
    for key in DIRECTORY_KEYS:
        value = config.get(key)
        if not isinstance(value, str) or not value.strip():
            raise ConfigError(f"{key} must be a non-empty path")


def resolve_dir(project_root: Path, config: Mapping[str, Any], key: str) -> Path:
    """Resolve a configured directory, relative paths against the project root."""
    path = Path(str(config[key])).expanduser()
    return path if path.is_absolute() else project_root / path


def load_data(project_root: Path) -> dict[str, Any]:
    """Load site data from YAML files in the data directory.

    ``site.yaml`` is merged at the top level; every other file is stored
    under its stem.

    Args:
        project_root: Root directory of the project.

    Returns:
        Dictionary containing merged data from all YAML files.

    Raises:
        ConfigError: If a data file is not valid YAML.
    """
    data_dir = project_root / "data"
    data: dict[str, Any] = {}
    if not data_dir.exists():
        return data
    for path in sorted(data_dir.glob("*.yaml")):
        try:
            with open(path, encoding="utf-8") as f:
                payload = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"{path}: invalid YAML: {exc}") from exc
        if not isinstance(payload, dict):
            log.warning("Ignoring data file without a mapping", file=str(path))
            continue
        if path.name == "site.yaml":
            data.update(payload)
        else:
            data[path.stem] = payload
    return data


def flatten_config(config: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten nested mappings into ``parent_child`` keys for templates."""
    flat: dict[str, Any] = {}
    for key, value in config.items():
        name = f"{prefix}_{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            flat.update(flatten_config(value, name))
        else:
            flat[name] = value
    return flat
