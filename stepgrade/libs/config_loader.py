"""Configuration loading utilities for stepgrade."""

import copy
import os
from typing import Any
import logging

import yaml

LOG = logging.getLogger(__name__)

ConfigType = dict[str, Any]

_MISSING = object()


def load_configs(*path_configs: str) -> dict[str, Any]:
    """Load and merge YAML configuration files.

    Args:
        *path_configs: Paths to YAML configuration files

    Returns:
        Merged configuration dictionary

    Raises:
        TypeError: If a config file doesn't contain a dict
        ValueError: If no configs are loaded
    """
    def merge(orig_conf: Any, new_conf: Any):
        """Recursively merge configuration dictionaries."""
        if isinstance(orig_conf, dict) and isinstance(new_conf, dict):
            result = copy.deepcopy(orig_conf)
            for k, v in new_conf.items():
                if k in orig_conf:
                    result[k] = merge(orig_conf[k], v)
                else:
                    result[k] = copy.deepcopy(v)
            return result
        else:
            return copy.deepcopy(new_conf)

    result = {}
    for path in list(path_configs):
        LOG.info("loading config from %s", path)
        if os.path.isfile(path):
            with open(path, "r") as f:
                c = yaml.safe_load(f)
                if not isinstance(c, dict):
                    raise TypeError(f"YAML config file {path} must be a dict")
                result = merge(result, c)
        else:
            LOG.warning("Skipping missing config file %s", repr(path))
    if not result:
        raise ValueError("No configs loaded")
    return result


def _config_dir() -> str:
    # libs -> stepgrade -> project root
    current_dir = os.path.dirname(os.path.abspath(__file__))
    project_root = os.path.dirname(os.path.dirname(current_dir))
    return os.path.join(project_root, "config")


def load_default_configs() -> dict[str, Any]:
    """Load config/default.yaml followed by config/local.yaml overrides."""
    config_dir = _config_dir()
    return load_configs(
        os.path.join(config_dir, "default.yaml"),
        os.path.join(config_dir, "local.yaml"),
    )


def load_all_configs(*extra_paths: str) -> dict[str, Any]:
    """Load and merge all YAML configuration files in the config directory.

    Loads files in alphabetical order, with later files overriding earlier ones.
    Any ``extra_paths`` are merged last.

    Returns:
        Merged configuration from all YAML files in config/
    """
    config_dir = _config_dir()

    yaml_files = []
    if os.path.isdir(config_dir):
        for filename in sorted(os.listdir(config_dir)):
            if filename.endswith(('.yaml', '.yml')):
                yaml_files.append(os.path.join(config_dir, filename))
    else:
        LOG.warning("Config directory not found: %s", config_dir)

    yaml_files.extend(extra_paths)
    if not yaml_files:
        raise ValueError("No YAML files found in config directory")

    LOG.info("Loading configs from: %s", yaml_files)
    return load_configs(*yaml_files)


def get_config(key: str, config: dict[str, Any] = None, default: Any = _MISSING) -> Any:
    """Get a configuration value by dot-separated key.

    Args:
        key: Dot-separated path to config value (e.g., "grading.pass_threshold")
        config: Configuration dict (if None, loads default configs)
        default: Value returned when the key is absent (raises KeyError if omitted)

    Returns:
        Configuration value

    Raises:
        KeyError: If key not found in configuration and no default given
    """
    if config is None:
        config = load_default_configs()

    keys = key.split('.')
    value = config
    for i, k in enumerate(keys):
        if not isinstance(value, dict) or k not in value:
            if default is not _MISSING:
                return default
            if not isinstance(value, dict):
                raise KeyError(f"Cannot access {k} in non-dict value at {'.'.join(keys[:i])}")
            raise KeyError(f"Key {key} not found in configuration")
        value = value[k]
    return value
