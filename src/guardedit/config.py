"""YAML configuration for the guardedit CLI."""

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping

import yaml

from .policy.budgets import Budgets

DEFAULT_CONFIG_NAME = "guardedit.yaml"

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "budgets": {
        "max_files": 3,
        "max_changed_lines": 300,
        "allow_dirty": False,
    },
    "model": {
        "name": "gpt-4o-mini",
        "base_url": "",
        "api_key": "",
        "timeout": 120,
        "offline": False,
    },
    "git": {
        "branch_prefix": "guardedit/change-",
        "commit_message": "guardedit: apply proposed change",
    },
    "guards": {
        "extra_blocked_globs": [],
    },
    "paths": {
        "home": "",
        "state_dir": ".guardedit",
    },
}


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be used."""


def copy_config_template() -> Dict[str, Any]:
    """Return a deep copy of the default configuration template."""
    return copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)


def _deep_merge(base: Dict[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = copy.deepcopy(value)
    return base


def load_config(config_path: Path | None) -> Dict[str, Any]:
    """Load ``config_path`` over the default template.

    A missing file yields the defaults.  Unparseable YAML or a non-mapping
    document raises :class:`ConfigError`.
    """
    config = copy_config_template()
    if config_path is None or not config_path.exists():
        return config

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config {config_path}: {error}") from error
    except OSError as error:
        raise ConfigError(f"Failed to read config {config_path}: {error}") from error

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping at the top level.")
    return _deep_merge(config, data)


def write_config(config_path: Path, config_data: Mapping[str, Any]) -> None:
    """Persist configuration data to disk with stable formatting."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(dict(config_data), handle, sort_keys=False)


def _section(config: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = config.get(name)
    return value if isinstance(value, Mapping) else {}


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def budgets_from_config(config: Mapping[str, Any]) -> Budgets:
    return Budgets.from_mapping(_section(config, "budgets"))


def extra_blocked_globs(config: Mapping[str, Any]) -> List[str]:
    value = _section(config, "guards").get("extra_blocked_globs")
    if not isinstance(value, (list, tuple)):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def branch_prefix(config: Mapping[str, Any]) -> str:
    return _text(_section(config, "git").get("branch_prefix")) or DEFAULT_CONFIG_TEMPLATE["git"]["branch_prefix"]


def commit_message(config: Mapping[str, Any]) -> str:
    return _text(_section(config, "git").get("commit_message")) or DEFAULT_CONFIG_TEMPLATE["git"]["commit_message"]


def state_dir(config: Mapping[str, Any]) -> str:
    return _text(_section(config, "paths").get("state_dir")) or DEFAULT_CONFIG_TEMPLATE["paths"]["state_dir"]


def model_settings(config: Mapping[str, Any]) -> Dict[str, Any]:
    """Return client keyword arguments from the ``model`` section.

    ``GUARDEDIT_API_KEY`` and ``OPENAI_API_KEY`` fill in a missing key.
    """
    section = _section(config, "model")
    settings: Dict[str, Any] = {}
    name = _text(section.get("name"))
    if name:
        settings["model"] = name
    base_url = _text(section.get("base_url"))
    if base_url:
        settings["base_url"] = base_url
    api_key = _text(section.get("api_key")) or os.environ.get("GUARDEDIT_API_KEY") or os.environ.get("OPENAI_API_KEY")
    if api_key:
        settings["api_key"] = api_key
    timeout = section.get("timeout")
    if isinstance(timeout, (int, float)) and not isinstance(timeout, bool) and timeout > 0:
        settings["timeout"] = float(timeout)
    return settings


def is_offline(config: Mapping[str, Any]) -> bool:
    return _section(config, "model").get("offline") is True


__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_CONFIG_TEMPLATE",
    "branch_prefix",
    "budgets_from_config",
    "commit_message",
    "copy_config_template",
    "extra_blocked_globs",
    "is_offline",
    "load_config",
    "model_settings",
    "state_dir",
    "write_config",
]
