"""
Hierarchical configuration for almanac.

Sources, lowest to highest precedence:
    1. Built-in defaults (plus any consumer ``defaults``)
    2. A YAML or JSON config file
    3. Environment variables, ``ALMANAC_<SECTION>__<KEY>``

Env values are parsed as YAML scalars, so ``ALMANAC_SCHEDULER__ENABLED=true``
becomes ``True`` and ``ALMANAC_ANALYTICS__HALF_LIFE_DAYS=7`` becomes ``7``.

Usage:
    config = Config(config_file="almanac.yaml")
    config.get("store.backend")
    settings = config.validated().analytics
"""

import json
import os
from typing import Any

import yaml

from .exceptions import ConfigurationError

ENV_PREFIX = "ALMANAC_"
_DATA_DIR = os.path.join("~", ".almanac-data")


def _deep_merge(target: dict[str, Any], source: dict[str, Any]) -> dict[str, Any]:
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_merge(target[key], value)
        else:
            target[key] = value
    return target


def _parse_env_value(raw: str) -> Any:
    """YAML scalar for ``raw``; mappings, lists and unparsable input stay strings."""
    try:
        value = yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw
    if value is None or isinstance(value, (dict, list)):
        return raw
    return value


def load_config_file(path: str) -> dict[str, Any]:
    """Read a ``.yaml``/``.yml`` or ``.json`` config file into a dict."""
    if not os.path.exists(path):
        raise ConfigurationError(f"Config file not found: {path}")
    _, ext = os.path.splitext(path)
    ext = ext.lower()
    if ext not in (".yaml", ".yml", ".json"):
        raise ConfigurationError(f"Unsupported config file type: {ext or path}")
    with open(path) as f:
        data = json.load(f) if ext == ".json" else yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping at the top level")
    return data


class Config:
    """
    Merged view over defaults, a config file and the environment.

    Nested keys are addressed with dots (``store.backend``); env vars use a
    double underscore for the same nesting.
    """

    def __init__(
        self,
        config_file: str | None = None,
        env_prefix: str = ENV_PREFIX,
        data_dir: str | None = None,
        defaults: dict[str, Any] | None = None,
    ):
        """
        Args:
            config_file: YAML or JSON file to layer over the defaults.
            env_prefix: Prefix of overriding env vars; empty disables them.
            data_dir: Base directory for logs and the local store. Defaults to ~/.almanac-data.
            defaults: Extra defaults from the embedding application.
        """
        self.config_file = config_file
        self.env_prefix = env_prefix or ""
        self._data_dir = os.path.expanduser(data_dir or _DATA_DIR)

        self.config_data: dict[str, Any] = self._defaults()
        _deep_merge(self.config_data, defaults or {})
        if config_file:
            _deep_merge(self.config_data, load_config_file(config_file))
        if self.env_prefix:
            _deep_merge(self.config_data, self._env_overrides())

    def _defaults(self) -> dict[str, Any]:
        return {
            "paths": {
                "data_dir": self._data_dir,
                "log_dir": os.path.join(self._data_dir, "logs"),
            },
            "store": {
                "backend": "memory",
                "path": os.path.join(self._data_dir, "aggregates"),
                "root": "users",
            },
            "analytics": {},
            "scheduler": {"enabled": False, "timezone": "UTC", "cron": {"minute": 0}},
            "logging": {"level": "WARNING", "file": None},
        }

    def _env_overrides(self) -> dict[str, Any]:
        overrides: dict[str, Any] = {}
        for name, raw in os.environ.items():
            if not name.startswith(self.env_prefix) or len(name) == len(self.env_prefix):
                continue
            *parents, leaf = name[len(self.env_prefix) :].lower().split("__")
            node = overrides
            for part in parents:
                node = node.setdefault(part, {})
            node[leaf] = _parse_env_value(raw)
        return overrides

    def get(self, key_path: str, default: Any = None) -> Any:
        """Value at a dot-notation path such as ``"analytics.half_life_days"``, or ``default``."""
        node: Any = self.config_data
        for part in key_path.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def set(self, key_path: str, value: Any) -> None:
        """Set a dot-notation path, replacing non-dict intermediates."""
        *parents, leaf = key_path.split(".")
        node = self.config_data
        for part in parents:
            if not isinstance(node.get(part), dict):
                node[part] = {}
            node = node[part]
        node[leaf] = value

    def validated(self):
        """Return the configuration as a validated ``AlmanacConfig``.

        Raises:
            ConfigurationError: If any section fails schema validation.
        """
        from pydantic import ValidationError

        from .config_schema import AlmanacConfig

        try:
            return AlmanacConfig.model_validate(self.config_data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e
