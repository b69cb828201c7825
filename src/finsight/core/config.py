"""
Engine settings: ``FinsightConfig`` defaults, a config file, then environment.

Precedence (highest wins):
    1. ``FINSIGHT_SECTION__KEY`` environment variables
    2. A YAML or JSON config file
    3. The defaults declared on ``FinsightConfig``

Environment values arrive as strings; ``validated()`` hands the merged tree to
pydantic, which coerces them to the declared field types.

Usage:
    config = Config(config_file="finsight.yaml")
    config.get("logging.level")
    settings = config.validated()
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from loguru import logger
from pydantic import ValidationError

from .config_schema import FinsightConfig
from .exceptions import ConfigurationError

ENV_PREFIX = "FINSIGHT_"


def read_config_file(path: str | os.PathLike) -> dict[str, Any]:
    """Parse a YAML (``.yaml``/``.yml``) or JSON file into a mapping.

    Raises:
        ConfigurationError: for an unsupported extension, a parse error, or a
            document that is not a mapping.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    try:
        with path.open() as f:
            if suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            elif suffix == ".json":
                data = json.load(f)
            else:
                raise ConfigurationError(f"Unsupported config file type: {path}")
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot parse config file {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping, got {type(data).__name__}")
    return data


def env_overrides(environ: Mapping[str, str], prefix: str = ENV_PREFIX) -> dict[str, Any]:
    """Nested overrides from ``PREFIX_SECTION__KEY=value`` variables (keys lower-cased)."""
    overrides: dict[str, Any] = {}
    for name, value in environ.items():
        if not prefix or not name.startswith(prefix):
            continue
        *sections, leaf = name[len(prefix) :].lower().split("__")
        node = overrides
        for section in sections:
            node = node.setdefault(section, {})
        node[leaf] = value
    return overrides


def _merge(target: dict[str, Any], source: Mapping[str, Any]) -> None:
    for key, value in source.items():
        if isinstance(target.get(key), dict) and isinstance(value, Mapping):
            _merge(target[key], value)
        else:
            target[key] = value


class Config:
    """Merged, not yet validated, settings tree."""

    def __init__(
        self,
        config_file: str | os.PathLike | None = None,
        env_prefix: str = ENV_PREFIX,
        environ: Mapping[str, str] | None = None,
    ):
        """
        Args:
            config_file: YAML or JSON file; a path that does not exist is skipped.
            env_prefix: Prefix of environment overrides (empty disables them).
            environ: Environment to read (``os.environ`` when None).
        """
        self.config_file = config_file
        self.env_prefix = env_prefix
        self.data: dict[str, Any] = FinsightConfig().model_dump(mode="json")

        if config_file is not None:
            if os.path.exists(config_file):
                _merge(self.data, read_config_file(config_file))
            else:
                logger.debug(f"Config file {config_file} not found, using defaults")
        _merge(self.data, env_overrides(os.environ if environ is None else environ, env_prefix))

    def get(self, key_path: str, default: Any = None) -> Any:
        """Value at a dot path such as ``"cache.ttl_seconds"``, or *default*."""
        current: Any = self.data
        for part in key_path.split("."):
            if not isinstance(current, dict) or part not in current:
                return default
            current = current[part]
        return current

    def validated(self) -> FinsightConfig:
        """The merged tree as a typed ``FinsightConfig``.

        Raises:
            ConfigurationError: when a value fails schema validation.
        """
        try:
            return FinsightConfig.model_validate(self.data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e
