"""
Configuration Loader (``orderflow_config.loader``).

Responsibility
--------------
Reads a YAML configuration file and parses it into the frozen
``orderflow_config.schema`` dataclasses.  Callers use
``orderflow_config.get_active_config()``; this module is its internals.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing or invalid keys  -> ``ConfigError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from orderflow_config.schema import ConfigError, DoNumberConfig, OrderflowConfig

_KNOWN_KEYS = frozenset({"database_url", "log_level", "sql_echo", "do_number"})
_KNOWN_DO_NUMBER_KEYS = frozenset({"prefix", "pad_width"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("<root>", f"{path} must contain a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 over the parsed document."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_config(
    data: dict[str, Any],
    database_url_override: str | None = None,
) -> OrderflowConfig:
    """Build an ``OrderflowConfig`` from a parsed YAML mapping."""
    unknown = set(data) - _KNOWN_KEYS
    if unknown:
        raise ConfigError(sorted(unknown)[0], "unknown key")

    do_number_data = data.get("do_number") or {}
    if not isinstance(do_number_data, dict):
        raise ConfigError("do_number", "must be a mapping")
    unknown = set(do_number_data) - _KNOWN_DO_NUMBER_KEYS
    if unknown:
        raise ConfigError(f"do_number.{sorted(unknown)[0]}", "unknown key")

    database_url = database_url_override or data.get("database_url")
    if database_url is None:
        raise ConfigError("database_url", "is required")

    log_level = data.get("log_level", "INFO")
    if isinstance(log_level, str):
        log_level = log_level.upper()

    return OrderflowConfig(
        database_url=database_url,
        log_level=log_level,
        sql_echo=data.get("sql_echo", False),
        do_number=DoNumberConfig(**do_number_data),
        checksum=compute_checksum(data),
    )


def load_config(
    path: Path,
    database_url_override: str | None = None,
) -> OrderflowConfig:
    """Load and parse one configuration file."""
    return parse_config(load_yaml_file(path), database_url_override)
