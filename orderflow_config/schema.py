"""
OrderFlow configuration schema.

Frozen dataclasses that YAML configuration files are parsed into.  The
loader builds them; ``get_active_config()`` hands them out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

_LOG_LEVELS = frozenset(logging.getLevelNamesMapping())


class ConfigError(ValueError):
    """Configuration file is missing required keys or holds invalid values."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration '{key}': {reason}")


@dataclass(frozen=True)
class DoNumberConfig:
    """How generated delivery order numbers look: ``DO-2025-001``."""

    prefix: str = "DO"
    pad_width: int = 3

    def __post_init__(self) -> None:
        if not isinstance(self.prefix, str) or not self.prefix.strip():
            raise ConfigError("do_number.prefix", "must be a non-empty string")
        if "-" in self.prefix:
            raise ConfigError("do_number.prefix", "must not contain '-'")
        if (
            isinstance(self.pad_width, bool)
            or not isinstance(self.pad_width, int)
            or not 1 <= self.pad_width <= 12
        ):
            raise ConfigError("do_number.pad_width", "must be an integer from 1 to 12")


@dataclass(frozen=True)
class OrderflowConfig:
    """Runtime configuration for one OrderFlow deployment."""

    database_url: str
    log_level: str = "INFO"
    sql_echo: bool = False
    do_number: DoNumberConfig = field(default_factory=DoNumberConfig)
    checksum: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.database_url, str) or not self.database_url.strip():
            raise ConfigError("database_url", "must be a non-empty string")
        if self.log_level not in _LOG_LEVELS:
            raise ConfigError("log_level", f"unknown level {self.log_level!r}")
        if not isinstance(self.sql_echo, bool):
            raise ConfigError("sql_echo", "must be true or false")

    @property
    def log_level_number(self) -> int:
        return logging.getLevelNamesMapping()[self.log_level]
