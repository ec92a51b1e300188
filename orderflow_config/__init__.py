"""
orderflow_config -- single public entrypoint for OrderFlow configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration -- sits beside ``orderflow_kernel``.  The kernel MUST
    NEVER import from ``orderflow_config``; callers pass the loaded config
    object into kernel constructors.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ConfigError`` -- missing or invalid values.

Audit relevance:
    Every successful ``get_active_config()`` call emits an
    ``ORDERFLOW_CONFIG_TRACE`` log entry with the source path and checksum.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from orderflow_config.loader import load_config
from orderflow_config.schema import ConfigError, DoNumberConfig, OrderflowConfig

_logger = logging.getLogger("orderflow_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

DATABASE_URL_ENV = "ORDERFLOW_DATABASE_URL"


def get_active_config(config_path: Path | str | None = None) -> OrderflowConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML file to load.  Defaults to
            ``orderflow_config/sets/default.yaml``.

    Returns:
        Frozen ``OrderflowConfig``.  ``ORDERFLOW_DATABASE_URL``, when set,
        replaces the file's ``database_url``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigError: If validation fails.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    override = os.environ.get(DATABASE_URL_ENV) or None

    config = load_config(path, database_url_override=override)

    _logger.info(
        "ORDERFLOW_CONFIG_TRACE",
        extra={
            "trace_type": "ORDERFLOW_CONFIG_TRACE",
            "config_path": str(path),
            "checksum": config.checksum,
            "database_url_from_env": override is not None,
            "do_number_prefix": config.do_number.prefix,
            "do_number_pad_width": config.do_number.pad_width,
        },
    )
    return config


__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_PATH",
    "DATABASE_URL_ENV",
    "DoNumberConfig",
    "OrderflowConfig",
    "get_active_config",
]
