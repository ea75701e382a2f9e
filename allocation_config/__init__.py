"""
allocation_config -- single public entrypoint for engine configuration.

Responsibility:
    ``get_active_config()`` is the only way to obtain configuration at
    runtime.  No other component reads configuration files or the
    ``ALLOCATION_CONFIG`` environment variable.

Architecture position:
    Sits above ``allocation_kernel``.  The kernel never imports from this
    package; AllocationOrchestrator.from_config() receives the parsed
    dataclasses.

Failure modes:
    - ``FileNotFoundError`` -- the selected file does not exist.
    - ``ValueError`` -- parse or validation failures.

Audit relevance:
    Every successful call emits an ``ALLOCATION_CONFIG_TRACE`` log entry
    with the config id, version and checksum.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from allocation_config.loader import load_config_file
from allocation_config.schema import (
    AllocationConfig,
    DatabaseConfig,
    EngineConfig,
    ReportingConfig,
)
from allocation_config.validator import validate_configuration

_logger = logging.getLogger("allocation_kernel.config")

CONFIG_ENV_VAR = "ALLOCATION_CONFIG"

_DEFAULT_CONFIG_FILE = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(path: Path | str | None = None) -> AllocationConfig:
    """
    The ONLY public configuration entrypoint.

    Resolution order: explicit ``path``, then ``$ALLOCATION_CONFIG``, then
    the packaged ``sets/default.yaml``.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        ValueError: If parsing or validation fails.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or _DEFAULT_CONFIG_FILE
    path = Path(path)

    config = load_config_file(path)

    validation = validate_configuration(config)
    if not validation.is_valid:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )
    for warning in validation.warnings:
        _logger.warning("config_warning", extra={"warning": warning})

    _logger.info(
        "ALLOCATION_CONFIG_TRACE",
        extra={
            "trace_type": "ALLOCATION_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "config_path": str(path),
        },
    )
    return config


__all__ = [
    "get_active_config",
    "AllocationConfig",
    "DatabaseConfig",
    "EngineConfig",
    "ReportingConfig",
    "CONFIG_ENV_VAR",
]
