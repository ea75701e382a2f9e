"""
Configuration Loader (``allocation_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen dataclasses
of ``allocation_config.schema``.  Runtime callers use
``allocation_config.get_active_config()`` instead of calling this directly.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key  -> ``ValueError`` (typos must not be silently
  ignored).
* Value of the wrong type  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from pathlib import Path
from typing import Any
from uuid import UUID

import yaml

from allocation_config.schema import (
    AllocationConfig,
    DatabaseConfig,
    EngineConfig,
    ReportingConfig,
)

_SECTIONS = {
    "database": DatabaseConfig,
    "engine": EngineConfig,
    "reporting": ReportingConfig,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of the raw configuration."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _coerce(section: str, key: str, value: Any, default: Any) -> Any:
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ValueError(f"{section}.{key} must be true or false, got {value!r}")
        return value
    if isinstance(default, int):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{section}.{key} must be an integer, got {value!r}")
        return value
    if isinstance(default, float):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{section}.{key} must be a number, got {value!r}")
        return float(value)
    if isinstance(default, UUID):
        try:
            return UUID(str(value))
        except ValueError as e:
            raise ValueError(f"{section}.{key} must be a UUID, got {value!r}") from e
    if not isinstance(value, str):
        raise ValueError(f"{section}.{key} must be a string, got {value!r}")
    return value


def _parse_section(name: str, data: dict[str, Any] | None):
    cls = _SECTIONS[name]
    data = data or {}
    if not isinstance(data, dict):
        raise ValueError(f"Section {name!r} must be a mapping")
    defaults = cls()
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown keys in section {name!r}: {', '.join(unknown)}")
    values = {
        key: _coerce(name, key, value, getattr(defaults, key))
        for key, value in data.items()
    }
    return cls(**values)


def parse_config(data: dict[str, Any]) -> AllocationConfig:
    """
    Parse a raw YAML dict into an AllocationConfig.

    ``config_id`` is required; ``version`` defaults to 1; every section is
    optional.
    """
    unknown = sorted(set(data) - {"config_id", "version", *_SECTIONS})
    if unknown:
        raise ValueError(f"Unknown configuration sections: {', '.join(unknown)}")
    if not data.get("config_id"):
        raise ValueError("config_id is required")

    return AllocationConfig(
        config_id=str(data["config_id"]),
        version=_coerce("root", "version", data.get("version", 1), 1),
        database=_parse_section("database", data.get("database")),
        engine=_parse_section("engine", data.get("engine")),
        reporting=_parse_section("reporting", data.get("reporting")),
        checksum=compute_checksum(data),
    )


def load_config_file(path: Path) -> AllocationConfig:
    """Load and parse (but do not validate) a configuration file."""
    return parse_config(load_yaml_file(path))
