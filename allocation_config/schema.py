"""
Allocation engine configuration schema.

Frozen dataclasses the YAML file is parsed into.  Defaults here are the
values used when a key is absent from the file.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from allocation_kernel.services.allocation_orchestrator import SYSTEM_ACTOR_ID


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings; pool_* apply to PostgreSQL only."""

    url: str = "sqlite:///allocation.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    # Seconds a SQLite writer waits on BEGIN IMMEDIATE
    sqlite_timeout: float = 30.0


@dataclass(frozen=True)
class EngineConfig:
    max_conflict_retries: int = 3
    default_actor: UUID = SYSTEM_ACTOR_ID


@dataclass(frozen=True)
class ReportingConfig:
    display_currency: str = "USD"


@dataclass(frozen=True)
class AllocationConfig:
    """A loaded, validated configuration."""

    config_id: str
    version: int
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    reporting: ReportingConfig = field(default_factory=ReportingConfig)
    checksum: str = ""
