"""
Configuration validation (``allocation_config.validator``).

Checks value ranges the schema cannot express.  ``get_active_config``
refuses any configuration with errors.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from allocation_config.schema import AllocationConfig
from allocation_kernel.domain.currency import CurrencyRegistry

_SUPPORTED_BACKENDS = ("postgresql", "sqlite")


@dataclass
class ConfigValidationResult:
    """``is_valid`` is True only when ``errors`` is empty."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: AllocationConfig) -> ConfigValidationResult:
    """Validate every section of a parsed configuration."""
    result = ConfigValidationResult()

    db = config.database
    try:
        backend = make_url(db.url).get_backend_name()
    except ArgumentError:
        result.add_error(f"database.url is not a valid database URL: {db.url!r}")
    else:
        if backend not in _SUPPORTED_BACKENDS:
            result.add_error(
                f"database.url backend {backend!r} is not supported "
                f"(expected one of {', '.join(_SUPPORTED_BACKENDS)})"
            )
    if db.pool_size < 1:
        result.add_error("database.pool_size must be at least 1")
    if db.max_overflow < 0:
        result.add_error("database.max_overflow must not be negative")
    if db.pool_timeout < 1:
        result.add_error("database.pool_timeout must be at least 1 second")
    if db.sqlite_timeout <= 0:
        result.add_error("database.sqlite_timeout must be positive")

    if config.engine.max_conflict_retries < 0:
        result.add_error("engine.max_conflict_retries must not be negative")

    if not CurrencyRegistry.is_valid(config.reporting.display_currency):
        result.add_error(
            f"reporting.display_currency is not an ISO 4217 code: "
            f"{config.reporting.display_currency!r}"
        )

    return result
