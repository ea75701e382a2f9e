"""
ORM-level immutability enforcement for the allocation audit trail.

===============================================================================
WHAT IS PROTECTED
===============================================================================

    Allocation          DELETE forbidden.  UPDATE may only touch the reversal
                        columns (reversed_minor, status, reversed_at, version)
                        and audit metadata (updated_at, updated_by_id).
    AllocationReversal  Append-only: UPDATE and DELETE forbidden.
    ExchangeRate        Append-only: corrections are new rows.

Sources and targets are mutable by design (their balances move), but they
may not be deleted once allocations reference them; the foreign keys take
care of that.

===============================================================================
SCOPE
===============================================================================

Mapper events fire for unit-of-work flushes (``obj.amount_minor = ...;
session.flush()``).  The compare-and-set writes in services/ are explicit
UPDATE statements on the reversal columns only, so they never reach these
hooks.

Usage:
    from allocation_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # create_tables() calls this

To temporarily disable (TESTS ONLY):
    unregister_immutability_listeners()
===============================================================================
"""

from sqlalchemy import event, inspect

from allocation_kernel.exceptions import ImmutabilityViolationError
from allocation_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Columns that may change on an Allocation after insert
_ALLOCATION_MUTABLE = frozenset(
    {"reversed_minor", "status", "reversed_at", "version", "updated_at", "updated_by_id"}
)


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_allocation_update(mapper, connection, target):
    """Allow only the reversal columns of an Allocation to change."""
    for attr in inspect(target).attrs:
        if attr.key in _ALLOCATION_MUTABLE:
            continue
        if attr.history.has_changes():
            _block(
                "Allocation",
                target,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on an allocation",
            )


def _check_allocation_delete(mapper, connection, target):
    _block("Allocation", target, "DELETE", "Allocations cannot be deleted; reverse them")


def _check_reversal_update(mapper, connection, target):
    _block("AllocationReversal", target, "UPDATE", "Reversal records are immutable")


def _check_reversal_delete(mapper, connection, target):
    _block("AllocationReversal", target, "DELETE", "Reversal records cannot be deleted")


def _check_exchange_rate_update(mapper, connection, target):
    _block(
        "ExchangeRate",
        target,
        "UPDATE",
        "Exchange rates are append-only; record a new rate instead",
    )


def _check_exchange_rate_delete(mapper, connection, target):
    _block("ExchangeRate", target, "DELETE", "Exchange rates cannot be deleted")


def _listeners():
    from allocation_kernel.models.allocation import Allocation, AllocationReversal
    from allocation_kernel.models.exchange_rate import ExchangeRate

    return (
        (Allocation, "before_update", _check_allocation_update),
        (Allocation, "before_delete", _check_allocation_delete),
        (AllocationReversal, "before_update", _check_reversal_update),
        (AllocationReversal, "before_delete", _check_reversal_delete),
        (ExchangeRate, "before_update", _check_exchange_rate_update),
        (ExchangeRate, "before_delete", _check_exchange_rate_delete),
    )


def register_immutability_listeners() -> None:
    """Register all immutability listeners.  Safe to call more than once."""
    for model, name, fn in _listeners():
        if not event.contains(model, name, fn):
            event.listen(model, name, fn)


def unregister_immutability_listeners() -> None:
    """Remove all immutability listeners.  FOR TESTING ONLY."""
    for model, name, fn in _listeners():
        if event.contains(model, name, fn):
            event.remove(model, name, fn)
