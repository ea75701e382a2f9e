"""
Results -- Typed outcomes returned by the allocation orchestrator.

Inside the kernel, services raise typed exceptions.  At the boundary the
orchestrator turns each of them into one of these frozen result objects, so
an HTTP or RPC layer can map ``error`` straight onto a response without
catching anything.

``ErrorKind`` values are identical to the ``code`` attribute of the
exception that produced them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import UUID

from allocation_kernel.domain.dtos import (
    AllocationRecord,
    ReversalRecord,
    SourceSnapshot,
    TargetSnapshot,
)
from allocation_kernel.exceptions import AllocationKernelError, BatchRejectedError


class ErrorKind(str, Enum):
    """Machine-readable failure kinds surfaced to callers."""

    NOT_FOUND = "NOT_FOUND"
    INVALID_CURRENCY = "INVALID_CURRENCY"
    CURRENCY_MISMATCH = "CURRENCY_MISMATCH"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INSUFFICIENT_SOURCE_BALANCE = "INSUFFICIENT_SOURCE_BALANCE"
    TARGET_OVER_ALLOCATION = "TARGET_OVER_ALLOCATION"
    SOURCE_CLOSED = "SOURCE_CLOSED"
    TARGET_CLOSED = "TARGET_CLOSED"
    INVALID_SPLIT = "INVALID_SPLIT"
    ALREADY_REVERSED = "ALREADY_REVERSED"
    EXCESSIVE_REVERSAL = "EXCESSIVE_REVERSAL"
    INVALID_REASON = "INVALID_REASON"
    SOURCE_HAS_ACTIVE_ALLOCATIONS = "SOURCE_HAS_ACTIVE_ALLOCATIONS"
    INVALID_DOCUMENT_STATE = "INVALID_DOCUMENT_STATE"
    ALREADY_REGISTERED = "ALREADY_REGISTERED"
    IDEMPOTENCY_MISMATCH = "IDEMPOTENCY_MISMATCH"
    CONFLICT = "CONFLICT"

    @classmethod
    def from_exception(cls, exc: AllocationKernelError) -> ErrorKind:
        """
        Map a kernel exception to its ErrorKind.

        Raises:
            ValueError: the exception's code has no caller-facing kind
                (e.g. IMMUTABILITY_VIOLATION, which is a programming error).
        """
        return cls(exc.code)


@dataclass(frozen=True)
class OperationResult:
    """Common failure fields.  ``error`` is None on success."""

    error: ErrorKind | None = None
    message: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, exc: AllocationKernelError, **fields: Any):
        """Build a failed result of this type from a kernel exception."""
        return cls(
            error=ErrorKind.from_exception(exc),
            message=str(exc),
            details=exc.details(),
            **fields,
        )


@dataclass(frozen=True)
class AllocationResult(OperationResult):
    """
    Outcome of a single allocate call.

    ``replayed`` is True when an idempotency key matched an earlier,
    identical request and the stored allocation was returned unchanged.
    """

    allocation: AllocationRecord | None = None
    source: SourceSnapshot | None = None
    target: TargetSnapshot | None = None
    replayed: bool = False


@dataclass(frozen=True)
class BatchAllocationResult(OperationResult):
    """
    Outcome of allocate_batch / allocate_by_percentages.

    On failure ``failed_index`` names the first rejected item and
    ``rolled_back`` is True: no item of the batch was committed.
    """

    batch_id: UUID | None = None
    allocations: tuple[AllocationRecord, ...] = ()
    source: SourceSnapshot | None = None
    failed_index: int | None = None
    rolled_back: bool = False
    replayed: bool = False

    @classmethod
    def rejected(cls, exc: BatchRejectedError) -> BatchAllocationResult:
        return cls.failure(exc, failed_index=exc.index, rolled_back=True)


@dataclass(frozen=True)
class ReversalResult(OperationResult):
    """Outcome of a reverse call; ``allocation`` is the post-reversal state."""

    reversal: ReversalRecord | None = None
    allocation: AllocationRecord | None = None
    replayed: bool = False


@dataclass(frozen=True)
class BulkReversalResult(OperationResult):
    """Outcome of reverse_all: every reversal made in the transaction."""

    reversals: tuple[ReversalRecord, ...] = ()
    source: SourceSnapshot | None = None


@dataclass(frozen=True)
class SourceResult(OperationResult):
    """Outcome of registering or voiding a source."""

    source: SourceSnapshot | None = None
    created: bool = False


@dataclass(frozen=True)
class TargetResult(OperationResult):
    """Outcome of registering or closing a target."""

    target: TargetSnapshot | None = None
    created: bool = False
