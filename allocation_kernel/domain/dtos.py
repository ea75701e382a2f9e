"""
DTOs -- Immutable snapshots of sources, targets and allocations.

Responsibility:
    Defines the frozen data structures that cross the service boundary:
    SourceSnapshot, TargetSnapshot, AllocationRecord, ReversalRecord and the
    BatchItem / PercentageShare request shapes.  Services read ORM rows and
    hand these out; callers never hold a live ORM entity.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  from_model() class methods are
    boundary converters invoked only from services/ and selectors/.

Invariants enforced:
    - Every monetary field is a Money value (never a raw int).
    - A snapshot carries the row version it was read at; compare-and-set
      writes are expressed against that version.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from allocation_kernel.domain.clock import as_utc
from allocation_kernel.domain.values import Money

if TYPE_CHECKING:
    from allocation_kernel.models.allocation import (
        Allocation as AllocationModel,
        AllocationReversal as AllocationReversalModel,
    )
    from allocation_kernel.models.source import AllocatableSource
    from allocation_kernel.models.target import AllocationTarget


@dataclass(frozen=True)
class SourceSnapshot:
    """State of an allocatable source at a given version."""

    id: UUID
    kind: str
    currency: str
    total: Money
    remaining: Money
    status: str
    version: int
    document_status: str
    issued_on: date | None = None
    reference: str | None = None

    @property
    def applied(self) -> Money:
        """Amount currently allocated away (total - remaining)."""
        return self.total - self.remaining

    @property
    def is_open(self) -> bool:
        return self.status == "open"

    @classmethod
    def from_model(cls, row: AllocatableSource) -> SourceSnapshot:
        return cls(
            id=row.id,
            kind=row.kind,
            currency=row.currency,
            total=Money.from_minor(row.total_minor, row.currency),
            remaining=Money.from_minor(row.remaining_minor, row.currency),
            status=row.status,
            version=row.version,
            document_status=row.document_status,
            issued_on=row.issued_on,
            reference=row.reference,
        )


@dataclass(frozen=True)
class TargetSnapshot:
    """State of an allocation target at a given version."""

    id: UUID
    kind: str
    currency: str
    outstanding: Money
    opening_outstanding: Money
    status: str
    version: int
    reference: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status == "open"

    @classmethod
    def from_model(cls, row: AllocationTarget) -> TargetSnapshot:
        return cls(
            id=row.id,
            kind=row.kind,
            currency=row.currency,
            outstanding=Money.from_minor(row.outstanding_minor, row.currency),
            opening_outstanding=Money.from_minor(
                row.opening_outstanding_minor, row.currency
            ),
            status=row.status,
            version=row.version,
            reference=row.reference,
        )


@dataclass(frozen=True)
class AllocationRecord:
    """An allocation as stored, including how much of it has been reversed."""

    id: UUID
    source_id: UUID
    target_id: UUID
    amount: Money
    reversed: Money
    status: str
    version: int
    created_at: datetime
    reversed_at: datetime | None = None
    idempotency_key: str | None = None
    request_hash: str | None = None
    batch_id: UUID | None = None
    batch_request_hash: str | None = None

    @property
    def net(self) -> Money:
        """Amount still applied: amount - reversed."""
        return self.amount - self.reversed

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @classmethod
    def from_model(cls, row: AllocationModel) -> AllocationRecord:
        return cls(
            id=row.id,
            source_id=row.source_id,
            target_id=row.target_id,
            amount=Money.from_minor(row.amount_minor, row.currency),
            reversed=Money.from_minor(row.reversed_minor, row.currency),
            status=row.status,
            version=row.version,
            created_at=as_utc(row.created_at),
            reversed_at=as_utc(row.reversed_at) if row.reversed_at else None,
            idempotency_key=row.idempotency_key,
            request_hash=row.request_hash,
            batch_id=row.batch_id,
            batch_request_hash=row.batch_request_hash,
        )


@dataclass(frozen=True)
class ReversalRecord:
    """One reverse call against an allocation."""

    id: UUID
    allocation_id: UUID
    amount: Money
    created_at: datetime
    reason: str | None = None
    idempotency_key: str | None = None

    @classmethod
    def from_model(cls, row: AllocationReversalModel) -> ReversalRecord:
        return cls(
            id=row.id,
            allocation_id=row.allocation_id,
            amount=Money.from_minor(row.amount_minor, row.currency),
            created_at=as_utc(row.created_at),
            reason=row.reason,
            idempotency_key=row.idempotency_key,
        )


@dataclass(frozen=True)
class BatchItem:
    """One line of an allocate_batch request."""

    target_id: UUID
    amount: Money


@dataclass(frozen=True)
class PercentageShare:
    """One line of a percentage split: ``percentage`` of the split amount."""

    target_id: UUID
    percentage: Decimal
