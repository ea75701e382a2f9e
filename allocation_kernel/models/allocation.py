"""
Module: allocation_kernel.models.allocation
Responsibility: ORM persistence for Allocation records (amount moved from one
    source to one target) and AllocationReversal audit rows (one per reverse
    call).
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - amount_minor > 0 and 0 <= reversed_minor <= amount_minor (CHECK).
    - idempotency_key is unique when present, on both tables.
    - Rows are append-only: db/immutability.py rejects DELETE and any change
      to source_id, target_id, amount_minor, currency, idempotency_key,
      request_hash, batch_id or created_at.  Only the reversal columns
      (reversed_minor, status, reversed_at, version) ever move, and only
      through ReversalService.

Audit relevance:
    Allocation rows are the single source of truth from which source
    remaining and target outstanding balances can be replayed.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from allocation_kernel.db.base import TrackedBase, UUIDString
from allocation_kernel.db.types import CurrencyCode, MinorUnits, PayloadHash

# Longest reason code AllocationReversal.reason can store
MAX_REASON_LENGTH = 100


class AllocationStatus(str, Enum):
    """ACTIVE until fully reversed; REVERSED is terminal."""

    ACTIVE = "active"
    REVERSED = "reversed"


class Allocation(TrackedBase):
    """
    Immutable record of an amount moved from a source to a target.

    Guarantees:
        - currency equals the source's and the target's currency.
        - net amount (amount_minor - reversed_minor) is what the source has
          given up and the target has received.
    """

    __tablename__ = "allocations"

    __table_args__ = (
        CheckConstraint("amount_minor > 0", name="ck_allocation_amount_positive"),
        CheckConstraint("reversed_minor >= 0", name="ck_allocation_reversed_non_negative"),
        CheckConstraint(
            "reversed_minor <= amount_minor", name="ck_allocation_reversed_within_amount"
        ),
        UniqueConstraint("idempotency_key", name="uq_allocation_idempotency"),
        Index("idx_allocation_source", "source_id", "status"),
        Index("idx_allocation_target", "target_id", "status"),
        Index("idx_allocation_batch", "batch_id"),
    )

    source_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("allocatable_sources.id"),
        nullable=False,
    )

    target_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("allocation_targets.id"),
        nullable=False,
    )

    amount_minor: Mapped[MinorUnits] = mapped_column(nullable=False)

    currency: Mapped[CurrencyCode] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(
        String(10),
        default=AllocationStatus.ACTIVE.value,
        nullable=False,
    )

    reversed_minor: Mapped[MinorUnits] = mapped_column(default=0, nullable=False)

    idempotency_key: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Hash of the request that created this allocation, for replay checks
    request_hash: Mapped[PayloadHash | None] = mapped_column(nullable=True)

    # Shared by every allocation committed in one batch call
    batch_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # Hash of the whole keyed batch request; the same on every item of the batch
    batch_request_hash: Mapped[PayloadHash | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(default=0, nullable=False)

    reversed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def net_minor(self) -> int:
        return self.amount_minor - self.reversed_minor

    def __repr__(self) -> str:
        return (
            f"<Allocation {self.id} {self.source_id}->{self.target_id} "
            f"{self.amount_minor} {self.currency} {self.status}>"
        )


class AllocationReversal(TrackedBase):
    """One row per reverse call; append-only."""

    __tablename__ = "allocation_reversals"

    __table_args__ = (
        CheckConstraint("amount_minor > 0", name="ck_reversal_amount_positive"),
        UniqueConstraint("idempotency_key", name="uq_reversal_idempotency"),
        Index("idx_reversal_allocation", "allocation_id"),
    )

    allocation_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("allocations.id"),
        nullable=False,
    )

    amount_minor: Mapped[MinorUnits] = mapped_column(nullable=False)

    currency: Mapped[CurrencyCode] = mapped_column(nullable=False)

    # Free-text reason code, e.g. "duplicate", "requested_by_customer"
    reason: Mapped[str | None] = mapped_column(String(MAX_REASON_LENGTH), nullable=True)

    idempotency_key: Mapped[str | None] = mapped_column(String(255), nullable=True)

    request_hash: Mapped[PayloadHash | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<AllocationReversal {self.allocation_id} {self.amount_minor} {self.currency}>"
