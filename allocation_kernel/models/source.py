"""
Module: allocation_kernel.models.source
Responsibility: ORM persistence for allocatable sources -- issued credit notes
    and completed payments whose balance can be distributed to targets.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - 0 <= remaining_minor <= total_minor (CHECK constraints).
    - total_minor is fixed at registration; only the allocation ledger and the
      reversal service write remaining_minor, always through a version
      compare-and-set.
    - total_minor == remaining_minor + sum(active allocation net amounts);
      verified by AllocationSelector.verify_source_conservation().

Failure modes:
    - IntegrityError if a write would break a CHECK constraint (a bug in the
      caller: the ledger validates before writing).
"""

from datetime import date
from enum import Enum

from sqlalchemy import CheckConstraint, Date, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from allocation_kernel.db.base import TrackedBase
from allocation_kernel.db.types import CurrencyCode, MinorUnits


class SourceKind(str, Enum):
    """What kind of document funds the source."""

    CREDIT_NOTE = "credit_note"
    PAYMENT = "payment"


class SourceStatus(str, Enum):
    """Lifecycle of a source.  VOIDED is terminal."""

    OPEN = "open"
    VOIDED = "voided"


class AllocatableSource(TrackedBase):
    """
    A finite amount that can be distributed across targets.

    Contract:
        Registered by DocumentRegistry once the originating document is
        allocatable (credit note issued, payment completed or succeeded).

    Guarantees:
        - currency is fixed for the lifetime of the row.
        - version increments on every balance or status write.
    """

    __tablename__ = "allocatable_sources"

    __table_args__ = (
        CheckConstraint("total_minor >= 0", name="ck_source_total_non_negative"),
        CheckConstraint("remaining_minor >= 0", name="ck_source_remaining_non_negative"),
        CheckConstraint(
            "remaining_minor <= total_minor", name="ck_source_remaining_within_total"
        ),
        Index("idx_source_kind_status", "kind", "status"),
        Index("idx_source_currency", "currency"),
        Index("idx_source_issued_on", "issued_on"),
    )

    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    currency: Mapped[CurrencyCode] = mapped_column(nullable=False)

    total_minor: Mapped[MinorUnits] = mapped_column(nullable=False)

    remaining_minor: Mapped[MinorUnits] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(
        String(10),
        default=SourceStatus.OPEN.value,
        nullable=False,
    )

    # Optimistic-lock counter for compare-and-set writes
    version: Mapped[int] = mapped_column(default=0, nullable=False)

    # Status of the originating document when it was registered
    document_status: Mapped[str] = mapped_column(String(30), nullable=False)

    issued_on: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Document number (e.g. "CN-2024-0042")
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<AllocatableSource {self.id} {self.kind} "
            f"{self.remaining_minor}/{self.total_minor} {self.currency}>"
        )
