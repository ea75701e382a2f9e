"""
Module: allocation_kernel.models.target
Responsibility: ORM persistence for allocation targets -- invoices, expenses
    and projects with an outstanding balance.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - outstanding_minor >= 0 (CHECK constraint).
    - opening_outstanding_minor is fixed at registration and is the baseline
      for replaying the target's outstanding balance from allocations.
"""

from enum import Enum

from sqlalchemy import CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from allocation_kernel.db.base import TrackedBase
from allocation_kernel.db.types import CurrencyCode, MinorUnits


class TargetKind(str, Enum):
    INVOICE = "invoice"
    EXPENSE = "expense"
    PROJECT = "project"


class TargetStatus(str, Enum):
    """CLOSED means settled by other means; no further allocations."""

    OPEN = "open"
    CLOSED = "closed"


class AllocationTarget(TrackedBase):
    """An entity receiving amounts against its outstanding balance."""

    __tablename__ = "allocation_targets"

    __table_args__ = (
        CheckConstraint(
            "outstanding_minor >= 0", name="ck_target_outstanding_non_negative"
        ),
        CheckConstraint(
            "opening_outstanding_minor >= 0", name="ck_target_opening_non_negative"
        ),
        Index("idx_target_kind_status", "kind", "status"),
    )

    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    currency: Mapped[CurrencyCode] = mapped_column(nullable=False)

    outstanding_minor: Mapped[MinorUnits] = mapped_column(nullable=False)

    opening_outstanding_minor: Mapped[MinorUnits] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(
        String(10),
        default=TargetStatus.OPEN.value,
        nullable=False,
    )

    version: Mapped[int] = mapped_column(default=0, nullable=False)

    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<AllocationTarget {self.id} {self.kind} "
            f"outstanding={self.outstanding_minor} {self.currency}>"
        )
