"""
Module: allocation_kernel.selectors.allocation_selector
Responsibility: Read-only queries over allocations and reversals: lookups by
    id and idempotency key, listings per source and per target, per-target
    summaries, and the conservation replay that recomputes balances from
    the allocation rows.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Conservation: for every source,
          total == remaining + sum(amount - reversed over its allocations)
      and for every target,
          opening_outstanding == outstanding + sum(amount - reversed).
      The replay methods report both sides so a reconciliation job can
      flag drift.

Audit relevance:
    Allocation rows are append-only; the replay here is how an auditor
    proves that the stored balances match the trail.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func, select

from allocation_kernel.domain.dtos import (
    AllocationRecord,
    ReversalRecord,
    SourceSnapshot,
    TargetSnapshot,
)
from allocation_kernel.domain.values import Money
from allocation_kernel.models.allocation import (
    Allocation,
    AllocationReversal,
    AllocationStatus,
)
from allocation_kernel.models.source import AllocatableSource
from allocation_kernel.models.target import AllocationTarget
from allocation_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class TargetAllocationSummary:
    """What has been applied to one target, and whether it adds up."""

    target: TargetSnapshot
    allocated: Money
    reversed: Money
    net: Money
    allocation_count: int

    @property
    def replayed_outstanding(self) -> Money:
        return self.target.opening_outstanding - self.net

    @property
    def is_consistent(self) -> bool:
        return self.replayed_outstanding == self.target.outstanding


@dataclass(frozen=True)
class SourceReplay:
    """Source remaining recomputed from its allocations."""

    source: SourceSnapshot
    allocated: Money
    reversed: Money
    active_count: int

    @property
    def net(self) -> Money:
        return self.allocated - self.reversed

    @property
    def replayed_remaining(self) -> Money:
        return self.source.total - self.net

    @property
    def is_consistent(self) -> bool:
        return self.replayed_remaining == self.source.remaining


class AllocationSelector(BaseSelector):
    """Read-only access to allocations and reversals."""

    def get_allocation(self, allocation_id: UUID) -> AllocationRecord | None:
        row = self.session.execute(
            self._fresh(select(Allocation).where(Allocation.id == allocation_id))
        ).scalar_one_or_none()
        return AllocationRecord.from_model(row) if row is not None else None

    def find_by_idempotency_key(self, key: str) -> AllocationRecord | None:
        row = self.session.execute(
            self._fresh(select(Allocation).where(Allocation.idempotency_key == key))
        ).scalar_one_or_none()
        return AllocationRecord.from_model(row) if row is not None else None

    def find_reversal_by_idempotency_key(self, key: str) -> ReversalRecord | None:
        row = self.session.execute(
            self._fresh(
                select(AllocationReversal).where(AllocationReversal.idempotency_key == key)
            )
        ).scalar_one_or_none()
        return ReversalRecord.from_model(row) if row is not None else None

    def reversal_request_hash(self, reversal_id: UUID) -> str | None:
        return self.session.execute(
            select(AllocationReversal.request_hash).where(AllocationReversal.id == reversal_id)
        ).scalar_one_or_none()

    def list_for_source(
        self, source_id: UUID, active_only: bool = False
    ) -> list[AllocationRecord]:
        """Allocations drawn from a source, oldest first."""
        stmt = select(Allocation).where(Allocation.source_id == source_id)
        if active_only:
            stmt = stmt.where(Allocation.status == AllocationStatus.ACTIVE.value)
        stmt = stmt.order_by(Allocation.created_at, Allocation.id)
        return [
            AllocationRecord.from_model(row)
            for row in self.session.execute(self._fresh(stmt)).scalars()
        ]

    def list_for_target(self, target_id: UUID) -> list[AllocationRecord]:
        """Allocations applied to a target, oldest first."""
        stmt = (
            select(Allocation)
            .where(Allocation.target_id == target_id)
            .order_by(Allocation.created_at, Allocation.id)
        )
        return [
            AllocationRecord.from_model(row)
            for row in self.session.execute(self._fresh(stmt)).scalars()
        ]

    def list_for_batch(self, batch_id: UUID) -> list[AllocationRecord]:
        stmt = (
            select(Allocation)
            .where(Allocation.batch_id == batch_id)
            .order_by(Allocation.created_at, Allocation.id)
        )
        return [
            AllocationRecord.from_model(row)
            for row in self.session.execute(self._fresh(stmt)).scalars()
        ]

    def list_reversals(self, allocation_id: UUID) -> list[ReversalRecord]:
        stmt = (
            select(AllocationReversal)
            .where(AllocationReversal.allocation_id == allocation_id)
            .order_by(AllocationReversal.created_at, AllocationReversal.id)
        )
        return [
            ReversalRecord.from_model(row)
            for row in self.session.execute(self._fresh(stmt)).scalars()
        ]

    def count_active_for_source(self, source_id: UUID) -> int:
        return self.session.execute(
            select(func.count(Allocation.id)).where(
                Allocation.source_id == source_id,
                Allocation.status == AllocationStatus.ACTIVE.value,
            )
        ).scalar_one()

    def _sums(self, column, entity_id: UUID) -> tuple[int, int, int]:
        allocated, reversed_, active = self.session.execute(
            select(
                func.coalesce(func.sum(Allocation.amount_minor), 0),
                func.coalesce(func.sum(Allocation.reversed_minor), 0),
                func.count(Allocation.id).filter(
                    Allocation.status == AllocationStatus.ACTIVE.value
                ),
            ).where(column == entity_id)
        ).one()
        return int(allocated), int(reversed_), int(active)

    def target_summary(self, target_id: UUID) -> TargetAllocationSummary | None:
        row = self.session.execute(
            self._fresh(select(AllocationTarget).where(AllocationTarget.id == target_id))
        ).scalar_one_or_none()
        if row is None:
            return None
        target = TargetSnapshot.from_model(row)
        allocated, reversed_, _ = self._sums(Allocation.target_id, target_id)
        count = self.session.execute(
            select(func.count(Allocation.id)).where(Allocation.target_id == target_id)
        ).scalar_one()
        allocated_money = Money.from_minor(allocated, target.currency)
        reversed_money = Money.from_minor(reversed_, target.currency)
        return TargetAllocationSummary(
            target=target,
            allocated=allocated_money,
            reversed=reversed_money,
            net=allocated_money - reversed_money,
            allocation_count=count,
        )

    def source_replay(self, source_id: UUID) -> SourceReplay | None:
        row = self.session.execute(
            self._fresh(select(AllocatableSource).where(AllocatableSource.id == source_id))
        ).scalar_one_or_none()
        if row is None:
            return None
        source = SourceSnapshot.from_model(row)
        allocated, reversed_, active = self._sums(Allocation.source_id, source_id)
        return SourceReplay(
            source=source,
            allocated=Money.from_minor(allocated, source.currency),
            reversed=Money.from_minor(reversed_, source.currency),
            active_count=active,
        )
