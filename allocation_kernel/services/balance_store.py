"""
BalanceStore -- Versioned reads and compare-and-set writes of balances.

Responsibility:
    The only code that issues UPDATE statements against source remaining
    and target outstanding balances.  Reads hand out versioned snapshots;
    writes succeed only if the row still has the version (and balance) the
    snapshot was taken at.

Architecture position:
    Kernel > Services.  Used by AllocationLedger, ReversalService and
    DocumentRegistry inside a transaction owned by AllocationOrchestrator.

Invariants enforced:
    - Every write bumps ``version`` by exactly one.
    - A write against a stale snapshot changes nothing and returns False;
      callers turn that into OptimisticLockError (CONFLICT) and the
      orchestrator retries the whole operation from validation.

Failure modes:
    - SourceNotFoundError / TargetNotFoundError on unknown ids.
    - IntegrityError if a write would break a CHECK constraint (the ledger
      validates before writing, so this indicates a bug).
"""

from typing import Protocol
from uuid import UUID

from sqlalchemy import select, update

from allocation_kernel.domain.dtos import SourceSnapshot, TargetSnapshot
from allocation_kernel.domain.values import Money
from allocation_kernel.exceptions import SourceNotFoundError, TargetNotFoundError
from allocation_kernel.logging_config import get_logger
from allocation_kernel.models.source import AllocatableSource
from allocation_kernel.models.target import AllocationTarget
from allocation_kernel.services.base import BaseService

logger = get_logger("services.balance_store")


class BalanceStore(Protocol):
    """Versioned access to source and target balances."""

    def get_source(self, source_id: UUID) -> SourceSnapshot:
        ...

    def get_target(self, target_id: UUID) -> TargetSnapshot:
        ...

    def commit_source_remaining(self, snapshot: SourceSnapshot, new_remaining: Money) -> bool:
        ...

    def commit_target_outstanding(self, snapshot: TargetSnapshot, new_outstanding: Money) -> bool:
        ...

    def commit_source_status(self, snapshot: SourceSnapshot, status: str) -> bool:
        ...

    def commit_target_status(self, snapshot: TargetSnapshot, status: str) -> bool:
        ...


class SqlBalanceStore(BaseService):
    """
    SQLAlchemy implementation of BalanceStore.

    Contract:
        Reads always hit the database (populate_existing), so a snapshot
        taken after a write in the same transaction sees that write.

    Guarantees:
        - commit_* methods return True iff exactly one row matched
          (id, version, balance) and was updated.
    """

    def get_source(self, source_id: UUID) -> SourceSnapshot:
        row = self.session.execute(
            select(AllocatableSource)
            .where(AllocatableSource.id == source_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise SourceNotFoundError(str(source_id))
        return SourceSnapshot.from_model(row)

    def get_target(self, target_id: UUID) -> TargetSnapshot:
        row = self.session.execute(
            select(AllocationTarget)
            .where(AllocationTarget.id == target_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise TargetNotFoundError(str(target_id))
        return TargetSnapshot.from_model(row)

    def commit_source_remaining(self, snapshot: SourceSnapshot, new_remaining: Money) -> bool:
        stmt = (
            update(AllocatableSource)
            .where(
                AllocatableSource.id == snapshot.id,
                AllocatableSource.version == snapshot.version,
                AllocatableSource.remaining_minor == snapshot.remaining.amount,
            )
            .values(
                remaining_minor=new_remaining.amount,
                version=snapshot.version + 1,
                updated_by_id=self.actor_id,
            )
        )
        return self._apply(stmt, "source", snapshot.id, snapshot.version)

    def commit_target_outstanding(self, snapshot: TargetSnapshot, new_outstanding: Money) -> bool:
        stmt = (
            update(AllocationTarget)
            .where(
                AllocationTarget.id == snapshot.id,
                AllocationTarget.version == snapshot.version,
                AllocationTarget.outstanding_minor == snapshot.outstanding.amount,
            )
            .values(
                outstanding_minor=new_outstanding.amount,
                version=snapshot.version + 1,
                updated_by_id=self.actor_id,
            )
        )
        return self._apply(stmt, "target", snapshot.id, snapshot.version)

    def commit_source_status(self, snapshot: SourceSnapshot, status: str) -> bool:
        stmt = (
            update(AllocatableSource)
            .where(
                AllocatableSource.id == snapshot.id,
                AllocatableSource.version == snapshot.version,
            )
            .values(status=status, version=snapshot.version + 1, updated_by_id=self.actor_id)
        )
        return self._apply(stmt, "source", snapshot.id, snapshot.version)

    def commit_target_status(self, snapshot: TargetSnapshot, status: str) -> bool:
        stmt = (
            update(AllocationTarget)
            .where(
                AllocationTarget.id == snapshot.id,
                AllocationTarget.version == snapshot.version,
            )
            .values(status=status, version=snapshot.version + 1, updated_by_id=self.actor_id)
        )
        return self._apply(stmt, "target", snapshot.id, snapshot.version)

    def _apply(self, stmt, entity_type: str, entity_id: UUID, expected_version: int) -> bool:
        result = self.session.execute(
            stmt.execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info(
                "cas_write_rejected",
                extra={
                    "entity_type": entity_type,
                    "entity_id": str(entity_id),
                    "expected_version": expected_version,
                },
            )
            return False
        return True
