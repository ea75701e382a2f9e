"""
ReversalService -- Full and partial reversal of allocations.

Responsibility:
    Gives an allocated amount back: source remaining and target outstanding
    go up by the reversed amount, the allocation records how much of it has
    been reversed, and an AllocationReversal row records the call.

Architecture position:
    Kernel > Services -- imperative shell.  Runs inside a transaction owned
    by AllocationOrchestrator; never commits.

Invariants enforced:
    - 0 < amount <= allocation.amount - allocation.reversed.
    - Source, target and allocation are all written by compare-and-set;
      any lost compare-and-set raises OptimisticLockError and the
      orchestrator rolls all three back together.
    - When reversed == amount the allocation status becomes ``reversed``;
      the row itself is never deleted.
    - Reversal is allowed against a closed target: it restores the
      target's outstanding balance but does not reopen it.

Failure modes:
    - AllocationNotFoundError, AlreadyReversedError, InvalidAmountError,
      ExcessiveReversalError, CurrencyMismatchError, InvalidReversalReasonError,
      IdempotencyMismatchError, OptimisticLockError.

Audit relevance:
    ``reason`` is a free-text reason code (``duplicate``,
    ``requested_by_customer``, ...).  It is stored on the reversal row and
    logged; no per-reason policy is applied here.
"""

from __future__ import annotations

from dataclasses import replace
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from allocation_kernel.domain.clock import Clock
from allocation_kernel.domain.dtos import AllocationRecord, ReversalRecord
from allocation_kernel.domain.results import BulkReversalResult, ReversalResult
from allocation_kernel.domain.values import Money
from allocation_kernel.exceptions import (
    AllocationNotFoundError,
    AlreadyReversedError,
    CurrencyMismatchError,
    ExcessiveReversalError,
    IdempotencyMismatchError,
    InvalidAmountError,
    InvalidReversalReasonError,
    OptimisticLockError,
)
from allocation_kernel.logging_config import LogContext, get_logger
from allocation_kernel.models.allocation import (
    MAX_REASON_LENGTH,
    Allocation,
    AllocationReversal,
    AllocationStatus,
)
from allocation_kernel.selectors.allocation_selector import AllocationSelector
from allocation_kernel.services.balance_store import BalanceStore, SqlBalanceStore
from allocation_kernel.services.base import BaseService
from allocation_kernel.utils.hashing import hash_reversal_request
from allocation_kernel.utils.idempotency import validate_idempotency_key

logger = get_logger("services.reversal")


class ReversalService(BaseService):
    """
    Reverses allocations, fully or partially.

    Contract:
        reverse() returns a successful ReversalResult or raises; on raise
        nothing has been written by this call.

    Guarantees:
        - Reversing the full unreversed amount restores source remaining
          and target outstanding to exactly what they were before the
          allocation (given no other changes in between).

    Non-goals:
        - Does NOT decide whether a refund is allowed for a given reason.
        - Does NOT commit.
    """

    def __init__(
        self,
        session: Session,
        actor_id: UUID,
        clock: Clock | None = None,
        store: BalanceStore | None = None,
    ):
        super().__init__(session, actor_id, clock)
        self.store = store or SqlBalanceStore(session, actor_id, self.clock)
        self.selector = AllocationSelector(session)

    def reverse(
        self,
        allocation_id: UUID,
        amount: Money | None = None,
        reason: str | None = None,
        idempotency_key: str | None = None,
    ) -> ReversalResult:
        """
        Reverse ``amount`` (default: everything not yet reversed).

        Returns:
            ReversalResult with the reversal row and the allocation's new
            state, or the stored reversal with ``replayed=True``.
        """
        if reason is not None and not 0 < len(reason) <= MAX_REASON_LENGTH:
            raise InvalidReversalReasonError(reason, MAX_REASON_LENGTH)

        request_hash = hash_reversal_request(
            allocation_id, amount.amount if amount is not None else None, reason
        )
        if idempotency_key is not None:
            validate_idempotency_key(idempotency_key)
            replay = self._replay(idempotency_key, request_hash)
            if replay is not None:
                return replay

        allocation = self.selector.get_allocation(allocation_id)
        if allocation is None:
            raise AllocationNotFoundError(str(allocation_id))
        if not allocation.is_active:
            raise AlreadyReversedError(str(allocation_id))

        reversible = allocation.net
        if amount is None:
            amount = reversible
        elif amount.currency != allocation.amount.currency:
            raise CurrencyMismatchError(
                allocation.amount.currency.code, amount.currency.code, "reversal"
            )
        if not amount.is_positive:
            raise InvalidAmountError(amount)
        if amount > reversible:
            raise ExcessiveReversalError(str(allocation_id), amount, reversible)

        source = self.store.get_source(allocation.source_id)
        target = self.store.get_target(allocation.target_id)

        new_remaining = source.remaining + amount
        new_outstanding = target.outstanding + amount
        if not self.store.commit_source_remaining(source, new_remaining):
            raise OptimisticLockError("source", str(source.id))
        if not self.store.commit_target_outstanding(target, new_outstanding):
            raise OptimisticLockError("target", str(target.id))

        now = self.clock.now()
        new_reversed = allocation.reversed + amount
        fully_reversed = new_reversed == allocation.amount
        new_status = (
            AllocationStatus.REVERSED.value if fully_reversed else AllocationStatus.ACTIVE.value
        )
        result = self.session.execute(
            update(Allocation)
            .where(
                Allocation.id == allocation.id,
                Allocation.version == allocation.version,
                Allocation.reversed_minor == allocation.reversed.amount,
            )
            .values(
                reversed_minor=new_reversed.amount,
                status=new_status,
                reversed_at=now if fully_reversed else None,
                version=allocation.version + 1,
                updated_by_id=self.actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise OptimisticLockError("allocation", str(allocation.id))

        row = AllocationReversal(
            allocation_id=allocation.id,
            amount_minor=amount.amount,
            currency=amount.currency.code,
            reason=reason,
            idempotency_key=idempotency_key,
            request_hash=request_hash,
            created_at=now,
            created_by_id=self.actor_id,
        )
        self.session.add(row)
        self.session.flush()

        with LogContext.bind(
            allocation_id=allocation.id,
            source_id=source.id,
            target_id=target.id,
            idempotency_key=idempotency_key,
        ):
            logger.info(
                "allocation_reversed",
                extra={
                    "amount_minor": amount.amount,
                    "currency": amount.currency.code,
                    "reason": reason,
                    "fully_reversed": fully_reversed,
                    "reversed_total_minor": new_reversed.amount,
                },
            )

        return ReversalResult(
            reversal=ReversalRecord.from_model(row),
            allocation=replace(
                allocation,
                reversed=new_reversed,
                status=new_status,
                reversed_at=now if fully_reversed else None,
                version=allocation.version + 1,
            ),
        )

    def reverse_all(self, source_id: UUID, reason: str | None = None) -> BulkReversalResult:
        """
        Reverse every active allocation drawn from a source, oldest first.

        Used before voiding a source.  A source without active allocations
        yields an empty, successful result.
        """
        self.store.get_source(source_id)
        reversals: list[ReversalRecord] = []
        for allocation in self.selector.list_for_source(source_id, active_only=True):
            reversals.append(self.reverse(allocation.id, reason=reason).reversal)

        logger.info(
            "source_allocations_reversed",
            extra={"source_id": str(source_id), "reversal_count": len(reversals)},
        )
        return BulkReversalResult(
            reversals=tuple(reversals),
            source=self.store.get_source(source_id),
        )

    def _replay(self, idempotency_key: str, request_hash: str) -> ReversalResult | None:
        existing = self.selector.find_reversal_by_idempotency_key(idempotency_key)
        if existing is None:
            return None
        stored_hash = self.selector.reversal_request_hash(existing.id)
        if stored_hash != request_hash:
            logger.warning(
                "idempotency_mismatch",
                extra={"idempotency_key": idempotency_key, "reversal_id": str(existing.id)},
            )
            raise IdempotencyMismatchError(idempotency_key, stored_hash or "", request_hash)
        allocation: AllocationRecord | None = self.selector.get_allocation(existing.allocation_id)
        logger.info(
            "reversal_replayed",
            extra={"idempotency_key": idempotency_key, "reversal_id": str(existing.id)},
        )
        return ReversalResult(reversal=existing, allocation=allocation, replayed=True)
