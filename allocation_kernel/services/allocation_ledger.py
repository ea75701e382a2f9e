"""
AllocationLedger -- Validated, balance-bounded allocation of sources to targets.

Responsibility:
    Decides whether "allocate A from S to T" is allowed, and if so
    decrements both balances and records the Allocation row.  Also commits
    batches (all-or-nothing) and percentage splits.

Architecture position:
    Kernel > Services -- imperative shell.  Runs inside a transaction owned
    by AllocationOrchestrator; never commits.

Invariants enforced:
    - Validation order, each with its own exception:
        1. source and target exist                  SourceNotFoundError / TargetNotFoundError
        2. amount, source and target currency agree CurrencyMismatchError
        3. amount > 0                               InvalidAmountError
        4. amount <= source remaining               InsufficientSourceBalanceError
        5. amount <= target outstanding             TargetOverAllocationError
        6. source open, target open                 SourceClosedError / TargetClosedError
    - Balances move only through BalanceStore compare-and-set writes; a lost
      compare-and-set raises OptimisticLockError and nothing is inserted.
    - An idempotency key is bound to one request hash.  The same key and
      request replays the stored allocation without touching balances; a
      different request under the same key is IdempotencyMismatchError.
    - Batch items are validated in order against the already-decremented
      balances.  The first failure raises BatchRejectedError naming the
      item; the orchestrator rolls back every earlier item.
    - A batch key is bound to the hash of the whole request (source and
      ordered items, or shares and amount for a percentage split).  A
      reused key replays the stored batch for an identical request and is
      IdempotencyMismatchError otherwise; stored and new items never mix.

Failure modes:
    - Every exception listed above, plus IntegrityError when a concurrent
      writer inserted the same idempotency key first.

Audit relevance:
    Each allocation logs ``allocation_created`` with source, target, amount
    and the balances before and after.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from allocation_kernel.domain.clock import Clock
from allocation_kernel.domain.dtos import (
    AllocationRecord,
    BatchItem,
    PercentageShare,
    SourceSnapshot,
    TargetSnapshot,
)
from allocation_kernel.domain.results import AllocationResult, BatchAllocationResult
from allocation_kernel.domain.splitting import normalize_shares, split_by_percentages
from allocation_kernel.domain.values import Money
from allocation_kernel.exceptions import (
    AllocationKernelError,
    BatchRejectedError,
    CurrencyMismatchError,
    IdempotencyMismatchError,
    InsufficientSourceBalanceError,
    InvalidAmountError,
    OptimisticLockError,
    SourceClosedError,
    TargetClosedError,
    TargetOverAllocationError,
)
from allocation_kernel.logging_config import LogContext, get_logger
from allocation_kernel.models.allocation import Allocation, AllocationStatus
from allocation_kernel.models.source import SourceStatus
from allocation_kernel.models.target import TargetStatus
from allocation_kernel.selectors.allocation_selector import AllocationSelector
from allocation_kernel.services.balance_store import BalanceStore, SqlBalanceStore
from allocation_kernel.services.base import BaseService
from allocation_kernel.utils.hashing import (
    hash_allocation_request,
    hash_batch_request,
    hash_percentage_request,
)
from allocation_kernel.utils.idempotency import (
    item_idempotency_key,
    parse_item_idempotency_key,
    validate_idempotency_key,
)

logger = get_logger("services.allocation_ledger")


class AllocationLedger(BaseService):
    """
    Single writer of allocations.

    Contract:
        allocate() either returns a successful AllocationResult (new or
        replayed) or raises a typed AllocationKernelError; on raise nothing
        has been written by this call.

    Guarantees:
        - source remaining and target outstanding never go negative.
        - amount currency == source currency == target currency on every row.

    Non-goals:
        - Does NOT commit; does NOT retry conflicts (the orchestrator does).
        - Does NOT convert currencies.
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

    def allocate(
        self,
        source_id: UUID,
        target_id: UUID,
        amount: Money,
        idempotency_key: str | None = None,
        batch_id: UUID | None = None,
        batch_request_hash: str | None = None,
    ) -> AllocationResult:
        """
        Allocate ``amount`` from a source to a target.

        Returns:
            AllocationResult with the new allocation and the post-write
            snapshots, or the stored allocation with ``replayed=True``.

        Raises:
            AllocationKernelError subclass per the validation order above.
            OptimisticLockError if either balance changed since it was read.
        """
        if not isinstance(amount, Money):
            raise TypeError(f"amount must be Money, got {type(amount).__name__}")

        request_hash = hash_allocation_request(
            source_id, target_id, amount.amount, amount.currency.code
        )
        if idempotency_key is not None:
            validate_idempotency_key(idempotency_key)
            replay = self._replay(idempotency_key, request_hash)
            if replay is not None:
                return replay

        source = self.store.get_source(source_id)
        target = self.store.get_target(target_id)
        self._validate(source, target, amount)

        new_remaining = source.remaining - amount
        new_outstanding = target.outstanding - amount

        if not self.store.commit_source_remaining(source, new_remaining):
            raise OptimisticLockError("source", str(source.id))
        if not self.store.commit_target_outstanding(target, new_outstanding):
            raise OptimisticLockError("target", str(target.id))

        row = Allocation(
            source_id=source.id,
            target_id=target.id,
            amount_minor=amount.amount,
            currency=amount.currency.code,
            status=AllocationStatus.ACTIVE.value,
            reversed_minor=0,
            idempotency_key=idempotency_key,
            request_hash=request_hash,
            batch_id=batch_id,
            batch_request_hash=batch_request_hash,
            version=0,
            created_at=self.clock.now(),
            created_by_id=self.actor_id,
        )
        self.session.add(row)
        self.session.flush()

        record = AllocationRecord.from_model(row)
        with LogContext.bind(
            source_id=source.id,
            target_id=target.id,
            allocation_id=record.id,
            idempotency_key=idempotency_key,
        ):
            logger.info(
                "allocation_created",
                extra={
                    "amount_minor": amount.amount,
                    "currency": amount.currency.code,
                    "source_remaining_before": source.remaining.amount,
                    "source_remaining_after": new_remaining.amount,
                    "target_outstanding_before": target.outstanding.amount,
                    "target_outstanding_after": new_outstanding.amount,
                    "batch_id": str(batch_id) if batch_id else None,
                },
            )

        return AllocationResult(
            allocation=record,
            source=replace(source, remaining=new_remaining, version=source.version + 1),
            target=replace(target, outstanding=new_outstanding, version=target.version + 1),
        )

    def allocate_batch(
        self,
        source_id: UUID,
        items: Sequence[BatchItem | tuple[UUID, Money]],
        idempotency_key: str | None = None,
    ) -> BatchAllocationResult:
        """
        Allocate several amounts from one source, in order, all or nothing.

        Item ``i`` is stored under key ``"<idempotency_key>:<i>"`` when a
        batch key is given, and every item carries the hash of the whole
        batch.  Reusing the key replays the stored batch only if the source
        and the ordered items are identical.

        Raises:
            BatchRejectedError: wraps the first item failure; ``index``
                names the item and ``code`` is the cause's code.
            IdempotencyMismatchError: the key belongs to a different request.
            OptimisticLockError: propagated unwrapped so it can be retried.
        """
        items = [item if isinstance(item, BatchItem) else BatchItem(*item) for item in items]
        for item in items:
            if not isinstance(item.amount, Money):
                raise TypeError(f"amount must be Money, got {type(item.amount).__name__}")

        batch_hash = None
        if idempotency_key is not None:
            validate_idempotency_key(idempotency_key)
            batch_hash = hash_batch_request(
                source_id,
                [(i.target_id, i.amount.amount, i.amount.currency.code) for i in items],
            )
            replay = self._replay_batch(source_id, idempotency_key, batch_hash)
            if replay is not None:
                return replay

        return self._commit_batch(source_id, items, idempotency_key, batch_hash)

    def allocate_by_percentages(
        self,
        source_id: UUID,
        shares: Sequence[PercentageShare | tuple[UUID, Decimal | int | str]],
        amount: Money | None = None,
        idempotency_key: str | None = None,
    ) -> BatchAllocationResult:
        """
        Split an amount (default: the source's remaining) by percentage and
        commit the parts as one batch.

        The idempotency key is bound to the shares and the requested amount,
        not to the planned parts: the default amount depends on the balance
        at call time, so a retry returns the stored batch instead of
        planning again.

        Raises:
            InvalidSplitError / InvalidAmountError: the split itself is
                malformed (raised before any item is attempted).
            IdempotencyMismatchError: the key belongs to a different request.
            BatchRejectedError: an item of the resulting plan failed.
        """
        normalized = normalize_shares(shares)

        batch_hash = None
        if idempotency_key is not None:
            validate_idempotency_key(idempotency_key)
            batch_hash = hash_percentage_request(
                source_id,
                [(s.target_id, s.percentage) for s in normalized],
                amount.amount if amount is not None else None,
                amount.currency.code if amount is not None else None,
            )
            replay = self._replay_batch(source_id, idempotency_key, batch_hash)
            if replay is not None:
                return replay

        source = self.store.get_source(source_id)
        plan = split_by_percentages(
            amount if amount is not None else source.remaining, normalized
        )
        logger.info(
            "percentage_split_planned",
            extra={
                "source_id": str(source_id),
                "parts": [[str(item.target_id), item.amount.amount] for item in plan],
            },
        )
        return self._commit_batch(source_id, plan, idempotency_key, batch_hash)

    def _commit_batch(
        self,
        source_id: UUID,
        items: list[BatchItem],
        idempotency_key: str | None,
        batch_hash: str | None,
    ) -> BatchAllocationResult:
        batch_id = uuid4()
        records: list[AllocationRecord] = []

        for index, item in enumerate(items):
            key = (
                item_idempotency_key(idempotency_key, index)
                if idempotency_key is not None
                else None
            )
            try:
                result = self.allocate(
                    source_id,
                    item.target_id,
                    item.amount,
                    idempotency_key=key,
                    batch_id=batch_id,
                    batch_request_hash=batch_hash,
                )
            except OptimisticLockError:
                raise
            except AllocationKernelError as exc:
                logger.info(
                    "batch_rejected",
                    extra={
                        "source_id": str(source_id),
                        "failed_index": index,
                        "error_code": exc.code,
                        "items_in_batch": len(items),
                    },
                )
                raise BatchRejectedError(index, exc) from exc
            if result.replayed:
                # Item key already used outside this batch: never mix stored
                # and new allocations in one result
                logger.warning(
                    "idempotency_mismatch",
                    extra={"idempotency_key": key, "allocation_id": str(result.allocation.id)},
                )
                raise IdempotencyMismatchError(
                    idempotency_key, result.allocation.batch_request_hash or "", batch_hash or ""
                )
            records.append(result.allocation)

        logger.info(
            "batch_allocated",
            extra={
                "source_id": str(source_id),
                "batch_id": str(batch_id),
                "item_count": len(records),
            },
        )
        return BatchAllocationResult(
            batch_id=batch_id,
            allocations=tuple(records),
            source=self.store.get_source(source_id),
        )

    def _replay_batch(
        self, source_id: UUID, idempotency_key: str, batch_hash: str
    ) -> BatchAllocationResult | None:
        """The stored batch for this key, or None if the key is unused."""
        first = self.selector.find_by_idempotency_key(item_idempotency_key(idempotency_key, 0))
        if first is None:
            return None
        if first.batch_request_hash != batch_hash:
            logger.warning(
                "idempotency_mismatch",
                extra={"idempotency_key": idempotency_key, "batch_id": str(first.batch_id)},
            )
            raise IdempotencyMismatchError(
                idempotency_key, first.batch_request_hash or "", batch_hash
            )

        records = sorted(
            self.selector.list_for_batch(first.batch_id),
            key=lambda r: parse_item_idempotency_key(r.idempotency_key)[1],
        )
        logger.info(
            "batch_replayed",
            extra={"source_id": str(source_id), "batch_id": str(first.batch_id)},
        )
        return BatchAllocationResult(
            batch_id=first.batch_id,
            allocations=tuple(records),
            source=self.store.get_source(source_id),
            replayed=True,
        )

    def _replay(self, idempotency_key: str, request_hash: str) -> AllocationResult | None:
        existing = self.selector.find_by_idempotency_key(idempotency_key)
        if existing is None:
            return None
        if existing.request_hash != request_hash:
            logger.warning(
                "idempotency_mismatch",
                extra={
                    "idempotency_key": idempotency_key,
                    "allocation_id": str(existing.id),
                },
            )
            raise IdempotencyMismatchError(
                idempotency_key, existing.request_hash or "", request_hash
            )
        logger.info(
            "allocation_replayed",
            extra={"idempotency_key": idempotency_key, "allocation_id": str(existing.id)},
        )
        return AllocationResult(
            allocation=existing,
            source=self.store.get_source(existing.source_id),
            target=self.store.get_target(existing.target_id),
            replayed=True,
        )

    @staticmethod
    def _validate(source: SourceSnapshot, target: TargetSnapshot, amount: Money) -> None:
        if amount.currency.code != source.currency:
            raise CurrencyMismatchError(source.currency, amount.currency.code, "amount vs source")
        if target.currency != source.currency:
            raise CurrencyMismatchError(source.currency, target.currency, "target vs source")
        if not amount.is_positive:
            raise InvalidAmountError(amount)
        if amount > source.remaining:
            raise InsufficientSourceBalanceError(str(source.id), amount, source.remaining)
        if amount > target.outstanding:
            raise TargetOverAllocationError(str(target.id), amount, target.outstanding)
        if source.status != SourceStatus.OPEN.value:
            raise SourceClosedError(str(source.id), source.status)
        if target.status != TargetStatus.OPEN.value:
            raise TargetClosedError(str(target.id), target.status)
