"""
AllocationOrchestrator -- Transaction boundary and public entry point.

Responsibility:
    Owns one database transaction per request.  Wires the kernel services
    for each attempt, holds the per-entity locks for the lifetime of the
    transaction, retries lost compare-and-set races, and converts every
    domain exception into a typed result object.

Architecture position:
    Kernel > Services -- top of the service layer.  Nothing below this
    module commits; this is the only place that does.

Invariants enforced:
    - One attempt == one session == one transaction.  Any exception rolls
      the whole attempt back: a batch, a percentage split or a reverse_all
      commits completely or not at all.
    - Only conflicts are retried: OptimisticLockError (a lost
      compare-and-set) and IntegrityError (a concurrent insert of the same
      idempotency key or id).  Every attempt re-reads and re-validates.
      After ``max_conflict_retries`` retries the caller gets CONFLICT.
    - Locks for every source, target and allocation the request names are
      taken in sorted order before the transaction begins.

Failure modes:
    - Write operations never raise kernel errors; they return results whose
      ``error`` is an ErrorKind.
    - Read operations raise the typed exceptions (NotFoundError,
      ExchangeRateNotFoundError).
    - Unexpected exceptions (programming errors, database outages) roll
      back and propagate unchanged.

Audit relevance:
    Every attempt runs under a fresh correlation id bound into LogContext,
    so the ``cas_conflict_retry`` lines of a request can be tied to its
    final ``allocation_created`` line.

Usage:
    from allocation_kernel.services.allocation_orchestrator import AllocationOrchestrator

    orchestrator = AllocationOrchestrator(get_session_factory(), clock=clock)
    result = orchestrator.allocate(source_id, target_id, Money.of("25.00", "USD"))
    if not result.is_success:
        respond(result.error, result.message)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from allocation_kernel.domain.clock import Clock, SystemClock
from allocation_kernel.domain.dtos import (
    AllocationRecord,
    BatchItem,
    PercentageShare,
    ReversalRecord,
    SourceSnapshot,
    TargetSnapshot,
)
from allocation_kernel.domain.rates import RateProvider
from allocation_kernel.domain.results import (
    AllocationResult,
    BatchAllocationResult,
    BulkReversalResult,
    ErrorKind,
    OperationResult,
    ReversalResult,
    SourceResult,
    TargetResult,
)
from allocation_kernel.domain.statistics import SourceFilter, SourceStatistics
from allocation_kernel.domain.values import ExchangeRate, Money
from allocation_kernel.exceptions import (
    AllocationKernelError,
    AllocationNotFoundError,
    BatchRejectedError,
    OptimisticLockError,
    SourceNotFoundError,
    TargetNotFoundError,
)
from allocation_kernel.logging_config import LogContext, get_logger
from allocation_kernel.selectors.allocation_selector import (
    AllocationSelector,
    SourceReplay,
    TargetAllocationSummary,
)
from allocation_kernel.selectors.rate_selector import RateSelector, StoredRateProvider
from allocation_kernel.selectors.statistics_selector import StatisticsSelector
from allocation_kernel.services.allocation_ledger import AllocationLedger
from allocation_kernel.services.balance_store import BalanceStore, SqlBalanceStore
from allocation_kernel.services.document_registry import DocumentRegistry
from allocation_kernel.services.locking import KeyedLockRegistry
from allocation_kernel.services.rate_service import ExchangeRateService
from allocation_kernel.services.reversal_service import ReversalService

if TYPE_CHECKING:
    from datetime import date

    from allocation_config import AllocationConfig

logger = get_logger("services.orchestrator")

T = TypeVar("T")
R = TypeVar("R", bound=OperationResult)

# Actor recorded when the caller does not name one
SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000001")

StoreFactory = Callable[[Session, UUID, Clock], BalanceStore]


def _source_key(source_id: UUID) -> str:
    return f"source:{source_id}"


def _target_key(target_id: UUID) -> str:
    return f"target:{target_id}"


def _allocation_key(allocation_id: UUID) -> str:
    return f"allocation:{allocation_id}"


def _share_target(share: PercentageShare | tuple) -> UUID:
    return share.target_id if isinstance(share, PercentageShare) else share[0]


def _item_target(item: BatchItem | tuple) -> UUID:
    return item.target_id if isinstance(item, BatchItem) else item[0]


@dataclass
class _Services:
    """The kernel services of one attempt, all bound to the same session."""

    session: Session
    ledger: AllocationLedger
    reversals: ReversalService
    registry: DocumentRegistry
    rates: ExchangeRateService


class AllocationOrchestrator:
    """
    Public API of the allocation engine.

    Contract:
        Every write method returns an OperationResult subclass.  A result
        with ``is_success`` True has been committed; any other result left
        the database unchanged.

    Non-goals:
        - Does NOT hold sessions between calls.
        - Does NOT retry anything but conflicts; a caller that timed out
          retries with the same idempotency key.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        max_conflict_retries: int = 3,
        actor_id: UUID | None = None,
        lock_registry: KeyedLockRegistry | None = None,
        display_currency: str | None = None,
        store_factory: StoreFactory | None = None,
    ):
        if max_conflict_retries < 0:
            raise ValueError("max_conflict_retries must not be negative")
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self.max_conflict_retries = max_conflict_retries
        self.actor_id = actor_id or SYSTEM_ACTOR_ID
        self.locks = lock_registry or KeyedLockRegistry()
        self.display_currency = display_currency
        self._store_factory: StoreFactory = store_factory or SqlBalanceStore

    @classmethod
    def from_config(
        cls, config: AllocationConfig, clock: Clock | None = None
    ) -> AllocationOrchestrator:
        """
        Initialise the engine from a loaded configuration and create the
        schema if it does not exist yet.
        """
        from allocation_kernel.db.engine import (
            create_tables,
            get_session_factory,
            init_engine_from_url,
        )

        db = config.database
        init_engine_from_url(
            db.url,
            echo=db.echo,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
            sqlite_timeout=db.sqlite_timeout,
        )
        create_tables()
        return cls(
            get_session_factory(),
            clock=clock,
            max_conflict_retries=config.engine.max_conflict_retries,
            actor_id=config.engine.default_actor,
            display_currency=config.reporting.display_currency,
        )

    @property
    def clock(self) -> Clock:
        return self._clock

    # ------------------------------------------------------------------
    # Transaction handling
    # ------------------------------------------------------------------

    def _services(self, session: Session) -> _Services:
        store = self._store(session)
        return _Services(
            session=session,
            ledger=AllocationLedger(session, self.actor_id, self._clock, store),
            reversals=ReversalService(session, self.actor_id, self._clock, store),
            registry=DocumentRegistry(session, self.actor_id, self._clock, store),
            rates=ExchangeRateService(session, self.actor_id, self._clock),
        )

    def _run(
        self,
        operation: str,
        lock_keys: Iterable[str],
        work: Callable[[_Services], T],
    ) -> T:
        """
        Run ``work`` in its own transaction, retrying conflicts.

        Raises:
            OptimisticLockError: conflicts outlasted the retry budget;
                ``attempts`` is the number of attempts made.
            Whatever ``work`` raised otherwise, after rollback.
        """
        keys = tuple(lock_keys)
        attempts = 0
        last_conflict: OptimisticLockError | None = None

        with LogContext.bind(actor_id=self.actor_id):
            while attempts <= self.max_conflict_retries:
                attempts += 1
                with self.locks.hold(keys), LogContext.bind(correlation_id=uuid4()):
                    session = self._session_factory()
                    try:
                        outcome = work(self._services(session))
                        session.commit()
                        return outcome
                    except (OptimisticLockError, IntegrityError) as exc:
                        session.rollback()
                        if isinstance(exc, OptimisticLockError):
                            last_conflict = exc
                        logger.warning(
                            "cas_conflict_retry",
                            extra={
                                "operation": operation,
                                "attempt": attempts,
                                "max_conflict_retries": self.max_conflict_retries,
                                "conflict": type(exc).__name__,
                            },
                        )
                    except BaseException:
                        session.rollback()
                        raise
                    finally:
                        session.close()

        if last_conflict is not None:
            entity_type, entity_id = last_conflict.entity_type, last_conflict.entity_id
        else:
            entity_type, entity_id = "request", operation
        logger.error(
            "cas_conflict_exhausted",
            extra={"operation": operation, "attempts": attempts},
        )
        raise OptimisticLockError(entity_type, entity_id, attempts=attempts)

    def _execute(
        self,
        operation: str,
        result_cls: type[R],
        lock_keys: Iterable[str],
        work: Callable[[_Services], R],
    ) -> R:
        """_run, with kernel exceptions converted to ``result_cls`` failures."""
        try:
            return self._run(operation, lock_keys, work)
        except BatchRejectedError as exc:
            if issubclass(result_cls, BatchAllocationResult):
                return result_cls.rejected(exc)
            return self._failure(operation, result_cls, exc)
        except AllocationKernelError as exc:
            return self._failure(operation, result_cls, exc)

    @staticmethod
    def _failure(operation: str, result_cls: type[R], exc: AllocationKernelError) -> R:
        try:
            kind = ErrorKind.from_exception(exc)
        except ValueError:
            # Not a caller-facing failure (e.g. an immutability violation)
            raise exc from None
        logger.info(
            "operation_rejected",
            extra={"operation": operation, "error_code": kind.value},
        )
        return result_cls.failure(exc)

    def _read(self, work: Callable[[Session], T]) -> T:
        session = self._session_factory()
        try:
            return work(session)
        finally:
            session.rollback()
            session.close()

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    def allocate(
        self,
        source_id: UUID,
        target_id: UUID,
        amount: Money,
        idempotency_key: str | None = None,
    ) -> AllocationResult:
        """Allocate ``amount`` from a source to a target in one transaction."""
        return self._execute(
            "allocate",
            AllocationResult,
            [_source_key(source_id), _target_key(target_id)],
            lambda s: s.ledger.allocate(
                source_id, target_id, amount, idempotency_key=idempotency_key
            ),
        )

    def allocate_batch(
        self,
        source_id: UUID,
        items: Sequence[BatchItem | tuple[UUID, Money]],
        idempotency_key: str | None = None,
    ) -> BatchAllocationResult:
        """
        Allocate several amounts from one source, all or nothing.

        On failure ``failed_index`` names the first rejected item and no
        item has been committed.
        """
        items = list(items)
        keys = [_source_key(source_id)] + [_target_key(_item_target(i)) for i in items]
        return self._execute(
            "allocate_batch",
            BatchAllocationResult,
            keys,
            lambda s: s.ledger.allocate_batch(
                source_id, items, idempotency_key=idempotency_key
            ),
        )

    def allocate_by_percentages(
        self,
        source_id: UUID,
        shares: Sequence[PercentageShare | tuple[UUID, Decimal | int | str]],
        amount: Money | None = None,
        idempotency_key: str | None = None,
    ) -> BatchAllocationResult:
        """Split ``amount`` (default: source remaining) by percentage and commit as one batch."""
        shares = list(shares)
        keys = [_source_key(source_id)] + [_target_key(_share_target(sh)) for sh in shares]
        return self._execute(
            "allocate_by_percentages",
            BatchAllocationResult,
            keys,
            lambda s: s.ledger.allocate_by_percentages(
                source_id, shares, amount=amount, idempotency_key=idempotency_key
            ),
        )

    # ------------------------------------------------------------------
    # Reversal
    # ------------------------------------------------------------------

    def _reversal_lock_keys(self, allocation_id: UUID) -> list[str]:
        keys = [_allocation_key(allocation_id)]
        allocation = self._read(
            lambda session: AllocationSelector(session).get_allocation(allocation_id)
        )
        if allocation is not None:
            keys += [_source_key(allocation.source_id), _target_key(allocation.target_id)]
        return keys

    def reverse(
        self,
        allocation_id: UUID,
        amount: Money | None = None,
        reason: str | None = None,
        idempotency_key: str | None = None,
    ) -> ReversalResult:
        """Reverse all (default) or part of an allocation."""
        return self._execute(
            "reverse",
            ReversalResult,
            self._reversal_lock_keys(allocation_id),
            lambda s: s.reversals.reverse(
                allocation_id, amount=amount, reason=reason, idempotency_key=idempotency_key
            ),
        )

    def reverse_all(self, source_id: UUID, reason: str | None = None) -> BulkReversalResult:
        """Reverse every active allocation of a source in one transaction."""

        def _keys(session: Session) -> list[str]:
            keys = [_source_key(source_id)]
            for allocation in AllocationSelector(session).list_for_source(
                source_id, active_only=True
            ):
                keys += [_allocation_key(allocation.id), _target_key(allocation.target_id)]
            return keys

        return self._execute(
            "reverse_all",
            BulkReversalResult,
            self._read(_keys),
            lambda s: s.reversals.reverse_all(source_id, reason=reason),
        )

    # ------------------------------------------------------------------
    # Document lifecycle
    # ------------------------------------------------------------------

    def register_source(
        self,
        kind: str,
        total: Money,
        document_status: str,
        source_id: UUID | None = None,
        issued_on: date | None = None,
        reference: str | None = None,
    ) -> SourceResult:
        """Register an issued credit note or a completed payment as a source."""
        return self._execute(
            "register_source",
            SourceResult,
            [_source_key(source_id)] if source_id else [],
            lambda s: s.registry.register_source(
                kind,
                total,
                document_status,
                source_id=source_id,
                issued_on=issued_on,
                reference=reference,
            ),
        )

    def register_target(
        self,
        kind: str,
        outstanding: Money,
        target_id: UUID | None = None,
        reference: str | None = None,
    ) -> TargetResult:
        """Register an invoice, expense or project as a target."""
        return self._execute(
            "register_target",
            TargetResult,
            [_target_key(target_id)] if target_id else [],
            lambda s: s.registry.register_target(
                kind, outstanding, target_id=target_id, reference=reference
            ),
        )

    def void_source(self, source_id: UUID) -> SourceResult:
        return self._execute(
            "void_source",
            SourceResult,
            [_source_key(source_id)],
            lambda s: s.registry.void_source(source_id),
        )

    def close_target(self, target_id: UUID) -> TargetResult:
        return self._execute(
            "close_target",
            TargetResult,
            [_target_key(target_id)],
            lambda s: s.registry.close_target(target_id),
        )

    def record_exchange_rate(
        self,
        from_currency: str,
        to_currency: str,
        rate: Decimal | str | int,
        effective_at: datetime,
        source: str = "manual",
    ) -> ExchangeRate:
        """
        Store an exchange rate for the statistics converted view.

        Raises:
            ValueError / InvalidCurrencyError: malformed rate.
        """
        return self._run(
            "record_exchange_rate",
            [],
            lambda s: s.rates.record_rate(
                from_currency, to_currency, rate, effective_at, source=source
            ),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _store(self, session: Session) -> BalanceStore:
        return self._store_factory(session, self.actor_id, self._clock)

    def get_source(self, source_id: UUID) -> SourceSnapshot:
        return self._read(lambda session: self._store(session).get_source(source_id))

    def get_target(self, target_id: UUID) -> TargetSnapshot:
        return self._read(lambda session: self._store(session).get_target(target_id))

    def get_allocation(self, allocation_id: UUID) -> AllocationRecord:
        allocation = self._read(
            lambda session: AllocationSelector(session).get_allocation(allocation_id)
        )
        if allocation is None:
            raise AllocationNotFoundError(str(allocation_id))
        return allocation

    def list_allocations(
        self,
        source_id: UUID | None = None,
        target_id: UUID | None = None,
        active_only: bool = False,
    ) -> list[AllocationRecord]:
        """Allocations of one source or one target, oldest first."""
        if (source_id is None) == (target_id is None):
            raise ValueError("Pass exactly one of source_id or target_id")

        def _list(session: Session) -> list[AllocationRecord]:
            selector = AllocationSelector(session)
            if source_id is not None:
                return selector.list_for_source(source_id, active_only=active_only)
            rows = selector.list_for_target(target_id)
            return [a for a in rows if a.is_active] if active_only else rows

        return self._read(_list)

    def list_reversals(self, allocation_id: UUID) -> list[ReversalRecord]:
        return self._read(lambda session: AllocationSelector(session).list_reversals(allocation_id))

    def target_summary(self, target_id: UUID) -> TargetAllocationSummary:
        """Allocated, reversed and net amounts applied to a target."""
        summary = self._read(lambda session: AllocationSelector(session).target_summary(target_id))
        if summary is None:
            raise TargetNotFoundError(str(target_id))
        return summary

    def verify_source_conservation(self, source_id: UUID) -> SourceReplay:
        """
        Recompute a source's remaining balance from its allocations.

        ``is_consistent`` is False if the stored balance has drifted from
        the allocation trail.
        """
        replay = self._read(lambda session: AllocationSelector(session).source_replay(source_id))
        if replay is None:
            raise SourceNotFoundError(str(source_id))
        if not replay.is_consistent:
            logger.error(
                "source_conservation_violated",
                extra={
                    "source_id": str(source_id),
                    "stored_remaining_minor": replay.source.remaining.amount,
                    "replayed_remaining_minor": replay.replayed_remaining.amount,
                },
            )
        return replay

    def source_statistics(
        self,
        source_filter: SourceFilter | None = None,
        display_currency: str | None = None,
        rate_provider: RateProvider | None = None,
        as_of: datetime | None = None,
        convert: bool = True,
    ) -> SourceStatistics:
        """
        Per-currency breakdown of the filtered sources, plus the converted
        view in ``display_currency`` (default: the configured reporting
        currency) at ``as_of`` (default: now).

        Rates come from ``rate_provider``, or from the exchange_rates table
        when none is given.

        Raises:
            ExchangeRateNotFoundError: a breakdown currency has no rate.
        """
        display = (display_currency or self.display_currency) if convert else None
        when = as_of or self._clock.now()

        def _stats(session: Session) -> SourceStatistics:
            provider = rate_provider or StoredRateProvider(RateSelector(session))
            return StatisticsSelector(session).statistics(
                source_filter,
                display_currency=display,
                rate_provider=provider if display else None,
                as_of=when if display else None,
            )

        return self._read(_stats)

    def __repr__(self) -> str:
        details: dict[str, Any] = {
            "actor_id": str(self.actor_id),
            "max_conflict_retries": self.max_conflict_retries,
            "display_currency": self.display_currency,
        }
        return f"AllocationOrchestrator({details})"
