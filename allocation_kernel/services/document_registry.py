"""
DocumentRegistry -- Lifecycle of allocatable sources and allocation targets.

Responsibility:
    Registers credit notes and payments as sources once they become
    allocatable, registers invoices, expenses and projects as targets,
    voids sources and closes targets.

Architecture position:
    Kernel > Services -- imperative shell.  Runs inside a transaction owned
    by AllocationOrchestrator; never commits.

Invariants enforced:
    - Only allocatable documents become sources: a credit note in status
      ``issued``, a payment in status ``completed`` or ``succeeded``.
    - Registration is idempotent by id: the same id with the same kind,
      currency, amount, issue date and reference returns the stored row;
      anything else under that id is DocumentAlreadyRegisteredError.
    - A source with active allocations cannot be voided.
    - Status changes go through the same compare-and-set as balances.

Failure modes:
    - InvalidDocumentStateError, InvalidAmountError,
      DocumentAlreadyRegisteredError, SourceHasActiveAllocationsError,
      SourceNotFoundError / TargetNotFoundError, OptimisticLockError.
    - ValueError for an unknown source or target kind.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from allocation_kernel.domain.clock import Clock
from allocation_kernel.domain.dtos import SourceSnapshot, TargetSnapshot
from allocation_kernel.domain.results import SourceResult, TargetResult
from allocation_kernel.domain.values import Money
from allocation_kernel.exceptions import (
    DocumentAlreadyRegisteredError,
    InvalidAmountError,
    InvalidDocumentStateError,
    OptimisticLockError,
    SourceHasActiveAllocationsError,
    SourceNotFoundError,
    TargetNotFoundError,
)
from allocation_kernel.logging_config import LogContext, get_logger
from allocation_kernel.models.source import AllocatableSource, SourceKind, SourceStatus
from allocation_kernel.models.target import AllocationTarget, TargetKind, TargetStatus
from allocation_kernel.selectors.allocation_selector import AllocationSelector
from allocation_kernel.services.balance_store import BalanceStore, SqlBalanceStore
from allocation_kernel.services.base import BaseService

logger = get_logger("services.document_registry")

# Document statuses in which each source kind may be allocated
ALLOCATABLE_DOCUMENT_STATUSES: dict[SourceKind, tuple[str, ...]] = {
    SourceKind.CREDIT_NOTE: ("issued",),
    SourceKind.PAYMENT: ("completed", "succeeded"),
}


class DocumentRegistry(BaseService):
    """
    Creates and retires sources and targets.

    Non-goals:
        - Does NOT track the originating documents' own lifecycle; it only
          records the status seen at registration.
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

    def register_source(
        self,
        kind: SourceKind | str,
        total: Money,
        document_status: str,
        source_id: UUID | None = None,
        issued_on: date | None = None,
        reference: str | None = None,
    ) -> SourceResult:
        """
        Register an issued credit note or a completed payment.

        ``remaining`` starts equal to ``total``.
        """
        kind = SourceKind(kind)
        allowed = ALLOCATABLE_DOCUMENT_STATUSES[kind]
        if document_status not in allowed:
            raise InvalidDocumentStateError(kind.value, document_status, allowed)
        if not total.is_positive:
            raise InvalidAmountError(total)

        if source_id is not None:
            try:
                existing = self.store.get_source(source_id)
            except SourceNotFoundError:
                existing = None
            if existing is not None:
                if (
                    existing.kind != kind.value
                    or existing.total != total
                    or existing.issued_on != issued_on
                    or existing.reference != reference
                ):
                    raise DocumentAlreadyRegisteredError("source", str(source_id))
                return SourceResult(source=existing, created=False)

        row = AllocatableSource(
            id=source_id or uuid4(),
            kind=kind.value,
            currency=total.currency.code,
            total_minor=total.amount,
            remaining_minor=total.amount,
            status=SourceStatus.OPEN.value,
            version=0,
            document_status=document_status,
            issued_on=issued_on,
            reference=reference,
            created_at=self.clock.now(),
            created_by_id=self.actor_id,
        )
        self.session.add(row)
        self.session.flush()

        snapshot = SourceSnapshot.from_model(row)
        with LogContext.bind(source_id=snapshot.id):
            logger.info(
                "source_registered",
                extra={
                    "kind": kind.value,
                    "currency": snapshot.currency,
                    "total_minor": total.amount,
                    "document_status": document_status,
                },
            )
        return SourceResult(source=snapshot, created=True)

    def register_target(
        self,
        kind: TargetKind | str,
        outstanding: Money,
        target_id: UUID | None = None,
        reference: str | None = None,
    ) -> TargetResult:
        """Register an invoice, expense or project with its outstanding balance."""
        kind = TargetKind(kind)
        if outstanding.is_negative:
            raise InvalidAmountError(outstanding)

        if target_id is not None:
            try:
                existing = self.store.get_target(target_id)
            except TargetNotFoundError:
                existing = None
            if existing is not None:
                if (
                    existing.kind != kind.value
                    or existing.opening_outstanding != outstanding
                    or existing.reference != reference
                ):
                    raise DocumentAlreadyRegisteredError("target", str(target_id))
                return TargetResult(target=existing, created=False)

        row = AllocationTarget(
            id=target_id or uuid4(),
            kind=kind.value,
            currency=outstanding.currency.code,
            outstanding_minor=outstanding.amount,
            opening_outstanding_minor=outstanding.amount,
            status=TargetStatus.OPEN.value,
            version=0,
            reference=reference,
            created_at=self.clock.now(),
            created_by_id=self.actor_id,
        )
        self.session.add(row)
        self.session.flush()

        snapshot = TargetSnapshot.from_model(row)
        with LogContext.bind(target_id=snapshot.id):
            logger.info(
                "target_registered",
                extra={
                    "kind": kind.value,
                    "currency": snapshot.currency,
                    "outstanding_minor": outstanding.amount,
                },
            )
        return TargetResult(target=snapshot, created=True)

    def void_source(self, source_id: UUID) -> SourceResult:
        """
        Void a source.  Voiding an already voided source is a no-op.

        Raises:
            SourceHasActiveAllocationsError: reverse the allocations first
                (ReversalService.reverse_all).
        """
        source = self.store.get_source(source_id)
        if source.status == SourceStatus.VOIDED.value:
            return SourceResult(source=source)

        active = self.selector.count_active_for_source(source_id)
        if active:
            raise SourceHasActiveAllocationsError(str(source_id), active)

        if not self.store.commit_source_status(source, SourceStatus.VOIDED.value):
            raise OptimisticLockError("source", str(source_id))

        logger.info("source_voided", extra={"source_id": str(source_id)})
        return SourceResult(source=self.store.get_source(source_id))

    def close_target(self, target_id: UUID) -> TargetResult:
        """
        Mark a target as settled by other means.  Later allocations to it
        fail with TargetClosedError; reversals onto it are still accepted.
        """
        target = self.store.get_target(target_id)
        if target.status == TargetStatus.CLOSED.value:
            return TargetResult(target=target)

        if not self.store.commit_target_status(target, TargetStatus.CLOSED.value):
            raise OptimisticLockError("target", str(target_id))

        logger.info(
            "target_closed",
            extra={
                "target_id": str(target_id),
                "outstanding_minor": target.outstanding.amount,
            },
        )
        return TargetResult(target=self.store.get_target(target_id))
