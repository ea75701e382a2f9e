"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor for every write service: the caller's Session, the
    injected Clock and the actor recorded in created_by_id/updated_by_id.

Invariants enforced:
    - Services flush within the caller's transaction and never commit or
      roll back.  AllocationOrchestrator owns the transaction boundary, so a
      batch or a reversal touching three rows commits atomically or not at
      all.
"""

from abc import ABC
from uuid import UUID

from sqlalchemy.orm import Session

from allocation_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read-only queries; those live in selectors/.
    """

    def __init__(self, session: Session, actor_id: UUID, clock: Clock | None = None):
        self.session = session
        self.actor_id = actor_id
        self.clock = clock or SystemClock()
