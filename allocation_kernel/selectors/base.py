"""
Module: allocation_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/ (for DTOs).  MUST NOT import from services/.

Invariants enforced:
    - Read-only access: selectors never add, delete, flush or commit.
    - DTO return convention: selectors return frozen dataclasses, not ORM rows.
    - Fresh reads: queries use populate_existing so rows already in the
      session's identity map are refreshed from the database.  Balance
      writes are compare-and-set UPDATE statements that bypass the identity
      map, so a cached row would otherwise show a stale version.
"""

from abc import ABC

from sqlalchemy import Select
from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries
        and return DTOs or computed results.
    """

    def __init__(self, session: Session):
        self.session = session

    def _fresh(self, stmt: Select) -> Select:
        return stmt.execution_options(populate_existing=True)
