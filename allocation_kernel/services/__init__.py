"""Services for the allocation kernel (write side)."""

from allocation_kernel.services.allocation_ledger import AllocationLedger
from allocation_kernel.services.allocation_orchestrator import (
    SYSTEM_ACTOR_ID,
    AllocationOrchestrator,
)
from allocation_kernel.services.balance_store import BalanceStore, SqlBalanceStore
from allocation_kernel.services.document_registry import (
    ALLOCATABLE_DOCUMENT_STATUSES,
    DocumentRegistry,
)
from allocation_kernel.services.locking import KeyedLockRegistry
from allocation_kernel.services.rate_service import ExchangeRateService
from allocation_kernel.services.reversal_service import ReversalService

__all__ = [
    "AllocationLedger",
    "AllocationOrchestrator",
    "SYSTEM_ACTOR_ID",
    "BalanceStore",
    "SqlBalanceStore",
    "DocumentRegistry",
    "ALLOCATABLE_DOCUMENT_STATUSES",
    "KeyedLockRegistry",
    "ExchangeRateService",
    "ReversalService",
]
