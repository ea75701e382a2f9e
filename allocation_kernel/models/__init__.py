"""ORM models for the allocation kernel."""

from allocation_kernel.models.allocation import (
    Allocation,
    AllocationReversal,
    AllocationStatus,
)
from allocation_kernel.models.exchange_rate import ExchangeRate
from allocation_kernel.models.source import AllocatableSource, SourceKind, SourceStatus
from allocation_kernel.models.target import AllocationTarget, TargetKind, TargetStatus

__all__ = [
    "AllocatableSource",
    "SourceKind",
    "SourceStatus",
    "AllocationTarget",
    "TargetKind",
    "TargetStatus",
    "Allocation",
    "AllocationReversal",
    "AllocationStatus",
    "ExchangeRate",
]
