"""
Pure domain layer.

Value objects, snapshots, results and the split/statistics calculations.
Nothing here touches the database or the system clock.
"""

from allocation_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from allocation_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from allocation_kernel.domain.dtos import (
    AllocationRecord,
    BatchItem,
    PercentageShare,
    ReversalRecord,
    SourceSnapshot,
    TargetSnapshot,
)
from allocation_kernel.domain.rates import RateProvider, StaticRateProvider
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
from allocation_kernel.domain.splitting import split_by_percentages
from allocation_kernel.domain.statistics import (
    ConvertedTotals,
    CurrencyBreakdown,
    SourceFilter,
    SourceStatistics,
    compute_statistics,
)
from allocation_kernel.domain.values import Currency, ExchangeRate, Money

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "CurrencyInfo",
    "CurrencyRegistry",
    "Currency",
    "Money",
    "ExchangeRate",
    "SourceSnapshot",
    "TargetSnapshot",
    "AllocationRecord",
    "ReversalRecord",
    "BatchItem",
    "PercentageShare",
    "ErrorKind",
    "OperationResult",
    "AllocationResult",
    "BatchAllocationResult",
    "ReversalResult",
    "BulkReversalResult",
    "SourceResult",
    "TargetResult",
    "RateProvider",
    "StaticRateProvider",
    "split_by_percentages",
    "SourceFilter",
    "CurrencyBreakdown",
    "ConvertedTotals",
    "SourceStatistics",
    "compute_statistics",
]
