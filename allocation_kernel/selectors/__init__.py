"""Selectors for the allocation kernel (read side)."""

from allocation_kernel.selectors.allocation_selector import (
    AllocationSelector,
    SourceReplay,
    TargetAllocationSummary,
)
from allocation_kernel.selectors.rate_selector import RateSelector, StoredRateProvider
from allocation_kernel.selectors.statistics_selector import StatisticsSelector

__all__ = [
    "AllocationSelector",
    "SourceReplay",
    "TargetAllocationSummary",
    "RateSelector",
    "StoredRateProvider",
    "StatisticsSelector",
]
