"""
Module: allocation_kernel.selectors.statistics_selector
Responsibility: Loads the sources matching a SourceFilter and hands them to
    domain/statistics.py for the per-currency breakdown and converted view.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - One query feeds both shapes: the converted view is derived from the
      breakdown of exactly the sources the filter selected.
"""

from datetime import datetime

from sqlalchemy import select

from allocation_kernel.domain.dtos import SourceSnapshot
from allocation_kernel.domain.rates import RateProvider
from allocation_kernel.domain.statistics import (
    SourceFilter,
    SourceStatistics,
    compute_statistics,
)
from allocation_kernel.domain.values import Currency
from allocation_kernel.models.source import AllocatableSource
from allocation_kernel.selectors.base import BaseSelector


class StatisticsSelector(BaseSelector):
    """Read-only source statistics."""

    def sources(self, source_filter: SourceFilter | None = None) -> list[SourceSnapshot]:
        """Sources matching the filter, ordered by issue date then id."""
        f = source_filter or SourceFilter()
        stmt = select(AllocatableSource)
        if f.kind is not None:
            stmt = stmt.where(AllocatableSource.kind == f.kind)
        if f.status is not None:
            stmt = stmt.where(AllocatableSource.status == f.status)
        if f.currency is not None:
            stmt = stmt.where(AllocatableSource.currency == Currency(f.currency).code)
        if f.issued_from is not None:
            stmt = stmt.where(AllocatableSource.issued_on >= f.issued_from)
        if f.issued_to is not None:
            stmt = stmt.where(AllocatableSource.issued_on <= f.issued_to)
        stmt = stmt.order_by(AllocatableSource.issued_on, AllocatableSource.id)
        return [
            SourceSnapshot.from_model(row)
            for row in self.session.execute(self._fresh(stmt)).scalars()
        ]

    def statistics(
        self,
        source_filter: SourceFilter | None = None,
        display_currency: str | None = None,
        rate_provider: RateProvider | None = None,
        as_of: datetime | None = None,
    ) -> SourceStatistics:
        """
        Breakdown per currency plus, if display_currency is given, the
        converted view at ``as_of``.

        Raises:
            ExchangeRateNotFoundError: a breakdown currency has no rate.
        """
        return compute_statistics(
            self.sources(source_filter),
            display_currency=display_currency,
            rate_provider=rate_provider,
            as_of=as_of,
        )
