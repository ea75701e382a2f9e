"""
Statistics -- Per-currency breakdown and converted view of source balances.

Responsibility:
    Aggregates a set of SourceSnapshots into the two shapes the reporting
    screens need: a breakdown per currency (total, applied, remaining,
    count) and one converted view in a display currency.

Architecture position:
    Kernel > Domain -- pure functional core.  The only collaborator is the
    RateProvider passed in by the caller.  Filtering by kind, status,
    currency and issue date happens in selectors/statistics_selector.py.

Invariants enforced:
    - applied == total - remaining in every row, converted or not.
    - The converted view is computed from the breakdown, never from a
      separate query, so the two can never disagree on which sources count.
    - Conversion applies to total and remaining only; converted applied is
      derived, so rounding cannot make total != applied + remaining.

Failure modes:
    - ExchangeRateNotFoundError when the provider lacks a rate for one of
      the breakdown currencies.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime

from allocation_kernel.domain.dtos import SourceSnapshot
from allocation_kernel.domain.rates import RateProvider
from allocation_kernel.domain.values import Currency, ExchangeRate, Money


@dataclass(frozen=True)
class SourceFilter:
    """Which sources a statistics request covers.  None means "any"."""

    kind: str | None = None
    status: str | None = None
    currency: str | None = None
    issued_from: date | None = None
    issued_to: date | None = None


@dataclass(frozen=True)
class CurrencyBreakdown:
    """Totals for the sources in one currency."""

    currency: str
    total: Money
    applied: Money
    remaining: Money
    count: int


@dataclass(frozen=True)
class ConvertedTotals:
    """All breakdown rows expressed in one display currency."""

    currency: str
    total: Money
    applied: Money
    remaining: Money
    as_of: datetime
    rates: tuple[ExchangeRate, ...] = ()


@dataclass(frozen=True)
class SourceStatistics:
    breakdown: tuple[CurrencyBreakdown, ...]
    converted: ConvertedTotals | None = None

    @property
    def count(self) -> int:
        return sum(row.count for row in self.breakdown)

    def for_currency(self, currency: str) -> CurrencyBreakdown | None:
        code = Currency(currency).code
        for row in self.breakdown:
            if row.currency == code:
                return row
        return None


def build_breakdown(sources: Iterable[SourceSnapshot]) -> tuple[CurrencyBreakdown, ...]:
    """Group sources by currency, ordered by currency code."""
    totals: dict[str, list] = {}
    for source in sources:
        entry = totals.setdefault(
            source.currency,
            [Money.zero(source.currency), Money.zero(source.currency), 0],
        )
        entry[0] = entry[0] + source.total
        entry[1] = entry[1] + source.remaining
        entry[2] += 1

    return tuple(
        CurrencyBreakdown(
            currency=code,
            total=total,
            applied=total - remaining,
            remaining=remaining,
            count=count,
        )
        for code, (total, remaining, count) in sorted(totals.items())
    )


def convert_breakdown(
    breakdown: Iterable[CurrencyBreakdown],
    display_currency: str,
    rate_provider: RateProvider,
    as_of: datetime,
) -> ConvertedTotals:
    """
    Express a breakdown in ``display_currency``.

    Each currency's total and remaining are converted with the rate in force
    at ``as_of`` (half-up to the display currency's minor unit); applied is
    total - remaining of the converted figures.
    """
    display = Currency(display_currency).code
    total = Money.zero(display)
    remaining = Money.zero(display)
    rates: list[ExchangeRate] = []

    for row in breakdown:
        rate = rate_provider.get_rate(row.currency, display, as_of)
        rates.append(rate)
        total = total + rate.convert(row.total)
        remaining = remaining + rate.convert(row.remaining)

    return ConvertedTotals(
        currency=display,
        total=total,
        applied=total - remaining,
        remaining=remaining,
        as_of=as_of,
        rates=tuple(rates),
    )


def compute_statistics(
    sources: Iterable[SourceSnapshot],
    display_currency: str | None = None,
    rate_provider: RateProvider | None = None,
    as_of: datetime | None = None,
) -> SourceStatistics:
    """
    Breakdown plus, when a display currency is given, the converted view.

    Raises:
        ValueError: display_currency given without rate_provider or as_of.
    """
    breakdown = build_breakdown(sources)
    if display_currency is None:
        return SourceStatistics(breakdown=breakdown)
    if rate_provider is None or as_of is None:
        raise ValueError("A converted view needs a rate provider and an explicit as_of")
    return SourceStatistics(
        breakdown=breakdown,
        converted=convert_breakdown(breakdown, display_currency, rate_provider, as_of),
    )
