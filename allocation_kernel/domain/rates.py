"""
Rates -- Exchange rate provider interface and an in-memory implementation.

Rate sourcing is outside the kernel: callers plug in a RateProvider.  Every
lookup names an explicit ``as_of`` so a report can be regenerated later with
the same figures.  The database-backed provider lives in
selectors/rate_selector.py.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from decimal import Decimal
from typing import Protocol

from allocation_kernel.domain.clock import as_utc
from allocation_kernel.domain.currency import CurrencyRegistry
from allocation_kernel.domain.values import ExchangeRate
from allocation_kernel.exceptions import ExchangeRateNotFoundError

_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


class RateProvider(Protocol):
    """Source of exchange rates for the statistics converted view."""

    def get_rate(self, from_currency: str, to_currency: str, as_of: datetime) -> ExchangeRate:
        """
        Rate in force for the pair at ``as_of``.

        Same-currency lookups return the identity rate.

        Raises:
            ExchangeRateNotFoundError: no rate known for the pair at as_of.
        """
        ...


class StaticRateProvider:
    """
    In-memory, optionally effective-dated rate table.

    Example:
        provider = StaticRateProvider({("EUR", "USD"): "1.10"})
        provider.add_rate("EUR", "USD", "1.12", effective_at=datetime(2024, 6, 1))
    """

    def __init__(self, rates: Mapping[tuple[str, str], Decimal | str | int] | None = None):
        self._rates: dict[tuple[str, str], list[tuple[datetime, ExchangeRate]]] = {}
        for (from_currency, to_currency), rate in (rates or {}).items():
            self.add_rate(from_currency, to_currency, rate)

    def add_rate(
        self,
        from_currency: str,
        to_currency: str,
        rate: Decimal | str | int,
        effective_at: datetime | None = None,
    ) -> ExchangeRate:
        """Add a rate; without effective_at it applies to every as_of."""
        exchange_rate = ExchangeRate.of(from_currency, to_currency, rate)
        entries = self._rates.setdefault(exchange_rate.pair, [])
        entries.append((as_utc(effective_at) if effective_at else _EARLIEST, exchange_rate))
        entries.sort(key=lambda entry: entry[0])
        return exchange_rate

    def get_rate(self, from_currency: str, to_currency: str, as_of: datetime) -> ExchangeRate:
        from_code = CurrencyRegistry.validate(from_currency)
        to_code = CurrencyRegistry.validate(to_currency)
        if from_code == to_code:
            return ExchangeRate.identity(from_code)

        cutoff = as_utc(as_of)
        candidates = [
            rate for effective_at, rate in self._rates.get((from_code, to_code), ())
            if effective_at <= cutoff
        ]
        if not candidates:
            raise ExchangeRateNotFoundError(from_code, to_code, as_of.isoformat())
        return candidates[-1]
