"""
Module: allocation_kernel.selectors.rate_selector
Responsibility: Point-in-time exchange rate lookups from the exchange_rates
    table, and StoredRateProvider, the RateProvider backed by them.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - The rate in force at ``as_of`` is the row with the latest
      effective_at <= as_of (ties broken by the latest insert).
    - No inverse or cross rates are derived.
"""

from datetime import datetime

from sqlalchemy import select

from allocation_kernel.domain.currency import CurrencyRegistry
from allocation_kernel.domain.clock import as_utc
from allocation_kernel.domain.values import ExchangeRate
from allocation_kernel.exceptions import ExchangeRateNotFoundError
from allocation_kernel.models.exchange_rate import ExchangeRate as ExchangeRateModel
from allocation_kernel.selectors.base import BaseSelector


class RateSelector(BaseSelector):
    """Read-only access to stored exchange rates."""

    def latest_rate(
        self, from_currency: str, to_currency: str, as_of: datetime
    ) -> ExchangeRate | None:
        row = self.session.execute(
            select(ExchangeRateModel)
            .where(
                ExchangeRateModel.from_currency == from_currency,
                ExchangeRateModel.to_currency == to_currency,
                ExchangeRateModel.effective_at <= as_utc(as_of),
            )
            .order_by(
                ExchangeRateModel.effective_at.desc(),
                ExchangeRateModel.created_at.desc(),
            )
            .limit(1)
        ).scalar_one_or_none()
        if row is None:
            return None
        return ExchangeRate.of(row.from_currency, row.to_currency, row.rate)


class StoredRateProvider:
    """RateProvider backed by the exchange_rates table."""

    def __init__(self, selector: RateSelector):
        self._selector = selector

    def get_rate(self, from_currency: str, to_currency: str, as_of: datetime) -> ExchangeRate:
        from_code = CurrencyRegistry.validate(from_currency)
        to_code = CurrencyRegistry.validate(to_currency)
        if from_code == to_code:
            return ExchangeRate.identity(from_code)
        rate = self._selector.latest_rate(from_code, to_code, as_of)
        if rate is None:
            raise ExchangeRateNotFoundError(from_code, to_code, as_of.isoformat())
        return rate
