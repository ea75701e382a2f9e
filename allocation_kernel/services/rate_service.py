"""
ExchangeRateService -- Records exchange rates for the statistics converted view.

Rates are append-only: a correction is a new row with a later
``effective_at``.  Lookups go through selectors/rate_selector.py.
"""

from datetime import datetime
from decimal import Decimal

from allocation_kernel.domain.clock import as_utc
from allocation_kernel.domain.values import ExchangeRate
from allocation_kernel.logging_config import get_logger
from allocation_kernel.models.exchange_rate import ExchangeRate as ExchangeRateModel
from allocation_kernel.services.base import BaseService

logger = get_logger("services.rates")


class ExchangeRateService(BaseService):
    """Writes exchange rate rows; never commits."""

    def record_rate(
        self,
        from_currency: str,
        to_currency: str,
        rate: Decimal | str | int,
        effective_at: datetime,
        source: str = "manual",
    ) -> ExchangeRate:
        """
        Store ``1 from_currency = rate to_currency`` from ``effective_at`` on.

        Raises:
            ValueError: non-positive rate, or from and to are the same.
            InvalidCurrencyError: unknown currency code.
        """
        value = ExchangeRate.of(from_currency, to_currency, rate)
        if value.from_currency == value.to_currency:
            raise ValueError("An exchange rate needs two different currencies")

        self.session.add(
            ExchangeRateModel(
                from_currency=value.from_currency.code,
                to_currency=value.to_currency.code,
                rate=value.rate,
                effective_at=as_utc(effective_at),
                source=source,
                created_at=self.clock.now(),
                created_by_id=self.actor_id,
            )
        )
        self.session.flush()

        logger.info(
            "exchange_rate_recorded",
            extra={
                "from_currency": value.from_currency.code,
                "to_currency": value.to_currency.code,
                "rate": value.rate,
                "effective_at": as_utc(effective_at),
                "rate_source": source,
            },
        )
        return value
