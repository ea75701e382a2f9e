"""Unit tests for StaticRateProvider effective dating."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from allocation_kernel.domain.clock import as_utc
from allocation_kernel.domain.rates import StaticRateProvider
from allocation_kernel.exceptions import ExchangeRateNotFoundError

JUNE = datetime(2024, 6, 1, tzinfo=timezone.utc)


class TestStaticRateProvider:

    def test_undated_rate_applies_always(self):
        provider = StaticRateProvider({("EUR", "USD"): "1.10"})
        rate = provider.get_rate("EUR", "USD", datetime(1999, 1, 1, tzinfo=timezone.utc))
        assert rate.rate == Decimal("1.10")

    def test_latest_effective_rate_wins(self):
        provider = StaticRateProvider({("EUR", "USD"): "1.10"})
        provider.add_rate("EUR", "USD", "1.12", effective_at=JUNE)
        assert provider.get_rate("EUR", "USD", JUNE - timedelta(seconds=1)).rate == Decimal("1.10")
        assert provider.get_rate("EUR", "USD", JUNE).rate == Decimal("1.12")

    def test_future_rate_not_visible(self):
        provider = StaticRateProvider()
        provider.add_rate("GBP", "USD", "1.25", effective_at=JUNE)
        with pytest.raises(ExchangeRateNotFoundError):
            provider.get_rate("GBP", "USD", JUNE - timedelta(days=1))

    def test_same_currency_is_identity(self):
        rate = StaticRateProvider().get_rate("usd", "USD", JUNE)
        assert rate.rate == Decimal(1)

    def test_no_implicit_inverse(self):
        provider = StaticRateProvider({("EUR", "USD"): "1.10"})
        with pytest.raises(ExchangeRateNotFoundError) as exc_info:
            provider.get_rate("USD", "EUR", JUNE)
        assert exc_info.value.code == "EXCHANGE_RATE_NOT_FOUND"

    def test_naive_datetimes_are_utc(self):
        provider = StaticRateProvider()
        provider.add_rate("EUR", "USD", "1.3", effective_at=datetime(2024, 6, 1))
        assert provider.get_rate("EUR", "USD", JUNE).rate == Decimal("1.3")
        assert as_utc(datetime(2024, 6, 1)) == JUNE
