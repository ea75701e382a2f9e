"""
Unit tests for the percentage split planner.

Verifies:
- Parts sum exactly to the rounded percentage of the amount
- Residual minor units follow the largest remainder, ties to the earlier share
- Malformed share lists are rejected before anything is planned
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from allocation_kernel.domain.dtos import PercentageShare
from allocation_kernel.domain.splitting import normalize_shares, split_by_percentages
from allocation_kernel.domain.values import Money
from allocation_kernel.exceptions import InvalidAmountError, InvalidSplitError


@pytest.fixture
def targets():
    return [uuid4() for _ in range(3)]


class TestSplitByPercentages:

    def test_even_split(self, targets):
        plan = split_by_percentages(
            Money.of("100.00", "USD"), [(targets[0], 50), (targets[1], 50)]
        )
        assert [item.amount for item in plan] == [Money.of("50.00", "USD")] * 2

    def test_thirds_sum_exactly(self, targets):
        plan = split_by_percentages(
            Money.of("100.00", "USD"),
            [(t, Decimal("33.3333")) for t in targets],
        )
        assert [item.amount.amount for item in plan] == [3334, 3333, 3333]
        assert sum(item.amount.amount for item in plan) == 10000

    def test_partial_percentage_total(self, targets):
        plan = split_by_percentages(
            Money.of("200.00", "USD"), [(targets[0], 60), (targets[1], 15)]
        )
        assert [item.amount.amount for item in plan] == [12000, 3000]

    def test_largest_remainder_gets_residual(self, targets):
        # 0.10 split 15 / 15 / 70: exact 1.5, 1.5, 7 -> residual cent to the first tie
        plan = split_by_percentages(
            Money.of("0.10", "USD"),
            [(targets[0], 15), (targets[1], 15), (targets[2], 70)],
        )
        assert [item.amount.amount for item in plan] == [2, 1, 7]

    def test_zero_parts_dropped(self, targets):
        plan = split_by_percentages(
            Money.of("0.01", "USD"), [(targets[0], 50), (targets[1], 50)]
        )
        assert len(plan) == 1
        assert plan[0].target_id == targets[0]
        assert plan[0].amount.amount == 1

    def test_zero_decimal_currency(self, targets):
        plan = split_by_percentages(
            Money.of("1000", "JPY"), [(t, Decimal("33.3333")) for t in targets]
        )
        assert sum(item.amount.amount for item in plan) == 1000
        assert all(item.amount.currency.code == "JPY" for item in plan)

    def test_preserves_share_order(self, targets):
        shares = [PercentageShare(t, Decimal(10)) for t in reversed(targets)]
        plan = split_by_percentages(Money.of("10.00", "USD"), shares)
        assert [item.target_id for item in plan] == list(reversed(targets))

    def test_amount_must_be_positive(self, targets):
        with pytest.raises(InvalidAmountError):
            split_by_percentages(Money.zero("USD"), [(targets[0], 100)])

    def test_tiny_percentage_of_tiny_amount(self, targets):
        with pytest.raises(InvalidSplitError):
            split_by_percentages(Money.of("0.01", "USD"), [(targets[0], 1)])


class TestNormalizeShares:

    def test_empty_rejected(self):
        with pytest.raises(InvalidSplitError):
            normalize_shares([])

    def test_duplicate_target_rejected(self, targets):
        with pytest.raises(InvalidSplitError, match="more than once"):
            normalize_shares([(targets[0], 10), (targets[0], 20)])

    @pytest.mark.parametrize("pct", [0, -5, "abc"])
    def test_non_positive_rejected(self, targets, pct):
        with pytest.raises(InvalidSplitError):
            normalize_shares([(targets[0], pct)])

    def test_float_rejected(self, targets):
        with pytest.raises(InvalidSplitError):
            normalize_shares([(targets[0], 12.5)])

    def test_over_hundred_rejected(self, targets):
        with pytest.raises(InvalidSplitError, match="more than 100"):
            normalize_shares([(targets[0], 60), (targets[1], "40.01")])

    def test_strings_coerced_to_decimal(self, targets):
        shares = normalize_shares([(targets[0], "12.5")])
        assert shares[0].percentage == Decimal("12.5")
