"""
Single allocations through the orchestrator.

Verifies:
- Balances move by exactly the allocated amount on both sides
- Each validation failure surfaces as its own ErrorKind, in order
- A rejected allocation leaves every balance untouched
"""

from uuid import uuid4

import pytest

from allocation_kernel.domain.results import ErrorKind
from allocation_kernel.domain.values import Money


class TestAllocateSuccess:

    def test_balances_move_together(self, orchestrator, make_source, make_target, usd):
        source = make_source("500.00")
        target = make_target("300.00")

        result = orchestrator.allocate(source.id, target.id, usd("200.00"))

        assert result.is_success
        assert result.error is None
        assert result.allocation.amount == usd("200.00")
        assert result.allocation.is_active
        assert result.source.remaining == usd("300.00")
        assert result.target.outstanding == usd("100.00")

        assert orchestrator.get_source(source.id).remaining == usd("300.00")
        assert orchestrator.get_target(target.id).outstanding == usd("100.00")

    def test_version_bumped_on_each_write(self, orchestrator, make_source, make_target, usd):
        source = make_source("500.00")
        target = make_target("300.00")

        orchestrator.allocate(source.id, target.id, usd("10.00"))
        orchestrator.allocate(source.id, target.id, usd("10.00"))

        assert orchestrator.get_source(source.id).version == source.version + 2
        assert orchestrator.get_target(target.id).version == target.version + 2

    def test_exact_remaining_can_be_allocated(self, orchestrator, make_source, make_target, usd):
        source = make_source("100.00")
        target = make_target("100.00")

        result = orchestrator.allocate(source.id, target.id, usd("100.00"))

        assert result.is_success
        assert result.source.remaining.is_zero
        assert result.target.outstanding.is_zero

    def test_allocation_is_listed(self, orchestrator, make_source, make_target, usd):
        source = make_source("500.00")
        target = make_target("300.00")
        allocation = orchestrator.allocate(source.id, target.id, usd("25.00")).allocation

        assert orchestrator.get_allocation(allocation.id) == allocation
        assert [a.id for a in orchestrator.list_allocations(source_id=source.id)] == [allocation.id]
        assert [a.id for a in orchestrator.list_allocations(target_id=target.id)] == [allocation.id]

    def test_allocated_to_payment_source(self, orchestrator, make_source, make_target, usd):
        payment = make_source("80.00", kind="payment", document_status="succeeded")
        expense = make_target("50.00", kind="expense")

        result = orchestrator.allocate(payment.id, expense.id, usd("50.00"))

        assert result.is_success
        assert result.source.kind == "payment"
        assert result.target.kind == "expense"


class TestAllocateRejections:

    def _assert_untouched(self, orchestrator, source, target):
        assert orchestrator.get_source(source.id).remaining == source.remaining
        assert orchestrator.get_target(target.id).outstanding == target.outstanding
        assert orchestrator.list_allocations(source_id=source.id) == []

    def test_insufficient_source_balance(self, orchestrator, make_source, make_target, usd):
        source = make_source("100.00")
        target = make_target("300.00")

        result = orchestrator.allocate(source.id, target.id, usd("100.01"))

        assert not result.is_success
        assert result.error is ErrorKind.INSUFFICIENT_SOURCE_BALANCE
        assert result.allocation is None
        self._assert_untouched(orchestrator, source, target)

    def test_target_over_allocation(self, orchestrator, make_source, make_target, usd):
        source = make_source("500.00")
        target = make_target("50.00")

        result = orchestrator.allocate(source.id, target.id, usd("50.01"))

        assert result.error is ErrorKind.TARGET_OVER_ALLOCATION
        self._assert_untouched(orchestrator, source, target)

    def test_source_checked_before_target(self, orchestrator, make_source, make_target, usd):
        source = make_source("10.00")
        target = make_target("5.00")

        result = orchestrator.allocate(source.id, target.id, usd("20.00"))

        assert result.error is ErrorKind.INSUFFICIENT_SOURCE_BALANCE

    def test_currency_mismatch_between_amount_and_source(
        self, orchestrator, make_source, make_target
    ):
        source = make_source("500.00")
        target = make_target("300.00")

        result = orchestrator.allocate(source.id, target.id, Money.of("10.00", "EUR"))

        assert result.error is ErrorKind.CURRENCY_MISMATCH
        assert result.details["expected"] == "USD"
        assert result.details["received"] == "EUR"
        self._assert_untouched(orchestrator, source, target)

    def test_currency_mismatch_between_source_and_target(
        self, orchestrator, make_source, make_target, usd
    ):
        source = make_source("500.00")
        target = make_target("300.00", currency="EUR")

        result = orchestrator.allocate(source.id, target.id, usd("10.00"))

        assert result.error is ErrorKind.CURRENCY_MISMATCH

    def test_currency_checked_before_balance(self, orchestrator, make_source, make_target):
        source = make_source("1.00")
        target = make_target("1.00")

        result = orchestrator.allocate(source.id, target.id, Money.of("999.00", "EUR"))

        assert result.error is ErrorKind.CURRENCY_MISMATCH

    def test_unknown_source(self, orchestrator, make_target, usd):
        target = make_target("300.00")

        result = orchestrator.allocate(uuid4(), target.id, usd("1.00"))

        assert result.error is ErrorKind.NOT_FOUND
        assert result.details["entity_type"] == "source"

    def test_unknown_target(self, orchestrator, make_source, usd):
        source = make_source("300.00")

        result = orchestrator.allocate(source.id, uuid4(), usd("1.00"))

        assert result.error is ErrorKind.NOT_FOUND
        assert result.details["entity_type"] == "target"

    @pytest.mark.parametrize("amount", ["0.00", "-5.00"])
    def test_non_positive_amount(self, orchestrator, make_source, make_target, usd, amount):
        source = make_source("500.00")
        target = make_target("300.00")

        result = orchestrator.allocate(source.id, target.id, usd(amount))

        assert result.error is ErrorKind.INVALID_AMOUNT
        self._assert_untouched(orchestrator, source, target)

    def test_existence_checked_before_amount(self, orchestrator, usd):
        result = orchestrator.allocate(uuid4(), uuid4(), usd("0.00"))

        assert result.error is ErrorKind.NOT_FOUND

    @pytest.mark.parametrize("amount", [0, -500, 1000])
    def test_cross_currency_is_mismatch_for_any_amount(
        self, orchestrator, make_source, make_target, amount
    ):
        source = make_source("500.00", currency="USD")
        target = make_target("300.00", currency="EUR")

        result = orchestrator.allocate(source.id, target.id, Money(amount, "USD"))

        assert result.error is ErrorKind.CURRENCY_MISMATCH
        self._assert_untouched(orchestrator, source, target)

    def test_voided_source(self, orchestrator, make_source, make_target, usd):
        source = make_source("500.00")
        target = make_target("300.00")
        assert orchestrator.void_source(source.id).is_success

        result = orchestrator.allocate(source.id, target.id, usd("1.00"))

        assert result.error is ErrorKind.SOURCE_CLOSED

    def test_closed_target(self, orchestrator, make_source, make_target, usd):
        source = make_source("500.00")
        target = make_target("300.00")
        assert orchestrator.close_target(target.id).is_success

        result = orchestrator.allocate(source.id, target.id, usd("1.00"))

        assert result.error is ErrorKind.TARGET_CLOSED
        self._assert_untouched(orchestrator, source, orchestrator.get_target(target.id))

    def test_non_money_amount_is_a_programming_error(
        self, orchestrator, make_source, make_target
    ):
        source = make_source("500.00")
        target = make_target("300.00")

        with pytest.raises(TypeError):
            orchestrator.allocate(source.id, target.id, 1000)

    def test_rejection_message_is_human_readable(
        self, orchestrator, make_source, make_target, usd
    ):
        source = make_source("100.00")
        target = make_target("300.00")

        result = orchestrator.allocate(source.id, target.id, usd("150.00"))

        assert "150.00 USD" in result.message
        assert "100.00 USD" in result.message
