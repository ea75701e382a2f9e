"""
Percentage allocation of expenses and projects.

Verifies:
- The default amount is the source's remaining balance
- Parts are committed as one all-or-nothing batch
- Malformed splits are rejected with INVALID_SPLIT
"""

from decimal import Decimal

from allocation_kernel.domain.dtos import PercentageShare
from allocation_kernel.domain.results import ErrorKind


class TestAllocateByPercentages:

    def test_splits_remaining_by_default(self, orchestrator, make_source, make_target, usd):
        source = make_source("100.00")
        projects = [make_target("100.00", kind="project") for _ in range(3)]

        result = orchestrator.allocate_by_percentages(
            source.id, [(p.id, Decimal("33.3333")) for p in projects]
        )

        assert result.is_success
        amounts = sorted(a.amount.amount for a in result.allocations)
        assert amounts == [3333, 3333, 3334]
        assert result.source.remaining.is_zero

    def test_explicit_amount(self, orchestrator, make_source, make_target, usd):
        source = make_source("500.00")
        e1 = make_target("200.00", kind="expense")
        e2 = make_target("200.00", kind="expense")

        result = orchestrator.allocate_by_percentages(
            source.id,
            [PercentageShare(e1.id, Decimal(60)), PercentageShare(e2.id, Decimal(40))],
            amount=usd("200.00"),
        )

        assert result.is_success
        assert orchestrator.get_target(e1.id).outstanding == usd("80.00")
        assert orchestrator.get_target(e2.id).outstanding == usd("120.00")
        assert orchestrator.get_source(source.id).remaining == usd("300.00")

    def test_part_over_target_rejects_all(self, orchestrator, make_source, make_target, usd):
        source = make_source("100.00")
        big = make_target("100.00", kind="project")
        small = make_target("10.00", kind="project")

        result = orchestrator.allocate_by_percentages(
            source.id, [(big.id, 50), (small.id, 50)]
        )

        assert result.error is ErrorKind.TARGET_OVER_ALLOCATION
        assert result.failed_index == 1
        assert result.rolled_back
        assert orchestrator.get_target(big.id).outstanding == usd("100.00")
        assert orchestrator.get_source(source.id).remaining == usd("100.00")

    def test_over_hundred_percent(self, orchestrator, make_source, make_target):
        source = make_source("100.00")
        t1 = make_target("100.00")
        t2 = make_target("100.00")

        result = orchestrator.allocate_by_percentages(source.id, [(t1.id, 70), (t2.id, 40)])

        assert result.error is ErrorKind.INVALID_SPLIT
        assert result.failed_index is None

    def test_exhausted_source(self, orchestrator, make_source, make_target, usd):
        source = make_source("10.00")
        target = make_target("100.00")
        orchestrator.allocate(source.id, target.id, usd("10.00"))

        result = orchestrator.allocate_by_percentages(source.id, [(target.id, 100)])

        assert result.error is ErrorKind.INVALID_AMOUNT

    def test_idempotent_default_amount_replays_stored_batch(
        self, orchestrator, make_source, make_target, usd
    ):
        source = make_source("100.00")
        t1 = make_target("100.00")
        t2 = make_target("100.00")
        shares = [(t1.id, 50), (t2.id, 25)]

        first = orchestrator.allocate_by_percentages(source.id, shares, idempotency_key="split-1")
        again = orchestrator.allocate_by_percentages(source.id, shares, idempotency_key="split-1")

        assert first.is_success and not first.replayed
        assert again.replayed
        assert again.batch_id == first.batch_id
        assert {a.id for a in again.allocations} == {a.id for a in first.allocations}
        assert orchestrator.get_source(source.id).remaining == usd("25.00")
