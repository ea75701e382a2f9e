"""
Idempotent allocate, batch and reverse requests.

Verifies:
- Same key + same request replays without touching balances
- Same key + different request is IDEMPOTENCY_MISMATCH
- Batch keys derive per-item keys "<key>:<index>"
- A batch key is bound to the whole request, items and shares included
"""

from decimal import Decimal

import pytest

from allocation_kernel.domain.results import ErrorKind


class TestAllocateIdempotency:

    def test_replay_returns_original(self, orchestrator, make_source, make_target, usd):
        source = make_source("100.00")
        target = make_target("100.00")

        first = orchestrator.allocate(source.id, target.id, usd("30.00"), idempotency_key="req-1")
        again = orchestrator.allocate(source.id, target.id, usd("30.00"), idempotency_key="req-1")

        assert not first.replayed
        assert again.is_success
        assert again.replayed
        assert again.allocation.id == first.allocation.id
        assert orchestrator.get_source(source.id).remaining == usd("70.00")
        assert len(orchestrator.list_allocations(source_id=source.id)) == 1

    def test_replay_after_source_exhausted(self, orchestrator, make_source, make_target, usd):
        source = make_source("30.00")
        target = make_target("100.00")
        orchestrator.allocate(source.id, target.id, usd("30.00"), idempotency_key="req-1")

        again = orchestrator.allocate(source.id, target.id, usd("30.00"), idempotency_key="req-1")

        assert again.is_success
        assert again.replayed

    def test_different_request_same_key(self, orchestrator, make_source, make_target, usd):
        source = make_source("100.00")
        target = make_target("100.00")
        orchestrator.allocate(source.id, target.id, usd("30.00"), idempotency_key="req-1")

        result = orchestrator.allocate(source.id, target.id, usd("31.00"), idempotency_key="req-1")

        assert result.error is ErrorKind.IDEMPOTENCY_MISMATCH
        assert orchestrator.get_source(source.id).remaining == usd("70.00")

    def test_stored_key(self, orchestrator, make_source, make_target, usd):
        source = make_source("100.00")
        target = make_target("100.00")

        result = orchestrator.allocate(source.id, target.id, usd("1.00"), idempotency_key="req-9")

        assert result.allocation.idempotency_key == "req-9"
        assert len(result.allocation.request_hash) == 64

    def test_blank_key_is_a_programming_error(self, orchestrator, make_source, make_target, usd):
        source = make_source("100.00")
        target = make_target("100.00")

        with pytest.raises(ValueError):
            orchestrator.allocate(source.id, target.id, usd("1.00"), idempotency_key="  ")


class TestBatchIdempotency:

    def test_batch_replay(self, orchestrator, make_source, make_target, usd):
        source = make_source("100.00")
        t1 = make_target("100.00")
        t2 = make_target("100.00")
        items = [(t1.id, usd("10.00")), (t2.id, usd("20.00"))]

        first = orchestrator.allocate_batch(source.id, items, idempotency_key="batch-7")
        again = orchestrator.allocate_batch(source.id, items, idempotency_key="batch-7")

        assert again.replayed
        assert again.batch_id == first.batch_id
        assert [a.idempotency_key for a in first.allocations] == ["batch-7:0", "batch-7:1"]
        assert orchestrator.get_source(source.id).remaining == usd("70.00")

    def test_item_key_collides_with_single_allocation(
        self, orchestrator, make_source, make_target, usd
    ):
        source = make_source("100.00")
        target = make_target("100.00")
        orchestrator.allocate(source.id, target.id, usd("5.00"), idempotency_key="b:0")

        result = orchestrator.allocate_batch(
            source.id, [(target.id, usd("6.00"))], idempotency_key="b"
        )

        assert result.error is ErrorKind.IDEMPOTENCY_MISMATCH
        assert orchestrator.get_source(source.id).remaining == usd("95.00")

    def test_later_item_key_collision_rolls_back_earlier_items(
        self, orchestrator, make_source, make_target, usd
    ):
        source = make_source("100.00")
        t1 = make_target("100.00")
        t2 = make_target("100.00")
        orchestrator.allocate(source.id, t2.id, usd("5.00"), idempotency_key="b:1")

        result = orchestrator.allocate_batch(
            source.id, [(t1.id, usd("10.00")), (t2.id, usd("5.00"))], idempotency_key="b"
        )

        assert result.error is ErrorKind.IDEMPOTENCY_MISMATCH
        assert orchestrator.get_source(source.id).remaining == usd("95.00")
        assert orchestrator.list_allocations(target_id=t1.id) == []

    def test_reused_key_with_extra_item(self, orchestrator, make_source, make_target, usd):
        source = make_source("100.00")
        t1 = make_target("100.00")
        t2 = make_target("100.00")
        orchestrator.allocate_batch(source.id, [(t1.id, usd("10.00"))], idempotency_key="batch-k")

        result = orchestrator.allocate_batch(
            source.id,
            [(t1.id, usd("10.00")), (t2.id, usd("30.00"))],
            idempotency_key="batch-k",
        )

        assert result.error is ErrorKind.IDEMPOTENCY_MISMATCH
        assert orchestrator.get_source(source.id).remaining == usd("90.00")
        assert orchestrator.list_allocations(target_id=t2.id) == []

    def test_reused_key_with_fewer_items(self, orchestrator, make_source, make_target, usd):
        source = make_source("100.00")
        t1 = make_target("100.00")
        t2 = make_target("100.00")
        orchestrator.allocate_batch(
            source.id,
            [(t1.id, usd("10.00")), (t2.id, usd("30.00"))],
            idempotency_key="batch-k",
        )

        result = orchestrator.allocate_batch(
            source.id, [(t1.id, usd("10.00"))], idempotency_key="batch-k"
        )

        assert result.error is ErrorKind.IDEMPOTENCY_MISMATCH
        assert orchestrator.get_source(source.id).remaining == usd("60.00")

    def test_reused_key_with_other_amount(self, orchestrator, make_source, make_target, usd):
        source = make_source("100.00")
        target = make_target("100.00")
        orchestrator.allocate_batch(source.id, [(target.id, usd("10.00"))], idempotency_key="batch-k")

        result = orchestrator.allocate_batch(
            source.id, [(target.id, usd("12.00"))], idempotency_key="batch-k"
        )

        assert result.error is ErrorKind.IDEMPOTENCY_MISMATCH
        assert orchestrator.get_source(source.id).remaining == usd("90.00")

    def test_replay_keeps_item_order(self, orchestrator, make_source, make_target, usd):
        source = make_source("100.00")
        targets = [make_target("100.00") for _ in range(4)]
        items = [(t.id, usd(f"{i + 1}.00")) for i, t in enumerate(targets)]

        first = orchestrator.allocate_batch(source.id, items, idempotency_key="ordered")
        again = orchestrator.allocate_batch(source.id, items, idempotency_key="ordered")

        assert again.replayed
        assert [a.id for a in again.allocations] == [a.id for a in first.allocations]
        assert [a.target_id for a in again.allocations] == [t.id for t in targets]


class TestPercentageIdempotency:

    def test_reused_key_with_other_shares(self, orchestrator, make_source, make_target, usd):
        source = make_source("100.00")
        t1 = make_target("100.00")
        t2 = make_target("100.00")
        orchestrator.allocate_by_percentages(source.id, [(t1.id, "50")], idempotency_key="pct-k")

        result = orchestrator.allocate_by_percentages(
            source.id, [(t2.id, "100")], idempotency_key="pct-k"
        )

        assert result.error is ErrorKind.IDEMPOTENCY_MISMATCH
        assert orchestrator.list_allocations(target_id=t2.id) == []
        assert orchestrator.get_source(source.id).remaining == usd("50.00")

    def test_reused_key_with_other_explicit_amount(
        self, orchestrator, make_source, make_target, usd
    ):
        source = make_source("100.00")
        target = make_target("100.00")
        orchestrator.allocate_by_percentages(
            source.id, [(target.id, 100)], amount=usd("20.00"), idempotency_key="pct-k"
        )

        result = orchestrator.allocate_by_percentages(
            source.id, [(target.id, 100)], amount=usd("30.00"), idempotency_key="pct-k"
        )

        assert result.error is ErrorKind.IDEMPOTENCY_MISMATCH
        assert orchestrator.get_source(source.id).remaining == usd("80.00")

    def test_equal_percentages_in_other_notation_replay(
        self, orchestrator, make_source, make_target, usd
    ):
        source = make_source("100.00")
        target = make_target("100.00")
        first = orchestrator.allocate_by_percentages(
            source.id, [(target.id, "50")], idempotency_key="pct-k"
        )

        again = orchestrator.allocate_by_percentages(
            source.id, [(target.id, Decimal("50.00"))], idempotency_key="pct-k"
        )

        assert again.replayed
        assert again.batch_id == first.batch_id
        assert orchestrator.get_source(source.id).remaining == usd("50.00")


class TestReversalIdempotency:

    def test_reversal_replay(self, orchestrator, make_source, make_target, usd):
        source = make_source("100.00")
        target = make_target("100.00")
        allocation = orchestrator.allocate(source.id, target.id, usd("50.00")).allocation

        first = orchestrator.reverse(allocation.id, usd("10.00"), idempotency_key="rev-1")
        again = orchestrator.reverse(allocation.id, usd("10.00"), idempotency_key="rev-1")

        assert again.replayed
        assert again.reversal.id == first.reversal.id
        assert orchestrator.get_source(source.id).remaining == usd("60.00")
        assert len(orchestrator.list_reversals(allocation.id)) == 1

    def test_reversal_key_reuse_with_other_amount(
        self, orchestrator, make_source, make_target, usd
    ):
        source = make_source("100.00")
        target = make_target("100.00")
        allocation = orchestrator.allocate(source.id, target.id, usd("50.00")).allocation
        orchestrator.reverse(allocation.id, usd("10.00"), idempotency_key="rev-1")

        result = orchestrator.reverse(allocation.id, usd("11.00"), idempotency_key="rev-1")

        assert result.error is ErrorKind.IDEMPOTENCY_MISMATCH

    def test_full_reversal_replay_after_allocation_reversed(
        self, orchestrator, make_source, make_target, usd
    ):
        source = make_source("100.00")
        target = make_target("100.00")
        allocation = orchestrator.allocate(source.id, target.id, usd("50.00")).allocation
        orchestrator.reverse(allocation.id, idempotency_key="rev-all")

        again = orchestrator.reverse(allocation.id, idempotency_key="rev-all")

        assert again.is_success
        assert again.replayed
        assert again.allocation.status == "reversed"
