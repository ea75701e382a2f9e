"""
Immutability of the allocation audit trail.

Allocations may only change through their reversal columns; reversal rows
and exchange rates are append-only; nothing in the trail can be deleted.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from allocation_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from allocation_kernel.exceptions import ImmutabilityViolationError
from allocation_kernel.models.allocation import Allocation, AllocationReversal
from allocation_kernel.models.exchange_rate import ExchangeRate


@pytest.fixture
def allocation_id(orchestrator, make_source, make_target, usd):
    source = make_source("100.00")
    target = make_target("100.00")
    return orchestrator.allocate(source.id, target.id, usd("40.00")).allocation.id


def _load(session, model, row_id):
    return session.execute(select(model).where(model.id == row_id)).scalar_one()


class TestAllocationImmutability:
    """Allocation rows keep their amount, parties and currency forever."""

    def test_amount_cannot_be_modified(self, session, allocation_id):
        row = _load(session, Allocation, allocation_id)
        row.amount_minor = 1

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()

        assert "amount_minor" in str(exc_info.value)

    def test_target_cannot_be_repointed(self, session, allocation_id):
        row = _load(session, Allocation, allocation_id)
        row.target_id = uuid4()

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_forbidden(self, session, allocation_id):
        session.delete(_load(session, Allocation, allocation_id))

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_reversal_columns_may_change(self, session, allocation_id):
        row = _load(session, Allocation, allocation_id)
        row.reversed_minor = 500
        row.version = row.version + 1

        session.flush()

    def test_violation_logged(self, session, allocation_id, captured_logs):
        row = _load(session, Allocation, allocation_id)
        row.currency = "EUR"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert blocked[-1]["entity_id"] == str(allocation_id)
        assert blocked[-1]["operation"] == "UPDATE"


class TestReversalImmutability:

    @pytest.fixture
    def reversal_id(self, orchestrator, allocation_id, usd):
        return orchestrator.reverse(allocation_id, usd("10.00"), reason="duplicate").reversal.id

    def test_update_forbidden(self, session, reversal_id):
        row = _load(session, AllocationReversal, reversal_id)
        row.reason = "changed"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_forbidden(self, session, reversal_id):
        session.delete(_load(session, AllocationReversal, reversal_id))

        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestExchangeRateImmutability:

    @pytest.fixture
    def rate_row(self, session):
        row = ExchangeRate(
            from_currency="EUR",
            to_currency="USD",
            rate=Decimal("1.10"),
            effective_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
            source="manual",
            created_by_id=uuid4(),
        )
        session.add(row)
        session.flush()
        return row

    def test_rate_cannot_be_corrected_in_place(self, session, rate_row):
        rate_row.rate = Decimal("1.20")

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_forbidden(self, session, rate_row):
        session.delete(rate_row)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestListenerRegistration:

    def test_unregister_then_register(self, session, allocation_id):
        unregister_immutability_listeners()
        unregister_immutability_listeners()
        try:
            row = _load(session, Allocation, allocation_id)
            row.idempotency_key = "unguarded"
            session.flush()
        finally:
            register_immutability_listeners()
            register_immutability_listeners()
        session.rollback()

        row = _load(session, Allocation, allocation_id)
        row.amount_minor = 1
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
