"""
Splitting -- Percentage split planner for expense and project allocation.

Responsibility:
    Turns "apportion this amount 60% / 25% / 15% across these targets" into
    exact minor-unit amounts.  The plan is then committed as an
    all-or-nothing batch by the orchestrator.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - The parts sum exactly to round_half_up(amount * sum(percentages) / 100).
    - Residual minor units go to the largest fractional remainders (ties to
      the earlier share), so no part is off by more than one minor unit from
      its exact value.

Failure modes:
    - InvalidAmountError if the amount is not positive.
    - InvalidSplitError for empty shares, duplicate targets, non-positive
      percentages, float percentages, or percentages summing above 100.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal, InvalidOperation
from uuid import UUID

from allocation_kernel.domain.dtos import BatchItem, PercentageShare
from allocation_kernel.domain.values import Money
from allocation_kernel.exceptions import InvalidAmountError, InvalidSplitError

HUNDRED = Decimal(100)


def _to_percentage(value: Decimal | int | str) -> Decimal:
    if isinstance(value, (float, bool)):
        raise InvalidSplitError(f"percentage must be Decimal, int or str, got {value!r}")
    try:
        pct = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as e:
        raise InvalidSplitError(f"percentage is not a number: {value!r}") from e
    if not pct.is_finite() or pct <= 0:
        raise InvalidSplitError(f"percentage must be positive, got {value}")
    return pct


def normalize_shares(
    shares: Sequence[PercentageShare | tuple[UUID, Decimal | int | str]],
) -> list[PercentageShare]:
    """
    Validate shares and coerce (target_id, percentage) tuples.

    Raises:
        InvalidSplitError: see module docstring.
    """
    if not shares:
        raise InvalidSplitError("at least one share is required")

    normalized: list[PercentageShare] = []
    seen: set[UUID] = set()
    for share in shares:
        if isinstance(share, PercentageShare):
            target_id, raw = share.target_id, share.percentage
        else:
            target_id, raw = share
        if target_id in seen:
            raise InvalidSplitError(f"target {target_id} appears more than once")
        seen.add(target_id)
        normalized.append(PercentageShare(target_id, _to_percentage(raw)))

    total_pct = sum((s.percentage for s in normalized), Decimal(0))
    if total_pct > HUNDRED:
        raise InvalidSplitError(f"percentages sum to {total_pct}, more than 100")
    return normalized


def split_by_percentages(
    amount: Money,
    shares: Sequence[PercentageShare | tuple[UUID, Decimal | int | str]],
) -> list[BatchItem]:
    """
    Split ``amount`` across targets by percentage.

    Shares whose rounded part is zero are left out of the plan (an
    allocation must be positive).

    Example:
        100.00 USD at 33.3333% x 3 -> 33.34, 33.33, 33.33 (the parts sum
        to 100.00, i.e. 99.9999% rounded half-up); 50/50 of 0.01 -> 0.01
        to the first target only.

    Returns:
        BatchItems in share order.
    """
    if not amount.is_positive:
        raise InvalidAmountError(amount)

    normalized = normalize_shares(shares)
    total_pct = sum((s.percentage for s in normalized), Decimal(0))
    target_total = int(
        (Decimal(amount.amount) * total_pct / HUNDRED).to_integral_value(
            rounding=ROUND_HALF_UP
        )
    )

    exact = [Decimal(amount.amount) * s.percentage / HUNDRED for s in normalized]
    parts = [int(x.to_integral_value(rounding=ROUND_FLOOR)) for x in exact]
    residual = target_total - sum(parts)

    # Largest fractional remainder first; earlier share wins a tie
    order = sorted(
        range(len(normalized)),
        key=lambda i: (-(exact[i] - parts[i]), i),
    )
    for i in order[:residual]:
        parts[i] += 1

    plan = [
        BatchItem(share.target_id, Money(part, amount.currency))
        for share, part in zip(normalized, parts)
        if part > 0
    ]
    if not plan:
        raise InvalidSplitError(f"no share of {amount} rounds to a positive amount")
    return plan
