"""
Deterministic hashing utilities.

Request hashes let an idempotency key be checked against the request that
first used it: same key + same hash is a replay, same key + different hash
is a protocol violation.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    """Serialize the non-JSON types that appear in allocation requests."""
    if isinstance(obj, Decimal):
        return str(obj.normalize())
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """
    Convert data to canonical JSON string.

    Keys are sorted, whitespace is removed, and Decimal/datetime/UUID values
    are rendered consistently.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def hash_payload(payload: dict) -> str:
    """Hex-encoded SHA-256 of the canonical JSON form of ``payload``."""
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def hash_allocation_request(
    source_id: UUID,
    target_id: UUID,
    amount_minor: int,
    currency: str,
) -> str:
    """Hash of the fields that identify an allocate request."""
    return hash_payload(
        {
            "op": "allocate",
            "source_id": source_id,
            "target_id": target_id,
            "amount_minor": amount_minor,
            "currency": currency,
        }
    )


def hash_reversal_request(
    allocation_id: UUID,
    amount_minor: int | None,
    reason: str | None,
) -> str:
    """Hash of the fields that identify a reverse request."""
    return hash_payload(
        {
            "op": "reverse",
            "allocation_id": allocation_id,
            "amount_minor": amount_minor,
            "reason": reason,
        }
    )


def hash_batch_request(
    source_id: UUID,
    items: list[tuple[UUID, int, str]],
) -> str:
    """Hash of a whole batch: the source and the ordered (target, amount, currency) items."""
    return hash_payload(
        {
            "op": "allocate_batch",
            "source_id": source_id,
            "items": [
                {"target_id": target_id, "amount_minor": amount_minor, "currency": currency}
                for target_id, amount_minor, currency in items
            ],
        }
    )


def hash_percentage_request(
    source_id: UUID,
    shares: list[tuple[UUID, Decimal]],
    amount_minor: int | None,
    currency: str | None,
) -> str:
    """
    Hash of a percentage split request.

    Percentages are normalized, so ``"50"`` and ``Decimal("50.00")`` hash
    alike.  A missing amount (split the source's remaining) hashes as null.
    """
    return hash_payload(
        {
            "op": "allocate_by_percentages",
            "source_id": source_id,
            "shares": [
                {"target_id": target_id, "percentage": percentage}
                for target_id, percentage in shares
            ],
            "amount_minor": amount_minor,
            "currency": currency,
        }
    )
