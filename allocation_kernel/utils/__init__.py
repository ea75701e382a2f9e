"""Utility functions for the allocation kernel."""

from allocation_kernel.utils.hashing import (
    canonicalize_json,
    hash_allocation_request,
    hash_payload,
    hash_reversal_request,
)
from allocation_kernel.utils.idempotency import (
    item_idempotency_key,
    parse_item_idempotency_key,
    validate_idempotency_key,
)

__all__ = [
    "canonicalize_json",
    "hash_payload",
    "hash_allocation_request",
    "hash_reversal_request",
    "item_idempotency_key",
    "parse_item_idempotency_key",
    "validate_idempotency_key",
]
