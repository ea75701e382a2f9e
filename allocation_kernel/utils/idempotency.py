"""
Idempotency key utilities.

A batch call carries one caller key; each item is stored under a derived
per-item key so a retried batch replays item by item.
"""

MAX_KEY_LENGTH = 255


def validate_idempotency_key(key: str) -> str:
    """
    Check a caller-supplied idempotency key.

    Raises:
        ValueError: key is blank or longer than MAX_KEY_LENGTH.
    """
    if not isinstance(key, str) or not key.strip():
        raise ValueError("Idempotency key must be a non-empty string")
    if len(key) > MAX_KEY_LENGTH:
        raise ValueError(f"Idempotency key longer than {MAX_KEY_LENGTH} characters")
    return key


def item_idempotency_key(batch_key: str, index: int) -> str:
    """
    Derive the key for item ``index`` of a batch.

    Example:
        >>> item_idempotency_key("settle-2024-03", 1)
        'settle-2024-03:1'
    """
    return f"{batch_key}:{index}"


def parse_item_idempotency_key(key: str) -> tuple[str, int]:
    """
    Split a per-item key back into (batch_key, index).

    Raises:
        ValueError: If key has no numeric item suffix.
    """
    batch_key, sep, index = key.rpartition(":")
    if not sep or not batch_key or not index.isdigit():
        raise ValueError(f"Invalid batch item idempotency key: {key}")
    return batch_key, int(index)
