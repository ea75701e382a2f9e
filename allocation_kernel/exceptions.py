"""
Typed Exception Hierarchy for the Allocation Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the allocation engine (HTTP handlers, the presentation layer,
reconciliation jobs) must react to failures by KIND, never by parsing
message text:

    try:
        ledger.allocate(source_id, target_id, amount)
    except InsufficientSourceBalanceError as e:
        show_error(e.code, available=e.available)

Every exception therefore:
  1. Has its own class (catch by type)
  2. Carries a class-level CODE (machine-readable, API-safe)
  3. Stores its context as attributes (not only inside the message)

The orchestrator (services/allocation_orchestrator.py) converts these
exceptions into typed result objects whose ``ErrorKind`` value equals the
exception ``code``.  Inside the kernel, services raise; at the boundary,
callers receive results.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    AllocationKernelError (base)
    |
    +-- NotFoundError
    |   +-- SourceNotFoundError
    |   +-- TargetNotFoundError
    |   +-- AllocationNotFoundError
    |
    +-- CurrencyError
    |   +-- InvalidCurrencyError
    |   +-- CurrencyMismatchError          (also a TypeError)
    |   +-- ExchangeRateNotFoundError
    |
    +-- AllocationError
    |   +-- InvalidAmountError
    |   +-- InsufficientSourceBalanceError
    |   +-- TargetOverAllocationError
    |   +-- SourceClosedError
    |   +-- TargetClosedError
    |   +-- InvalidSplitError
    |   +-- BatchRejectedError
    |
    +-- ReversalError
    |   +-- AlreadyReversedError
    |   +-- ExcessiveReversalError
    |
    +-- DocumentError
    |   +-- InvalidDocumentStateError
    |   +-- DocumentAlreadyRegisteredError
    |   +-- SourceHasActiveAllocationsError
    |
    +-- IdempotencyMismatchError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                            | When Raised
--------------------------------|-----------------------------------------------
NOT_FOUND                       | Source, target or allocation id unknown
INVALID_CURRENCY                | Not an ISO 4217 code
CURRENCY_MISMATCH               | Amount/source/target currencies differ
EXCHANGE_RATE_NOT_FOUND         | Rate provider has no rate for pair/as_of
INVALID_AMOUNT                  | Amount is zero or negative
INSUFFICIENT_SOURCE_BALANCE     | Amount exceeds source remaining
TARGET_OVER_ALLOCATION          | Amount exceeds target outstanding
SOURCE_CLOSED                   | Source is voided
TARGET_CLOSED                   | Target was settled by other means
INVALID_SPLIT                   | Percentage shares empty, negative or > 100
ALREADY_REVERSED                | Allocation is fully reversed
EXCESSIVE_REVERSAL              | Reversal exceeds the unreversed amount
INVALID_DOCUMENT_STATE          | Document status is not allocatable
ALREADY_REGISTERED              | Same id registered with different data
SOURCE_HAS_ACTIVE_ALLOCATIONS   | Void attempted while allocations are active
IDEMPOTENCY_MISMATCH            | Key reused for a different request
CONFLICT                        | Compare-and-set lost against another writer
IMMUTABILITY_VIOLATION          | Delete/edit of an audit record

===============================================================================
"""

from __future__ import annotations

from typing import Any


class AllocationKernelError(Exception):
    """
    Base exception for all allocation kernel errors.

    All subclasses must define a ``code`` class attribute.
    """

    code: str = "ALLOCATION_KERNEL_ERROR"

    def details(self) -> dict[str, Any]:
        """Structured, JSON-friendly context for API responses."""
        return {
            key: str(value) if value is not None else None
            for key, value in vars(self).items()
            if not key.startswith("_")
        }


# Lookup failures


class NotFoundError(AllocationKernelError):
    """Base for unknown identifiers."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class SourceNotFoundError(NotFoundError):
    """Allocatable source (credit note, payment) does not exist."""

    def __init__(self, source_id: str):
        super().__init__("source", source_id)


class TargetNotFoundError(NotFoundError):
    """Allocation target (invoice, expense, project) does not exist."""

    def __init__(self, target_id: str):
        super().__init__("target", target_id)


class AllocationNotFoundError(NotFoundError):
    """Allocation record does not exist."""

    def __init__(self, allocation_id: str):
        super().__init__("allocation", allocation_id)


# Currency-related exceptions


class CurrencyError(AllocationKernelError):
    """Base exception for currency-related errors."""

    code: str = "CURRENCY_ERROR"


class InvalidCurrencyError(CurrencyError, ValueError):
    """Currency code is not a valid ISO 4217 code."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid ISO 4217 currency code: {currency!r}")


class CurrencyMismatchError(CurrencyError, TypeError):
    """
    Two values in different currencies were combined.

    Cross-currency arithmetic is a type error, never a runtime coercion.
    """

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, expected: str, received: str, context: str = ""):
        self.expected = expected
        self.received = received
        self.context = context
        suffix = f" ({context})" if context else ""
        super().__init__(f"Currency mismatch: expected {expected}, got {received}{suffix}")


class ExchangeRateNotFoundError(CurrencyError):
    """No exchange rate available for the pair at the requested time."""

    code: str = "EXCHANGE_RATE_NOT_FOUND"

    def __init__(self, from_currency: str, to_currency: str, as_of: str):
        self.from_currency = from_currency
        self.to_currency = to_currency
        self.as_of = as_of
        super().__init__(
            f"No exchange rate for {from_currency}/{to_currency} as of {as_of}"
        )


# Allocation validation


class AllocationError(AllocationKernelError):
    """Base exception for rejected allocation requests."""

    code: str = "ALLOCATION_ERROR"


class InvalidAmountError(AllocationError):
    """Requested amount must be strictly positive."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: Any):
        self.amount = amount
        super().__init__(f"Amount must be greater than zero: {amount}")


class InsufficientSourceBalanceError(AllocationError):
    """Requested amount exceeds the source's remaining balance."""

    code: str = "INSUFFICIENT_SOURCE_BALANCE"

    def __init__(self, source_id: str, requested: Any, available: Any):
        self.source_id = source_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Amount {requested} exceeds remaining balance {available} "
            f"of source {source_id}"
        )


class TargetOverAllocationError(AllocationError):
    """Requested amount exceeds the target's outstanding balance."""

    code: str = "TARGET_OVER_ALLOCATION"

    def __init__(self, target_id: str, requested: Any, outstanding: Any):
        self.target_id = target_id
        self.requested = requested
        self.outstanding = outstanding
        super().__init__(
            f"Amount {requested} exceeds outstanding balance {outstanding} "
            f"of target {target_id}"
        )


class SourceClosedError(AllocationError):
    """Source is not in an allocatable state."""

    code: str = "SOURCE_CLOSED"

    def __init__(self, source_id: str, status: str):
        self.source_id = source_id
        self.status = status
        super().__init__(f"Source {source_id} is {status}")


class TargetClosedError(AllocationError):
    """Target no longer accepts allocations."""

    code: str = "TARGET_CLOSED"

    def __init__(self, target_id: str, status: str):
        self.target_id = target_id
        self.status = status
        super().__init__(f"Target {target_id} is {status}")


class InvalidSplitError(AllocationError):
    """Percentage split request is malformed."""

    code: str = "INVALID_SPLIT"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid split: {reason}")


class BatchRejectedError(AllocationError):
    """
    One item of a batch failed; the whole batch is rolled back.

    ``code`` mirrors the failing item's cause so callers see the real reason.
    """

    def __init__(self, index: int, cause: AllocationKernelError):
        self.index = index
        self.cause = cause
        self.code = cause.code
        super().__init__(
            f"Batch rejected at item {index}, no allocation committed: {cause}"
        )


# Reversal-related exceptions


class ReversalError(AllocationKernelError):
    """Base exception for rejected reversal requests."""

    code: str = "REVERSAL_ERROR"


class AlreadyReversedError(ReversalError):
    """Allocation has already been fully reversed."""

    code: str = "ALREADY_REVERSED"

    def __init__(self, allocation_id: str):
        self.allocation_id = allocation_id
        super().__init__(f"Allocation {allocation_id} is already reversed")


class ExcessiveReversalError(ReversalError):
    """Reversal amount exceeds what is still allocated."""

    code: str = "EXCESSIVE_REVERSAL"

    def __init__(self, allocation_id: str, requested: Any, reversible: Any):
        self.allocation_id = allocation_id
        self.requested = requested
        self.reversible = reversible
        super().__init__(
            f"Reversal of {requested} exceeds reversible amount {reversible} "
            f"on allocation {allocation_id}"
        )


class InvalidReversalReasonError(ReversalError):
    """Reason code is blank or longer than the stored column allows."""

    code: str = "INVALID_REASON"

    def __init__(self, reason: str, max_length: int):
        self.reason = reason
        self.max_length = max_length
        super().__init__(
            f"Reversal reason must be 1-{max_length} characters, got {len(reason)}"
        )


# Document lifecycle


class DocumentError(AllocationKernelError):
    """Base exception for source/target lifecycle errors."""

    code: str = "DOCUMENT_ERROR"


class InvalidDocumentStateError(DocumentError):
    """Originating document is not in a state that can be allocated."""

    code: str = "INVALID_DOCUMENT_STATE"

    def __init__(self, kind: str, document_status: str, allowed: tuple[str, ...]):
        self.kind = kind
        self.document_status = document_status
        self.allowed = allowed
        super().__init__(
            f"A {kind} in status {document_status!r} cannot be allocated "
            f"(allowed: {', '.join(allowed)})"
        )


class DocumentAlreadyRegisteredError(DocumentError):
    """Id already registered with different attributes."""

    code: str = "ALREADY_REGISTERED"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"{entity_type} {entity_id} is already registered with different data"
        )


class SourceHasActiveAllocationsError(DocumentError):
    """Void refused: the source still has active allocations."""

    code: str = "SOURCE_HAS_ACTIVE_ALLOCATIONS"

    def __init__(self, source_id: str, active_count: int):
        self.source_id = source_id
        self.active_count = active_count
        super().__init__(
            f"Source {source_id} has {active_count} active allocation(s); "
            "reverse them before voiding"
        )


# Idempotency


class IdempotencyMismatchError(AllocationKernelError):
    """
    Idempotency key already used for a different request.

    A protocol violation: retries must resend the identical request.
    """

    code: str = "IDEMPOTENCY_MISMATCH"

    def __init__(self, idempotency_key: str, expected_hash: str, received_hash: str):
        self.idempotency_key = idempotency_key
        self.expected_hash = expected_hash
        self.received_hash = received_hash
        super().__init__(
            f"Idempotency key {idempotency_key!r} was used for a different request"
        )


# Concurrency


class ConcurrencyError(AllocationKernelError):
    """Base exception for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Compare-and-set lost: the row changed since it was read."""

    code: str = "CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, attempts: int | None = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.attempts = attempts
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability


class ImmutabilityViolationError(AllocationKernelError):
    """Attempted to delete or rewrite an audit record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
