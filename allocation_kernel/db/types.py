"""
Module: allocation_kernel.db.types
Responsibility: Annotated column aliases shared by every model, and the
    DecimalString type used for exchange rates.
Architecture position: Kernel > DB.  MUST NOT import from models/, services/,
    selectors/ or domain/.

Invariants enforced:
    - Monetary columns are BigInteger counts of minor units.  No float or
      Numeric column ever holds an amount.
    - Exchange rates round-trip exactly: they are stored as their canonical
      decimal string, so backends without a native DECIMAL (SQLite) never
      pass a rate through a binary float.
"""

from decimal import Decimal
from typing import Annotated

from sqlalchemy import BigInteger, String
from sqlalchemy.types import TypeDecorator

# Integer count of minor units (cents, yen, fils)
MinorUnits = Annotated[int, "minor_units"]

# ISO 4217 currency code (e.g., "USD", "EUR", "JPY")
CurrencyCode = Annotated[str, 3]

# SHA-256 hash as hex string (64 characters)
PayloadHash = Annotated[str, 64]

# Resolved through Base.type_annotation_map
ANNOTATED_COLUMN_TYPES: dict = {
    MinorUnits: BigInteger,
    CurrencyCode: String(3),
    PayloadHash: String(64),
}


class DecimalString(TypeDecorator):
    """Decimal stored as its string form for exact cross-database round trips."""

    impl = String(64)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, float):
            raise TypeError("DecimalString does not accept float values")
        return str(Decimal(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)
