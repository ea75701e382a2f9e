"""
Module: allocation_kernel.models.exchange_rate
Responsibility: ORM persistence for currency exchange rates used by the
    statistics converted view.  Each row is a timestamped, sourced
    conversion factor between two ISO 4217 currencies.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Rows are append-only (db/immutability.py): a corrected rate is a new
      row with a later effective_at, so reports generated for an earlier
      as_of stay reproducible.
    - rate is stored as an exact decimal string (DecimalString).
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from allocation_kernel.db.base import TrackedBase
from allocation_kernel.db.types import DecimalString


class ExchangeRate(TrackedBase):
    """
    One directional conversion factor: 1 from_currency = rate to_currency.

    Non-goals:
        - Inverse rates are not derived; store both directions if needed.
    """

    __tablename__ = "exchange_rates"

    __table_args__ = (
        Index(
            "idx_rate_lookup",
            "from_currency",
            "to_currency",
            "effective_at",
        ),
    )

    from_currency: Mapped[str] = mapped_column(String(3), nullable=False)

    to_currency: Mapped[str] = mapped_column(String(3), nullable=False)

    rate: Mapped[Decimal] = mapped_column(DecimalString(), nullable=False)

    effective_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    # Rate provider, e.g. "ECB" or "manual"
    source: Mapped[str] = mapped_column(String(50), nullable=False)

    def __repr__(self) -> str:
        return f"<ExchangeRate {self.from_currency}/{self.to_currency} = {self.rate}>"
