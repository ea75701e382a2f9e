"""
Values -- Immutable, self-validating monetary value objects.

Responsibility:
    Provides Currency, Money and ExchangeRate.  Money stores an integer count
    of minor units (cents for USD, yen for JPY, fils for KWD) paired with an
    ISO 4217 currency; every balance, allocation and statistic in the kernel
    is expressed with it.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Depends only on allocation_kernel.domain.currency (CurrencyRegistry).

Invariants enforced:
    - amount is always an int count of minor units (never float, never Decimal)
    - currency is always a valid ISO 4217 code
    - arithmetic and ordering between different currencies raise
      CurrencyMismatchError (a TypeError); there is no implicit conversion
    - parsing from major units never silently rounds

Failure modes:
    - InvalidCurrencyError (ValueError) for unknown currency codes
    - ValueError for sub-minor precision or malformed amounts
    - TypeError for floats, bools or other non-integer amounts
    - CurrencyMismatchError when two currencies are combined

Audit relevance:
    Integer minor units make every sum exact: conservation checks compare
    integers, not rounded decimals.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from allocation_kernel.domain.currency import CurrencyRegistry
from allocation_kernel.exceptions import CurrencyMismatchError


@dataclass(frozen=True, slots=True)
class Currency:
    """
    ISO 4217 currency code value object.

    Contract:
        Wraps a three-letter ISO 4217 code, validated and uppercased on
        construction.

    Guarantees:
        - Immutable and hashable
        - code is always a valid, normalized ISO 4217 code
    """

    code: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "code", CurrencyRegistry.validate(self.code))

    @property
    def exponent(self) -> int:
        """Number of decimal places of the minor unit."""
        return CurrencyRegistry.get_exponent(self.code)

    @property
    def minor_per_major(self) -> int:
        return 10 ** self.exponent

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"Currency({self.code!r})"


def _coerce_currency(currency: str | Currency) -> Currency:
    if isinstance(currency, Currency):
        return currency
    return Currency(currency)


@dataclass(frozen=True, slots=True)
class Money:
    """
    Monetary amount in integer minor units.

    Contract:
        ``Money(amount, currency)`` takes minor units directly;
        ``Money.of("500.00", "USD")`` parses a major-unit value.

    Guarantees:
        - Immutable and hashable
        - amount is an int; bool and float are rejected
        - +, -, <, <=, >, >= require identical currencies

    Non-goals:
        - Does NOT convert between currencies (use ExchangeRate.convert)
        - Does NOT forbid negative values; balance invariants are enforced
          by the ledger, not by the value type
    """

    amount: int
    currency: Currency

    def __post_init__(self) -> None:
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise TypeError(
                f"Money amount must be an int of minor units, got {type(self.amount).__name__}"
            )
        if not isinstance(self.currency, Currency):
            if not isinstance(self.currency, str):
                raise TypeError(
                    f"currency must be Currency or str, got {type(self.currency).__name__}"
                )
            object.__setattr__(self, "currency", Currency(self.currency))

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str | Currency) -> Money:
        """
        Create Money from a major-unit amount.

        ``Money.of("10.50", "USD")`` is 1050 cents.  Values with more
        precision than the currency's minor unit are rejected, never rounded.

        Raises:
            TypeError: amount is a float or bool.
            ValueError: amount is malformed or too precise for the currency.
        """
        if isinstance(amount, (float, bool)):
            raise TypeError("Money.of() does not accept float or bool amounts")
        currency = _coerce_currency(currency)
        try:
            value = Decimal(str(amount).strip()) if not isinstance(amount, Decimal) else amount
        except InvalidOperation as e:
            raise ValueError(f"Invalid amount: {amount!r}") from e
        if not value.is_finite():
            raise ValueError(f"Invalid amount: {amount!r}")

        minor = value.scaleb(currency.exponent)
        if minor != minor.to_integral_value():
            raise ValueError(
                f"Amount {amount} has more precision than {currency.code} allows "
                f"({currency.exponent} decimal places)"
            )
        return cls(int(minor), currency)

    @classmethod
    def from_minor(cls, amount: int, currency: str | Currency) -> Money:
        """Create Money from an integer count of minor units."""
        return cls(amount, _coerce_currency(currency))

    @classmethod
    def zero(cls, currency: str | Currency) -> Money:
        """Create a zero amount in the given currency."""
        return cls(0, _coerce_currency(currency))

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    @property
    def is_positive(self) -> bool:
        return self.amount > 0

    @property
    def is_negative(self) -> bool:
        return self.amount < 0

    def to_decimal(self) -> Decimal:
        """Major-unit Decimal with the currency's exact number of places."""
        exponent = self.currency.exponent
        return Decimal(self.amount).scaleb(-exponent).quantize(
            Decimal(1).scaleb(-exponent)
        )

    def _require_same_currency(self, other: Money, operation: str) -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(
                self.currency.code, other.currency.code, operation
            )

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._require_same_currency(other, "add")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._require_same_currency(other, "subtract")
        return Money(self.amount - other.amount, self.currency)

    def __neg__(self) -> Money:
        return Money(-self.amount, self.currency)

    def __abs__(self) -> Money:
        return Money(abs(self.amount), self.currency)

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._require_same_currency(other, "compare")
        return self.amount < other.amount

    def __le__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._require_same_currency(other, "compare")
        return self.amount <= other.amount

    def __gt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._require_same_currency(other, "compare")
        return self.amount > other.amount

    def __ge__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._require_same_currency(other, "compare")
        return self.amount >= other.amount

    def __str__(self) -> str:
        return f"{self.to_decimal()} {self.currency.code}"

    def __repr__(self) -> str:
        return f"Money({self.amount!r}, {self.currency.code!r})"


@dataclass(frozen=True, slots=True)
class ExchangeRate:
    """
    Exchange rate between two currencies.

    Contract:
        1 major unit of from_currency = rate major units of to_currency.

    Guarantees:
        - rate is a positive Decimal (floats rejected)
        - convert() rounds half-up to the target currency's minor unit
    """

    from_currency: Currency
    to_currency: Currency
    rate: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "from_currency", _coerce_currency(self.from_currency))
        object.__setattr__(self, "to_currency", _coerce_currency(self.to_currency))

        if isinstance(self.rate, (float, bool)):
            raise TypeError("Exchange rate must not be a float")
        if not isinstance(self.rate, Decimal):
            try:
                object.__setattr__(self, "rate", Decimal(str(self.rate)))
            except InvalidOperation as e:
                raise ValueError(f"Invalid exchange rate: {self.rate}") from e
        if not self.rate.is_finite() or self.rate <= 0:
            raise ValueError(f"Exchange rate must be positive: {self.rate}")

    @classmethod
    def of(
        cls,
        from_currency: str | Currency,
        to_currency: str | Currency,
        rate: Decimal | str | int,
    ) -> ExchangeRate:
        return cls(_coerce_currency(from_currency), _coerce_currency(to_currency), rate)

    @classmethod
    def identity(cls, currency: str | Currency) -> ExchangeRate:
        """Rate of 1 from a currency to itself."""
        currency = _coerce_currency(currency)
        return cls(currency, currency, Decimal(1))

    def convert(self, money: Money) -> Money:
        """
        Convert money into to_currency, rounding half-up to its minor unit.

        Raises:
            CurrencyMismatchError: money is not in from_currency.
        """
        if money.currency != self.from_currency:
            raise CurrencyMismatchError(
                self.from_currency.code, money.currency.code, "exchange rate"
            )
        converted = money.to_decimal() * self.rate
        minor = converted.scaleb(self.to_currency.exponent).quantize(
            Decimal(1), rounding=ROUND_HALF_UP
        )
        return Money(int(minor), self.to_currency)

    def inverse(self) -> ExchangeRate:
        return ExchangeRate(self.to_currency, self.from_currency, Decimal(1) / self.rate)

    @property
    def pair(self) -> tuple[str, str]:
        return (self.from_currency.code, self.to_currency.code)

    def __str__(self) -> str:
        return f"{self.from_currency}/{self.to_currency} = {self.rate}"
