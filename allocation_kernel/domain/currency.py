"""Currency -- ISO 4217 registry with minor-unit exponents."""

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar

from allocation_kernel.exceptions import InvalidCurrencyError


@dataclass(frozen=True)
class CurrencyInfo:
    """Minor-unit information about a single ISO 4217 currency."""

    code: str
    exponent: int

    @property
    def minor_per_major(self) -> int:
        """Number of minor units in one major unit (100 for USD, 1 for JPY)."""
        return 10 ** self.exponent

    @property
    def quantum(self) -> Decimal:
        """Smallest representable major-unit step, for Decimal.quantize()."""
        return Decimal(1).scaleb(-self.exponent)


# Codes grouped by exponent. Anything not listed in the 0/3/4 groups uses 2.
_ZERO_DECIMAL = (
    "BIF CLP DJF GNF ISK JPY KMF KRW PYG RWF UGX UYI VND VUV XAF XOF XPF "
    "XAG XAU XBA XBB XBC XBD XDR XPD XPT XSU XTS XUA XXX"
)
_THREE_DECIMAL = "BHD IQD JOD KWD LYD OMR TND"
_FOUR_DECIMAL = "CLF UYW"
_TWO_DECIMAL = (
    "AED AFN ALL AMD ANG AOA ARS AUD AWG AZN BAM BBD BDT BGN BMD BND BOB BOV "
    "BRL BSD BTN BWP BYN BZD CAD CDF CHE CHF CHW CNY COP COU CRC CUC CUP CVE "
    "CZK DKK DOP DZD EGP ERN ETB EUR FJD FKP GBP GEL GHS GIP GMD GTQ GYD HKD "
    "HNL HRK HTG HUF IDR ILS INR IRR JMD KES KGS KHR KPW KYD KZT LAK LBP LKR "
    "LRD LSL MAD MDL MGA MKD MMK MNT MOP MRU MUR MVR MWK MXN MXV MYR MZN NAD "
    "NGN NIO NOK NPR NZD PAB PEN PGK PHP PKR PLN QAR RON RSD RUB SAR SBD SCR "
    "SDG SEK SGD SHP SLE SLL SOS SRD SSP STN SVC SYP SZL THB TJS TMT TOP TRY "
    "TTD TWD TZS UAH USD USN UYU UZS VED VES WST XCD YER ZAR ZMW ZWL"
)


def _build_table() -> dict[str, CurrencyInfo]:
    table: dict[str, CurrencyInfo] = {}
    for codes, exponent in (
        (_TWO_DECIMAL, 2),
        (_ZERO_DECIMAL, 0),
        (_THREE_DECIMAL, 3),
        (_FOUR_DECIMAL, 4),
    ):
        for code in codes.split():
            table[code] = CurrencyInfo(code, exponent)
    return table


class CurrencyRegistry:
    """Registry of ISO 4217 currencies and their minor-unit exponents."""

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = _build_table()

    @classmethod
    def is_valid(cls, code: str) -> bool:
        """Check if a currency code is valid ISO 4217."""
        if not code or not isinstance(code, str):
            return False
        return code.upper().strip() in cls._CURRENCIES

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo:
        """Get currency information, raising InvalidCurrencyError if unknown."""
        return cls._CURRENCIES[cls.validate(code)]

    @classmethod
    def get_exponent(cls, code: str) -> int:
        """Number of decimal places of the currency's minor unit."""
        return cls.get_info(code).exponent

    @classmethod
    def validate(cls, code: str) -> str:
        """Validate and normalize a currency code."""
        if not code or not isinstance(code, str):
            raise InvalidCurrencyError(str(code))
        normalized = code.upper().strip()
        if len(normalized) != 3 or normalized not in cls._CURRENCIES:
            raise InvalidCurrencyError(code)
        return normalized

    @classmethod
    def all_codes(cls) -> frozenset[str]:
        """Get all valid currency codes."""
        return frozenset(cls._CURRENCIES)
