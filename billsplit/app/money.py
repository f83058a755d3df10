"""
money.py — Currency registry and fixed-point amount helpers.

Amounts are Decimal at the edges and integer minor units (cents, yen, fils)
inside the balance engine. Every conversion goes through this module so that
a currency's precision is decided in exactly one place.

No Flask, no SQLAlchemy. Errors are plain ValueError; callers that face the
API validate first (schemas) and treat a ValueError here as a bug.
"""

from __future__ import annotations

from decimal import Decimal

# ISO-4217 currencies accepted by the API, with their minor-unit digits.
_TWO_DIGIT_CURRENCIES = frozenset("""
    AED AFN ALL AMD ANG AOA ARS AUD AWG BAM BBD BDT BGN BMD BND BOB BRL BSD
    BTN BWP BYN BZD CAD CDF CHF CNY COP CRC CUP CVE CZK DKK DOP DZD EGP ETB
    EUR FJD GBP GEL GHS GMD GTQ GYD HKD HNL HTG HUF IDR ILS INR IRR JMD KES
    KHR KYD KZT LAK LBP LKR LRD LSL MAD MDL MKD MMK MOP MUR MVR MWK MXN MYR
    MZN NAD NGN NIO NOK NPR NZD PAB PEN PGK PHP PKR PLN QAR RON RSD RUB SAR
    SBD SCR SDG SEK SGD SHP SOS SRD STN SZL THB TJS TMT TOP TRY TTD TWD TZS
    UAH USD UYU UZS VES XCD YER ZAR ZMW
""".split())

_OTHER_DIGIT_CURRENCIES = {
    # zero-decimal
    "BIF": 0, "CLP": 0, "DJF": 0, "GNF": 0, "ISK": 0, "JPY": 0, "KMF": 0,
    "KRW": 0, "PYG": 0, "RWF": 0, "UGX": 0, "VND": 0, "XOF": 0, "XPF": 0,
    # one decimal
    "MGA": 1, "MRU": 1,
    # three decimals
    "BHD": 3, "IQD": 3, "JOD": 3, "KWD": 3, "LYD": 3, "OMR": 3, "TND": 3,
}

CURRENCY_DECIMALS: dict[str, int] = {
    **{code: 2 for code in _TWO_DIGIT_CURRENCIES},
    **_OTHER_DIGIT_CURRENCIES,
}


def is_supported_currency(code: str) -> bool:
    return code in CURRENCY_DECIMALS


def minor_unit_digits(code: str) -> int:
    """Number of decimal places for `code`. Raises ValueError if unknown."""
    try:
        return CURRENCY_DECIMALS[code]
    except KeyError:
        raise ValueError(f"Unsupported currency: {code!r}") from None


def quantum(code: str) -> Decimal:
    """Smallest representable amount, e.g. Decimal('0.01') for USD, Decimal('1') for JPY."""
    return Decimal(1).scaleb(-minor_unit_digits(code))


def has_valid_precision(amount: Decimal, code: str) -> bool:
    """
    True if `amount` is a whole number of minor units.

    Value-based, so Decimal('10.500') is valid for USD (it equals 10.50).
    """
    scaled = Decimal(amount).scaleb(minor_unit_digits(code))
    return scaled == scaled.to_integral_value()


def to_minor_units(amount: Decimal, code: str) -> int:
    """Converts a Decimal amount to integer minor units without rounding."""
    scaled = Decimal(amount).scaleb(minor_unit_digits(code))
    if scaled != scaled.to_integral_value():
        raise ValueError(
            f"{amount} has more precision than {code} allows "
            f"({minor_unit_digits(code)} decimal places)."
        )
    return int(scaled)


def from_minor_units(units: int, code: str) -> Decimal:
    """Converts integer minor units back to a Decimal quantized to the currency."""
    return Decimal(units).scaleb(-minor_unit_digits(code)).quantize(quantum(code))


def format_amount(amount: Decimal, code: str) -> str:
    """Canonical string form: '10.50' for USD, '1000' for JPY, '1.250' for KWD."""
    return str(Decimal(amount).quantize(quantum(code)))
