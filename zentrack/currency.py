"""
Display formatting of canonical JPY prices.

Prices are stored in yen (JPY has no minor unit, so ``price_minor`` is a yen
amount). Every other currency is a fixed multiplier against that base.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

BASE_CURRENCY = "JPY"


@dataclass(frozen=True)
class Currency:
    code: str
    symbol: str
    rate: Decimal  # units of this currency per 1 JPY
    decimals: int
    group_sep: str = ","
    decimal_sep: str = "."


CURRENCIES: dict[str, Currency] = {
    "JPY": Currency("JPY", "¥", Decimal("1"), 0),
    "USD": Currency("USD", "$", Decimal("0.0067"), 2),
    "EUR": Currency("EUR", "€", Decimal("0.0062"), 2, group_sep=".", decimal_sep=","),
    "GBP": Currency("GBP", "£", Decimal("0.0053"), 2),
}


def is_supported(code: str) -> bool:
    return code in CURRENCIES


def convert(price_minor: int, code: str) -> Decimal:
    """JPY amount -> amount in ``code``, rounded half-up to its decimals."""
    cur = CURRENCIES[code]
    quantum = Decimal(1).scaleb(-cur.decimals)
    return (Decimal(int(price_minor)) * cur.rate).quantize(quantum, rounding=ROUND_HALF_UP)


def normalize(price_minor: int, code: str) -> str:
    """Format a canonical JPY price for display in ``code``.

    >>> normalize(1000, "JPY")
    '¥1,000'
    >>> normalize(1000, "USD")
    '$6.70'
    >>> normalize(1234567, "EUR")
    '€7.654,32'

    ``code`` must be a key of ``CURRENCIES``; anything else raises KeyError.
    """
    cur = CURRENCIES[code]
    text = f"{convert(price_minor, code):,.{cur.decimals}f}"
    if (cur.group_sep, cur.decimal_sep) != (",", "."):
        text = text.translate(str.maketrans({",": cur.group_sep, ".": cur.decimal_sep}))
    return f"{cur.symbol}{text}"
