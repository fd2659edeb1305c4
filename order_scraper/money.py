"""Monetary amounts as integer cents.

Amounts are parsed from the strings printed on invoices (``"$1,234.50"``,
``"-$10.54"``) and compared by ``(cents, currency)``; the original text is kept
in ``display_value`` only so tests can show what was read.
"""
from __future__ import annotations

import re
from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict

__all__ = [
    "MonetaryAmount",
    "AmountInput",
    "parse_monetary_amount",
    "format_monetary_amount",
    "monetary_amounts_equal",
]

CURRENCY_SYMBOLS = ("$",)

_AMOUNT_RE = re.compile(
    r"^(?P<sign>-)?\s*(?P<currency>[$])?\s*(?P<inner_sign>-)?\s*"
    r"(?P<whole>[0-9][0-9,]*)?(?:\.(?P<fraction>[0-9]*))?$"
)


class MonetaryAmount(BaseModel):
    model_config = ConfigDict(frozen=True)

    currency: Optional[str] = None
    display_value: str
    cents: int

    @classmethod
    def from_cents(cls, cents: int, currency: Optional[str] = None) -> "MonetaryAmount":
        amount = cls(currency=currency, display_value="", cents=cents)
        return amount.model_copy(update={"display_value": format_monetary_amount(amount)})

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MonetaryAmount):
            return NotImplemented
        return (self.cents, self.currency) == (other.cents, other.currency)

    def __hash__(self) -> int:
        return hash((self.cents, self.currency))

    def __str__(self) -> str:
        return format_monetary_amount(self)


AmountInput = Union[str, int, float, Decimal, MonetaryAmount]


def _as_text(value: AmountInput) -> str:
    if isinstance(value, bool):
        raise TypeError("Booleans are not monetary amounts")
    if isinstance(value, (int, float, Decimal)):
        return f"{Decimal(str(value)):.2f}"
    if isinstance(value, str):
        return value.strip()
    raise TypeError(f"Cannot parse a monetary amount from {type(value).__name__}")


def parse_monetary_amount(value: AmountInput) -> MonetaryAmount:
    """Parse ``value`` into a :class:`MonetaryAmount`.

    The sign applies to the whole amount, so ``"-$10.54"`` is ``-1054`` cents.
    Raises ``ValueError`` for text that is not an amount, including any input
    with more than one decimal point.
    """

    if isinstance(value, MonetaryAmount):
        return value

    text = _as_text(value)
    if text.count(".") > 1:
        raise ValueError(f"Invalid monetary amount {text!r}: more than one decimal point")

    match = _AMOUNT_RE.match(text)
    if not match or not (match.group("whole") or match.group("fraction")):
        raise ValueError(f"Invalid monetary amount {text!r}")
    if match.group("sign") and match.group("inner_sign"):
        raise ValueError(f"Invalid monetary amount {text!r}: repeated sign")

    fraction = match.group("fraction") or ""
    if len(fraction) > 2:
        raise ValueError(f"Invalid monetary amount {text!r}: more than two fractional digits")

    whole = int((match.group("whole") or "0").replace(",", "") or "0")
    cents = whole * 100 + int(fraction.ljust(2, "0"))
    if match.group("sign") or match.group("inner_sign"):
        cents = -cents

    return MonetaryAmount(currency=match.group("currency"), display_value=text, cents=cents)


def format_monetary_amount(amount: AmountInput) -> str:
    """Render ``amount`` as ``[-]{currency}{whole}.{fraction:02}``."""

    parsed = parse_monetary_amount(amount)
    sign = "-" if parsed.cents < 0 else ""
    whole, fraction = divmod(abs(parsed.cents), 100)
    return f"{sign}{parsed.currency or ''}{whole}.{fraction:02d}"


def monetary_amounts_equal(a: AmountInput, b: AmountInput) -> bool:
    left = parse_monetary_amount(a)
    right = parse_monetary_amount(b)
    return left.cents == right.cents and left.currency == right.currency
