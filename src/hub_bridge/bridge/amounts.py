"""Conversion between human decimal strings and atomic token units.

Amounts travel through the system as decimal strings (``"0.1"``). They are
turned into integers only when a contract call is built, using the decimal
count the chain registry declares for that token.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from hub_bridge.bridge.errors import InvalidAmountError


def parse_amount(amount: str | int | Decimal) -> Decimal:
    """Parse and validate a positive decimal amount.

    Floats are refused: ``0.1`` as a float is not ``0.1``.
    """
    if isinstance(amount, float):
        raise InvalidAmountError(f"Amount must be a decimal string, got float {amount!r}")
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        raise InvalidAmountError(f"Invalid amount '{amount}'. Provide a number like '0.1'.") from None
    if not value.is_finite():
        raise InvalidAmountError(f"Invalid amount '{amount}'.")
    if value <= 0:
        raise InvalidAmountError(f"Amount must be positive, got '{amount}'.")
    return value


def to_atomic(amount: str | int | Decimal, decimals: int) -> int:
    """Convert a decimal amount to integer units at *decimals* precision.

    Raises ``InvalidAmountError`` if the amount has more fractional digits
    than the token supports; truncating would silently move less than asked.
    """
    value = parse_amount(amount)
    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise InvalidAmountError(
            f"Amount '{amount}' has more than {decimals} decimal places."
        )
    return int(scaled)


def from_atomic(units: int, decimals: int) -> str:
    """Render integer units as a plain decimal string without trailing zeros."""
    value = Decimal(int(units)).scaleb(-decimals)
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def same_amount(a: str, b: str) -> bool:
    """Compare two decimal strings numerically."""
    return Decimal(a) == Decimal(b)
