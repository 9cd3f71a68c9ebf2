"""
Exact conversion between human-readable token amounts and base units.

Token amounts are bit-exact integers on-chain, so every conversion here is
done on the decimal string itself with integer arithmetic. Binary floats
never touch an amount.
"""

from __future__ import annotations

import re
from typing import Iterable

from .errors import InvalidAmount


# ERC-20 decimals() is a uint8
MAX_PRECISION = 255

# Plain non-negative decimals only: "10", "10.", "10.5", ".5".
# ASCII digits only; no signs, exponents, separators or currency symbols.
_DECIMAL_RE = re.compile(r"^(?:(?P<whole>[0-9]+)(?:\.(?P<frac>[0-9]*))?|\.(?P<frac_only>[0-9]+))$")


def _check_precision(precision: int) -> None:
    if isinstance(precision, bool) or not isinstance(precision, int):
        raise ValueError(f"Precision must be an integer, got {precision!r}")
    if not 0 <= precision <= MAX_PRECISION:
        raise ValueError(f"Precision must be between 0 and {MAX_PRECISION}, got {precision}")


def _split(text: str) -> tuple[str, str]:
    """Split a decimal string into (whole, fraction) digit strings."""
    if not isinstance(text, str):
        raise InvalidAmount(f"Amount must be a decimal string, got {type(text).__name__}")
    match = _DECIMAL_RE.match(text.strip())
    if match is None:
        raise InvalidAmount(f"Invalid amount '{text}'")
    if match.group("frac_only") is not None:
        return "0", match.group("frac_only")
    return match.group("whole"), match.group("frac") or ""


def is_decimal_amount(text: str) -> bool:
    """True if ``text`` is a plain non-negative decimal number."""
    try:
        _split(text)
    except InvalidAmount:
        return False
    return True


def fraction_digits(text: str) -> int:
    """Number of significant fractional digits in a decimal string."""
    _, frac = _split(text)
    return len(frac.rstrip("0"))


def to_base_units(amount: str, precision: int) -> int:
    """
    Convert a decimal string to integer base units.

    ``to_base_units("1.5", 18) == 1_500_000_000_000_000_000``

    Raises InvalidAmount when the string is not a plain non-negative
    decimal, or when it carries more significant fractional digits than
    ``precision`` allows. Excess digits are rejected, never truncated.
    """
    _check_precision(precision)
    whole, frac = _split(amount)

    frac = frac.rstrip("0")
    if len(frac) > precision:
        raise InvalidAmount(
            f"Amount '{amount.strip()}' has {len(frac)} fractional digits, "
            f"token precision is {precision}"
        )

    return int(whole) * 10 ** precision + int(frac.ljust(precision, "0") or "0")


def from_base_units(value: int, precision: int) -> str:
    """
    Convert integer base units back to a decimal string, for display only.

    Trailing fractional zeros are dropped: ``from_base_units(4 * 10**18, 18)``
    is ``"4"``.
    """
    _check_precision(precision)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Base-unit value must be an integer, got {value!r}")
    if value < 0:
        raise ValueError(f"Base-unit value must be non-negative, got {value}")

    if precision == 0:
        return str(value)

    whole, frac = divmod(value, 10 ** precision)
    frac_str = str(frac).rjust(precision, "0").rstrip("0")
    return f"{whole}.{frac_str}" if frac_str else str(whole)


def sum_decimal_amounts(amounts: Iterable[str]) -> str:
    """
    Exact sum of decimal strings, as a decimal string.

    Used for previews before the token precision is known: the sum is
    taken at the largest fractional length present, so nothing is rounded.
    """
    amounts = list(amounts)
    if not amounts:
        return "0"
    scale = max(fraction_digits(a) for a in amounts)
    total = sum(to_base_units(a, scale) for a in amounts)
    return from_base_units(total, scale)
