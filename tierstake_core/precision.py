"""
Fixed-point constants and helpers for TierStake.

All ledger arithmetic is integer-only.  Fractional quantities (the
reward-per-share accumulator and tier multipliers) are scaled by a
single precision factor:

    1.0 == PRECISION == 1_000_000_000_000

Products that feed a division are checked against a 256-bit word
(``MAX_WORD``); exceeding it raises ``ArithmeticOverflow``.
"""

from __future__ import annotations

from tierstake_core.errors import ArithmeticOverflow, InvalidParameter

# Scale factor for the accumulator and multipliers (1x).
PRECISION: int = 10 ** 12

# Basis-point denominator for percentage fees.
BPS_DENOMINATOR: int = 10_000

# Largest intermediate value any multiplication may produce.
MAX_WORD: int = 2 ** 256 - 1

# Longest gap between two accumulator refreshes the ledger must survive
# (2**40 s, roughly 34,000 years).
MAX_ACCRUAL_SECONDS: int = 2 ** 40

# Largest reward rate for which ``elapsed × rate × PRECISION`` stays within
# one word for any gap up to MAX_ACCRUAL_SECONDS.
MAX_REWARD_RATE: int = MAX_WORD // (PRECISION * MAX_ACCRUAL_SECONDS)


def require_int(value, name: str = "value") -> int:
    """Return *value* if it is a plain integer (bools and floats rejected)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidParameter(f"{name} must be an integer, got {type(value).__name__}")
    return value


def checked_mul(a: int, b: int) -> int:
    """Multiply two non-negative ints, raising on word overflow.

    >>> checked_mul(10, 10)
    100
    """
    product = a * b
    if product > MAX_WORD:
        raise ArithmeticOverflow(f"{a} * {b} exceeds the 256-bit word")
    return product


def mul_div(a: int, b: int, denominator: int) -> int:
    """Floor of ``a * b / denominator`` with an overflow-checked product.

    >>> mul_div(1000, 3, 7)
    428
    """
    if denominator == 0:
        raise ArithmeticOverflow("division by zero")
    return checked_mul(a, b) // denominator


def multiplier_from_ratio(ratio: str | int) -> int:
    """Convert a human multiplier such as ``"1.25"`` into fixed point.

    Parsing is decimal-exact: the string is split on the dot instead of
    going through a float.

    >>> multiplier_from_ratio("1.25")
    1250000000000
    """
    if isinstance(ratio, int) and not isinstance(ratio, bool):
        return ratio * PRECISION
    text = str(ratio).strip()
    whole, _, frac = text.partition(".")
    if not whole.isdigit() or (frac and not frac.isdigit()):
        raise InvalidParameter(f"invalid multiplier: {ratio!r}")
    if len(frac) > 12:
        raise InvalidParameter(f"multiplier {ratio!r} exceeds 12 decimal places")
    return int(whole) * PRECISION + int(frac.ljust(12, "0") or "0")


def format_ratio(scaled: int) -> str:
    """Render a fixed-point value as a short decimal string (``"1.5x"``)."""
    whole, frac = divmod(scaled, PRECISION)
    frac_str = f"{frac:012d}".rstrip("0")
    return f"{whole}.{frac_str}x" if frac_str else f"{whole}x"
