"""
Checked fixed point arithmetic.

Python integers never wrap, so the uint256 semantics of the contracts are
enforced explicitly: any result below zero or above MAX_UINT256 raises
ArithmeticOverflow instead of silently producing a value the chain could not
hold. Divisions truncate toward zero unless the ``_up`` variant is used.
"""

from decimal import Decimal

from constants import INTERNAL_DECIMALS, MAX_UINT256
from errors import ArithmeticOverflow


def _check(result, op):
    if result < 0 or result > MAX_UINT256:
        raise ArithmeticOverflow(f"Arithmetic overflow in {op}")
    return result


def checked_add(a, b):
    """Add with overflow checking"""
    return _check(a + b, "addition")


def checked_sub(a, b):
    """Subtract with underflow checking"""
    return _check(a - b, "subtraction")


def checked_mul(a, b):
    """Multiply with overflow checking"""
    return _check(a * b, "multiplication")


def mul_div(a, b, denominator):
    """Returns a * b / denominator, truncated."""
    if denominator == 0:
        raise ArithmeticOverflow("Division by zero")
    return checked_mul(a, b) // denominator


def mul_div_up(a, b, denominator):
    """Returns a * b / denominator, rounded up."""
    if denominator == 0:
        raise ArithmeticOverflow("Division by zero")
    product = checked_mul(a, b)
    result = product // denominator
    if product % denominator > 0:
        result += 1
    return result


def to_scaled(amount, decimals):
    """Normalizes a native token amount to the 18 decimal internal precision."""
    if decimals == INTERNAL_DECIMALS:
        return amount
    if decimals < INTERNAL_DECIMALS:
        return checked_mul(amount, 10 ** (INTERNAL_DECIMALS - decimals))
    return amount // 10 ** (decimals - INTERNAL_DECIMALS)


def from_scaled(amount, decimals, round_up=False):
    """
    Converts an 18 decimal internal amount back to native token units.

    Args:
        amount: Normalized amount
        decimals: Native decimals of the token
        round_up: Round the truncated remainder up (used for amounts owed to the market)

    Returns:
        Amount in native units
    """
    if decimals == INTERNAL_DECIMALS:
        return amount
    if decimals > INTERNAL_DECIMALS:
        return checked_mul(amount, 10 ** (decimals - INTERNAL_DECIMALS))

    factor = 10 ** (INTERNAL_DECIMALS - decimals)
    result = amount // factor
    if round_up and amount % factor > 0:
        result += 1
    return result


def parse_units(value, decimals=INTERNAL_DECIMALS):
    """
    Parses a human readable number into a fixed point integer.

    ``parse_units("0.7")`` returns 7 * 10**17; ``parse_units("10", 8)`` returns 10**9.
    Digits below the requested precision are truncated.
    """
    if isinstance(value, int):
        return value * 10**decimals
    return int(Decimal(str(value)).scaleb(decimals))
