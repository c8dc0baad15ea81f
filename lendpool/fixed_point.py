"""
fixed_point.py - Integer fixed-point arithmetic

Every helper takes and returns Python ints and rounds in an explicit
direction. Callers choose the direction that favors the protocol:
amounts owed to users round down, amounts owed by users round up.

Results outside [0, MAX_UINT256] and divisions by zero raise
InternalInvariantViolated instead of producing a silently wrong value.
"""

from __future__ import annotations

from .core import WAD, MAX_UINT256, InternalInvariantViolated


def _checked(value: int) -> int:
    if value < 0 or value > MAX_UINT256:
        raise InternalInvariantViolated(f"fixed-point result out of range: {value}")
    return value


def mul_div_down(x: int, y: int, denominator: int) -> int:
    """Return floor(x * y / denominator)."""
    if denominator == 0:
        raise InternalInvariantViolated("division by zero")
    return _checked(x * y // denominator)


def mul_div_up(x: int, y: int, denominator: int) -> int:
    """Return ceil(x * y / denominator)."""
    if denominator == 0:
        raise InternalInvariantViolated("division by zero")
    return _checked(-(-(x * y) // denominator))


def wad_mul(x: int, y: int, round_up: bool = False) -> int:
    """Multiply two wads."""
    if round_up:
        return mul_div_up(x, y, WAD)
    return mul_div_down(x, y, WAD)


def wad_div(x: int, y: int, round_up: bool = False) -> int:
    """Divide two wads."""
    if round_up:
        return mul_div_up(x, WAD, y)
    return mul_div_down(x, WAD, y)


def checked_sub(x: int, y: int) -> int:
    """Subtract, raising instead of going negative."""
    if y > x:
        raise InternalInvariantViolated(f"subtraction underflow: {x} - {y}")
    return x - y


def rpow(x: int, n: int, base: int = WAD) -> int:
    """
    Raise a fixed-point number to an integer power.

    Exponentiation by squaring; each intermediate product is rounded to
    nearest at the given base, so (1.05 * WAD) ** 5 is exact to the last
    digit the base can represent.

    Args:
        x: Fixed-point base (scaled by `base`)
        n: Non-negative integer exponent
        base: Fixed-point scale

    Returns:
        x ** n, scaled by `base`
    """
    if n < 0:
        raise InternalInvariantViolated(f"negative exponent: {n}")
    half = base // 2
    result = base if n % 2 == 0 else x
    n //= 2
    while n:
        x = _checked((x * x + half) // base)
        if n % 2:
            result = _checked((result * x + half) // base)
        n //= 2
    return _checked(result)
