# src/revledger/ledger/fixed_point.py
from __future__ import annotations

"""Fixed-point helpers used wherever money is split.

Python ints never overflow, so the 512-bit intermediate of a mulDiv is
always exact here. What we still enforce is the uint256 domain: inputs must
be non-negative ints that fit, and results that would not fit are rejected
instead of wrapping or truncating.
"""

from typing import Any, Tuple

from revledger.ledger.constants import UINT256_MAX
from revledger.ledger.errors import ArithmeticOverflow, InvalidAmount


def as_uint(v: Any, *, field: str = "value") -> int:
    """Coerce `v` into the uint256 domain or raise."""
    if isinstance(v, bool) or not isinstance(v, int):
        raise InvalidAmount("not_an_integer", {"field": field, "type": type(v).__name__})
    if v < 0:
        raise InvalidAmount("negative", {"field": field, "value": int(v)})
    if v > UINT256_MAX:
        raise ArithmeticOverflow("exceeds_uint256", {"field": field})
    return int(v)


def _check_result(v: int, *, op: str) -> int:
    if v > UINT256_MAX:
        raise ArithmeticOverflow("result_exceeds_uint256", {"op": op})
    return v


def _check_denominator(d: int, *, op: str) -> int:
    d = as_uint(d, field="denominator")
    if d == 0:
        raise ArithmeticOverflow("division_by_zero", {"op": op})
    return d


def mul_div(x: int, y: int, denominator: int) -> int:
    """floor(x * y / denominator) with a full-width intermediate."""
    x = as_uint(x, field="x")
    y = as_uint(y, field="y")
    d = _check_denominator(denominator, op="mul_div")
    return _check_result((x * y) // d, op="mul_div")


def mul_div_up(x: int, y: int, denominator: int) -> int:
    """ceil(x * y / denominator)."""
    x = as_uint(x, field="x")
    y = as_uint(y, field="y")
    d = _check_denominator(denominator, op="mul_div_up")
    q, r = divmod(x * y, d)
    if r:
        q += 1
    return _check_result(q, op="mul_div_up")


def mul_div_mod(x: int, y: int, denominator: int, carry: int = 0) -> Tuple[int, int]:
    """Return (quotient, remainder) of (x * y + carry) / denominator.

    The remainder is what a plain mul_div would silently drop; callers that
    must conserve value keep it.
    """
    x = as_uint(x, field="x")
    y = as_uint(y, field="y")
    c = as_uint(carry, field="carry")
    d = _check_denominator(denominator, op="mul_div_mod")
    q, r = divmod(x * y + c, d)
    return _check_result(q, op="mul_div_mod"), r


def ceil_div(a: int, b: int) -> int:
    a = as_uint(a, field="a")
    b = _check_denominator(b, op="ceil_div")
    return -(-a // b)


def checked_add(a: int, b: int) -> int:
    return _check_result(as_uint(a, field="a") + as_uint(b, field="b"), op="add")


def checked_sub(a: int, b: int) -> int:
    a = as_uint(a, field="a")
    b = as_uint(b, field="b")
    if b > a:
        raise ArithmeticOverflow("underflow", {"a": a, "b": b})
    return a - b


__all__ = [
    "as_uint",
    "mul_div",
    "mul_div_up",
    "mul_div_mod",
    "ceil_div",
    "checked_add",
    "checked_sub",
]
