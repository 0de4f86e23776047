from __future__ import annotations

import pytest

from revledger.ledger.constants import UINT256_MAX
from revledger.ledger.errors import ArithmeticOverflow, InvalidAmount
from revledger.ledger.fixed_point import as_uint, ceil_div, checked_add, checked_sub, mul_div, mul_div_mod, mul_div_up


def test_mul_div_is_exact_with_wide_intermediate() -> None:
    # x * y exceeds 2**256 but the quotient fits.
    x = UINT256_MAX
    assert mul_div(x, 3, 3) == x
    assert mul_div(10, 3, 4) == 7
    assert mul_div_up(10, 3, 4) == 8
    assert mul_div_up(8, 1, 4) == 2


def test_mul_div_mod_returns_dropped_remainder() -> None:
    q, r = mul_div_mod(10, 3, 4)
    assert (q, r) == (7, 2)

    q, r = mul_div_mod(10, 3, 4, carry=2)
    assert (q, r) == (8, 0)


def test_rejects_out_of_domain_values() -> None:
    with pytest.raises(InvalidAmount):
        as_uint(-1)
    with pytest.raises(InvalidAmount):
        as_uint(True)
    with pytest.raises(InvalidAmount):
        as_uint(1.5)
    with pytest.raises(ArithmeticOverflow):
        as_uint(UINT256_MAX + 1)


def test_overflow_and_zero_division_are_errors_not_wraps() -> None:
    with pytest.raises(ArithmeticOverflow):
        mul_div(UINT256_MAX, 2, 1)
    with pytest.raises(ArithmeticOverflow):
        mul_div(1, 1, 0)
    with pytest.raises(ArithmeticOverflow):
        checked_add(UINT256_MAX, 1)
    with pytest.raises(ArithmeticOverflow):
        checked_sub(1, 2)


def test_ceil_div() -> None:
    assert ceil_div(0, 5) == 0
    assert ceil_div(10, 5) == 2
    assert ceil_div(11, 5) == 3
