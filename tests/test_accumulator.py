from __future__ import annotations

import random

import pytest

from revledger.ledger import accumulator as acc
from revledger.ledger.constants import ETHER
from revledger.ledger.errors import InvalidAmount
from revledger.ledger.registry import StakeRegistry
from revledger.ledger.types import RevenueSource


def _conserved(src: RevenueSource, reg: StakeRegistry) -> int:
    for h in reg:
        acc.settle(src, h)
    owed = sum(int(h.carried_owed) + int(h.total_claimed) for h in reg)
    return owed + int(src.undistributed_remainder) + int(src.total_fallback)


def test_two_stakers_split_proportionally() -> None:
    src = RevenueSource(source_id="s")
    reg = StakeRegistry(src)
    reg.join("a", 1)
    reg.join("b", 3)

    acc.on_inflow(src, 4 * ETHER)

    assert acc.claimable(src, reg.get("a")) == 1 * ETHER
    assert acc.claimable(src, reg.get("b")) == 3 * ETHER


def test_indivisible_inflows_are_conserved_exactly() -> None:
    src = RevenueSource(source_id="s")
    reg = StakeRegistry(src)
    reg.join("a", 1)
    reg.join("b", 1)
    reg.join("c", 1)

    for _ in range(7):
        acc.on_inflow(src, 10)

    assert _conserved(src, reg) == int(src.total_received) == 70
    # Residue is carried, never lost: each holder ends within one unit of 70 / 3.
    for h in reg:
        assert 22 <= int(h.carried_owed) <= 24


def test_randomized_sequence_conserves_value() -> None:
    rng = random.Random(1234)
    src = RevenueSource(source_id="s")
    reg = StakeRegistry(src)
    ids = [f"h{i}" for i in range(6)]

    for step in range(400):
        sid = rng.choice(ids)
        op = rng.random()
        if op < 0.4:
            acc.on_inflow(src, rng.randint(0, 10**6))
        elif op < 0.7:
            reg.join(sid, rng.randint(1, 1000))
        elif op < 0.85 and reg.weight_of(sid):
            reg.decrease_weight(sid, rng.randint(1, reg.weight_of(sid)))
        elif sid in reg:
            h = reg.get(sid)
            acc.settle(src, h)
            acc.record_claimed(h, acc.take_owed(h))

    assert _conserved(src, reg) == int(src.total_received)


def test_zero_weight_inflow_is_reported_as_fallback() -> None:
    src = RevenueSource(source_id="s")

    res = acc.on_inflow(src, 5 * ETHER)

    assert res.routed_to_fallback
    assert res.fallback == 5 * ETHER
    assert int(src.accumulator) == 0
    assert int(src.total_fallback) == 5 * ETHER


def test_zero_amount_inflow_is_a_noop() -> None:
    src = RevenueSource(source_id="s")
    reg = StakeRegistry(src)
    reg.join("a", 10)

    res = acc.on_inflow(src, 0)

    assert res.amount == 0 and res.increment == 0
    assert int(src.accumulator) == 0
    assert int(src.total_received) == 0


def test_settle_is_idempotent() -> None:
    src = RevenueSource(source_id="s")
    reg = StakeRegistry(src)
    h = reg.join("a", 7)
    acc.on_inflow(src, 700)

    first = acc.settle(src, h)
    second = acc.settle(src, h)

    assert first == second == 700
    assert acc.pending(src, h) == 0


def test_negative_inflow_rejected() -> None:
    src = RevenueSource(source_id="s")
    with pytest.raises(InvalidAmount):
        acc.on_inflow(src, -1)
