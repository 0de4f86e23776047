from __future__ import annotations

import pytest

from revledger.ledger.allocation import AllocationTracker
from revledger.ledger.errors import InvalidRecipient, NonMonotonicAllocation


def test_observe_returns_growth_since_last_seen() -> None:
    t = AllocationTracker()
    assert t.observe("alice", "pool-1", 100) == 100
    assert t.observe("alice", "pool-1", 100) == 0
    assert t.observe("alice", "pool-1", 10**30) == 10**30 - 100


def test_start_hides_earlier_allocations() -> None:
    t = AllocationTracker()
    t.start("bob", "pool-1", 500)
    assert t.peek("bob", "pool-1", 650) == 150
    # peek does not advance
    assert t.observe("bob", "pool-1", 650) == 150


def test_counter_going_backwards_is_rejected() -> None:
    t = AllocationTracker()
    t.observe("alice", "p", 10)
    with pytest.raises(NonMonotonicAllocation):
        t.observe("alice", "p", 9)
    with pytest.raises(NonMonotonicAllocation):
        t.start("alice", "p", 5)
    assert t.cursor("alice", "p").last_seen_total == 10


def test_cursors_are_per_pair() -> None:
    t = AllocationTracker()
    t.observe("alice", "p1", 10)
    t.observe("alice", "p2", 20)
    t.observe("bob", "p1", 30)
    assert len(t) == 3
    assert sorted(c.pool_id for c in t.cursors_for("alice")) == ["p1", "p2"]

    with pytest.raises(InvalidRecipient):
        t.observe("", "p1", 1)


def test_snapshot_round_trip() -> None:
    t = AllocationTracker()
    t.observe("alice", "p1", 42)
    other = AllocationTracker()
    other.load_dict(t.to_dict())
    assert other.peek("alice", "p1", 50) == 8
