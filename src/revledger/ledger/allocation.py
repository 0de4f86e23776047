# src/revledger/ledger/allocation.py
from __future__ import annotations

"""Diff-checkpoints against externally owned monotonic counters.

Used when a stakeholder's entitlement is derived from a pool-level running
total (for example the escrow's `total_fees_allocated(pool_id)`) instead of
an internal accumulator. Each `(stakeholder, pool)` pair remembers the last
total it saw; observing a new total yields the delta since then, however
large the jump.
"""

from dataclasses import dataclass
from typing import Dict, Iterator, List

from revledger.ledger.errors import InvalidRecipient, NonMonotonicAllocation
from revledger.ledger.fixed_point import as_uint
from revledger.ledger.types import Json

_SEP = "|"


@dataclass
class PoolCursor:
    stakeholder_id: str
    pool_id: str
    last_seen_total: int = 0

    def to_dict(self) -> Json:
        return {
            "stakeholder_id": self.stakeholder_id,
            "pool_id": self.pool_id,
            "last_seen_total": int(self.last_seen_total),
        }


def _key(stakeholder_id: str, pool_id: str) -> str:
    s = str(stakeholder_id or "").strip()
    p = str(pool_id or "").strip()
    if not s or not p:
        raise InvalidRecipient("empty_cursor_key", {"stakeholder": stakeholder_id, "pool": pool_id})
    return f"{s}{_SEP}{p}"


class AllocationTracker:
    def __init__(self) -> None:
        self._cursors: Dict[str, PoolCursor] = {}

    def __len__(self) -> int:
        return len(self._cursors)

    def __iter__(self) -> Iterator[PoolCursor]:
        return iter(list(self._cursors.values()))

    def cursor(self, stakeholder_id: str, pool_id: str) -> PoolCursor:
        k = _key(stakeholder_id, pool_id)
        c = self._cursors.get(k)
        if c is None:
            c = PoolCursor(stakeholder_id=str(stakeholder_id).strip(), pool_id=str(pool_id).strip())
            self._cursors[k] = c
        return c

    def start(self, stakeholder_id: str, pool_id: str, current_total: int) -> PoolCursor:
        """Open (or fast-forward) a cursor at `current_total`.

        A newly assigned stakeholder starts from "now" and cannot see
        allocations made before the assignment.
        """
        total = as_uint(current_total, field="current_total")
        c = self.cursor(stakeholder_id, pool_id)
        if total < int(c.last_seen_total):
            raise NonMonotonicAllocation(
                "counter_went_backwards",
                {"pool": pool_id, "last_seen": int(c.last_seen_total), "observed": total},
            )
        c.last_seen_total = total
        return c

    def peek(self, stakeholder_id: str, pool_id: str, new_total: int) -> int:
        total = as_uint(new_total, field="new_total")
        c = self._cursors.get(_key(stakeholder_id, pool_id))
        last = int(c.last_seen_total) if c is not None else 0
        if total < last:
            raise NonMonotonicAllocation("counter_went_backwards", {"pool": pool_id, "last_seen": last, "observed": total})
        return total - last

    def observe(self, stakeholder_id: str, pool_id: str, new_total: int) -> int:
        """Advance the cursor to `new_total` and return the delta."""
        delta = self.peek(stakeholder_id, pool_id, new_total)
        self.cursor(stakeholder_id, pool_id).last_seen_total = int(new_total)
        return delta

    def cursors_for(self, stakeholder_id: str) -> List[PoolCursor]:
        s = str(stakeholder_id or "").strip()
        return [c for c in self._cursors.values() if c.stakeholder_id == s]

    def to_dict(self) -> Json:
        return {k: v.to_dict() for k, v in sorted(self._cursors.items())}

    def load_dict(self, d: Json) -> None:
        self._cursors = {}
        if not isinstance(d, dict):
            return
        for k, v in d.items():
            if not isinstance(v, dict):
                continue
            self._cursors[str(k)] = PoolCursor(
                stakeholder_id=str(v.get("stakeholder_id") or ""),
                pool_id=str(v.get("pool_id") or ""),
                last_seen_total=int(v.get("last_seen_total") or 0),
            )


__all__ = ["AllocationTracker", "PoolCursor"]
