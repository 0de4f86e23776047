# src/revledger/ledger/registry.py
from __future__ import annotations

import time
from typing import Callable, Dict, Iterator, Optional

from revledger.ledger.accumulator import settle
from revledger.ledger.errors import InsufficientBalance, InvalidAmount, InvalidRecipient, StakeLocked, UnknownStakeholder
from revledger.ledger.fixed_point import as_uint, checked_add, checked_sub
from revledger.ledger.types import Json, RevenueSource, Stakeholder


class StakeRegistry:
    """Dynamic weight membership for one RevenueSource.

    Every mutation follows the same sequence:
      1. validate (balance, timelock, ids) without touching state
      2. settle the affected stakeholder(s) against the accumulator
      3. mutate weight and total_weight
      4. checkpoint = accumulator (settle already did this)

    `min_hold_seconds` is a business-rule guard: weight added at time t may
    not be reduced before t + min_hold_seconds.
    """

    def __init__(
        self,
        source: RevenueSource,
        *,
        min_hold_seconds: float = 0.0,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.source = source
        self.min_hold_seconds = float(min_hold_seconds)
        self._clock = clock or time.time
        self._holders: Dict[str, Stakeholder] = {}

    # ---- lookup ----

    @staticmethod
    def _key(stakeholder_id: object) -> str:
        return str(stakeholder_id or "").strip()

    def __contains__(self, stakeholder_id: object) -> bool:
        return self._key(stakeholder_id) in self._holders

    def __iter__(self) -> Iterator[Stakeholder]:
        return iter(list(self._holders.values()))

    def __len__(self) -> int:
        return len(self._holders)

    def get(self, stakeholder_id: str) -> Stakeholder:
        h = self._holders.get(self._key(stakeholder_id))
        if h is None:
            raise UnknownStakeholder("not_registered", {"stakeholder": stakeholder_id})
        return h

    def find(self, stakeholder_id: str) -> Optional[Stakeholder]:
        return self._holders.get(self._key(stakeholder_id))

    def weight_of(self, stakeholder_id: str) -> int:
        h = self._holders.get(self._key(stakeholder_id))
        return int(h.weight) if h is not None else 0

    def _ensure(self, stakeholder_id: str) -> Stakeholder:
        sid = self._key(stakeholder_id)
        if not sid:
            raise InvalidRecipient("empty_stakeholder_id")
        h = self._holders.get(sid)
        if h is None:
            # A fresh stakeholder starts at the current accumulator so it cannot
            # capture anything that accrued before it existed.
            h = Stakeholder(stakeholder_id=sid, checkpoint=int(self.source.accumulator))
            self._holders[sid] = h
        return h

    def _require_unlocked(self, h: Stakeholder) -> None:
        now = float(self._clock())
        if float(h.locked_until) > now:
            raise StakeLocked(
                "min_hold_not_elapsed",
                {"stakeholder": h.stakeholder_id, "locked_until": h.locked_until, "now": now},
            )

    def _lock(self, h: Stakeholder) -> None:
        if self.min_hold_seconds > 0:
            h.locked_until = max(float(h.locked_until), float(self._clock()) + self.min_hold_seconds)

    # ---- mutations ----

    def join(self, stakeholder_id: str, initial_weight: int) -> Stakeholder:
        w = as_uint(initial_weight, field="initial_weight")
        h = self._ensure(stakeholder_id)
        settle(self.source, h)
        if w:
            h.weight = checked_add(h.weight, w)
            self.source.total_weight = checked_add(self.source.total_weight, w)
            self._lock(h)
        return h

    def increase_weight(self, stakeholder_id: str, delta: int) -> Stakeholder:
        d = as_uint(delta, field="delta")
        if d == 0:
            raise InvalidAmount("zero_delta", {"stakeholder": stakeholder_id})
        return self.join(stakeholder_id, d)

    def decrease_weight(self, stakeholder_id: str, delta: int) -> Stakeholder:
        d = as_uint(delta, field="delta")
        if d == 0:
            raise InvalidAmount("zero_delta", {"stakeholder": stakeholder_id})
        h = self._holders.get(self._key(stakeholder_id))
        if h is None or d > int(h.weight):
            raise InsufficientBalance(
                "reduction_exceeds_weight",
                {"stakeholder": stakeholder_id, "requested": d, "weight": self.weight_of(stakeholder_id)},
            )
        self._require_unlocked(h)

        settle(self.source, h)
        h.weight = checked_sub(h.weight, d)
        self.source.total_weight = checked_sub(self.source.total_weight, d)
        return h

    def reinstate(self, stakeholder_id: str, delta: int) -> Stakeholder:
        """Undo a decrease whose follow-up step failed. Leaves the lock untouched."""
        d = as_uint(delta, field="delta")
        h = self.get(stakeholder_id)
        settle(self.source, h)
        h.weight = checked_add(h.weight, d)
        self.source.total_weight = checked_add(self.source.total_weight, d)
        return h

    def leave(self, stakeholder_id: str) -> Stakeholder:
        h = self.get(stakeholder_id)
        if int(h.weight) == 0:
            settle(self.source, h)
            return h
        return self.decrease_weight(stakeholder_id, int(h.weight))

    def set_weight(self, stakeholder_id: str, weight: int) -> Stakeholder:
        """Overwrite a weight (share tables). Ignores the timelock."""
        w = as_uint(weight, field="weight")
        h = self._ensure(stakeholder_id)
        settle(self.source, h)
        total = checked_sub(self.source.total_weight, int(h.weight))
        self.source.total_weight = checked_add(total, w)
        h.weight = w
        return h

    def transfer(self, from_id: str, to_id: str) -> Stakeholder:
        """Move weight, carried owed and lock from `from_id` to `to_id` as one package."""
        to_key = self._key(to_id)
        if not to_key:
            raise InvalidRecipient("empty_stakeholder_id")
        if self._key(from_id) == to_key:
            raise InvalidRecipient("transfer_to_self", {"stakeholder": from_id})
        src = self.get(from_id)

        dst = self._ensure(to_key)
        settle(self.source, src)
        settle(self.source, dst)

        dst.weight = checked_add(dst.weight, int(src.weight))
        dst.carried_owed = checked_add(dst.carried_owed, int(src.carried_owed))
        dst.locked_until = max(float(dst.locked_until), float(src.locked_until))

        src.weight = 0
        src.carried_owed = 0
        src.locked_until = 0.0
        return dst

    # ---- snapshots ----

    def to_dict(self) -> Json:
        return {
            "min_hold_seconds": float(self.min_hold_seconds),
            "holders": {k: v.to_dict() for k, v in sorted(self._holders.items())},
        }

    def load_dict(self, d: Json) -> None:
        holders = d.get("holders") if isinstance(d, dict) else None
        self._holders = {}
        if isinstance(holders, dict):
            for k, v in holders.items():
                if isinstance(v, dict):
                    self._holders[str(k)] = Stakeholder.from_dict(v)
        if isinstance(d, dict) and "min_hold_seconds" in d:
            self.min_hold_seconds = float(d.get("min_hold_seconds") or 0.0)


__all__ = ["StakeRegistry"]
