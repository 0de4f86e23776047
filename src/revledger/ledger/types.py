"""revledger.ledger.types

Ledger object model: revenue sources, stakeholders and split shares.

Every class here is a plain dataclass with `to_dict()` / `from_dict()` so that
snapshots can be stored as canonical JSON and restored bit-for-bit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from revledger.ledger.constants import MAX_PERCENT

Json = Dict[str, Any]


def _coerce_int(v: Any, *, field: str) -> int:
    try:
        if isinstance(v, bool):
            raise ValueError("bool is not a valid int")
        return int(v)
    except Exception as e:
        raise ValueError(f"ledger schema error: field '{field}' must be int-coercible (got {type(v).__name__})") from e


def _coerce_float(v: Any, *, field: str) -> float:
    try:
        return float(v or 0.0)
    except Exception as e:
        raise ValueError(f"ledger schema error: field '{field}' must be float-coercible (got {type(v).__name__})") from e


class RecipientKind(Enum):
    PROTOCOL = "protocol"
    CREATOR = "creator"
    POOL = "pool"


@dataclass
class RevenueSource:
    """A scope over which fees accumulate (one manager, one pool, ...).

    `accumulator` is reward-per-unit-weight scaled by SCALE and never
    decreases. `dust` holds scaled sub-unit residue (< SCALE); whole units of
    residue live in `undistributed_remainder` until the next inflow.
    """

    source_id: str
    total_weight: int = 0
    accumulator: int = 0
    undistributed_remainder: int = 0
    dust: int = 0
    total_received: int = 0
    total_fallback: int = 0

    def to_dict(self) -> Json:
        return {
            "source_id": self.source_id,
            "total_weight": int(self.total_weight),
            "accumulator": int(self.accumulator),
            "undistributed_remainder": int(self.undistributed_remainder),
            "dust": int(self.dust),
            "total_received": int(self.total_received),
            "total_fallback": int(self.total_fallback),
        }

    @classmethod
    def from_dict(cls, d: Json) -> "RevenueSource":
        return cls(
            source_id=str(d.get("source_id") or ""),
            total_weight=_coerce_int(d.get("total_weight", 0), field="total_weight"),
            accumulator=_coerce_int(d.get("accumulator", 0), field="accumulator"),
            undistributed_remainder=_coerce_int(d.get("undistributed_remainder", 0), field="undistributed_remainder"),
            dust=_coerce_int(d.get("dust", 0), field="dust"),
            total_received=_coerce_int(d.get("total_received", 0), field="total_received"),
            total_fallback=_coerce_int(d.get("total_fallback", 0), field="total_fallback"),
        )


@dataclass
class Stakeholder:
    """A party with a claim right against one RevenueSource (or a credit book)."""

    stakeholder_id: str
    weight: int = 0
    checkpoint: int = 0
    carried_owed: int = 0
    total_claimed: int = 0
    locked_until: float = 0.0

    def to_dict(self) -> Json:
        return {
            "stakeholder_id": self.stakeholder_id,
            "weight": int(self.weight),
            "checkpoint": int(self.checkpoint),
            "carried_owed": int(self.carried_owed),
            "total_claimed": int(self.total_claimed),
            "locked_until": float(self.locked_until),
        }

    @classmethod
    def from_dict(cls, d: Json) -> "Stakeholder":
        return cls(
            stakeholder_id=str(d.get("stakeholder_id") or ""),
            weight=_coerce_int(d.get("weight", 0), field="weight"),
            checkpoint=_coerce_int(d.get("checkpoint", 0), field="checkpoint"),
            carried_owed=_coerce_int(d.get("carried_owed", 0), field="carried_owed"),
            total_claimed=_coerce_int(d.get("total_claimed", 0), field="total_claimed"),
            locked_until=_coerce_float(d.get("locked_until", 0.0), field="locked_until"),
        )


@dataclass(frozen=True)
class Share:
    kind: RecipientKind
    percentage: int
    recipient: Optional[str] = None

    def to_dict(self) -> Json:
        return {"kind": self.kind.value, "percentage": int(self.percentage), "recipient": self.recipient}


@dataclass(frozen=True)
class SplitPolicy:
    """Ordered fixed cuts; whatever is left after the last cut goes to the pool."""

    shares: Tuple[Share, ...] = ()
    max_percent: int = MAX_PERCENT

    def to_dict(self) -> Json:
        return {"shares": [s.to_dict() for s in self.shares], "max_percent": int(self.max_percent)}


@dataclass(frozen=True)
class SplitResult:
    gross: int
    cuts: Tuple[Tuple[Share, int], ...] = ()
    remainder: int = 0

    def cut_for(self, kind: RecipientKind) -> int:
        return sum(amount for share, amount in self.cuts if share.kind == kind)

    @property
    def fixed_total(self) -> int:
        return sum(amount for _, amount in self.cuts)


@dataclass(frozen=True)
class InflowResult:
    amount: int
    increment: int = 0
    fallback: int = 0

    @property
    def routed_to_fallback(self) -> bool:
        return self.fallback > 0


@dataclass
class CreditBook:
    """Direct-credit balances for fixed-cut recipients (no weight, no accumulator)."""

    entries: Dict[str, Stakeholder] = field(default_factory=dict)

    def get(self, book_id: str) -> Stakeholder:
        h = self.entries.get(book_id)
        if h is None:
            h = Stakeholder(stakeholder_id=book_id)
            self.entries[book_id] = h
        return h

    def total_owed(self) -> int:
        return sum(int(h.carried_owed) for h in self.entries.values())

    def total_claimed(self) -> int:
        return sum(int(h.total_claimed) for h in self.entries.values())

    def to_dict(self) -> Json:
        return {k: v.to_dict() for k, v in sorted(self.entries.items())}

    @classmethod
    def from_dict(cls, d: Any) -> "CreditBook":
        entries: Dict[str, Stakeholder] = {}
        if isinstance(d, dict):
            for k, v in d.items():
                if isinstance(v, dict):
                    entries[str(k)] = Stakeholder.from_dict(v)
        return cls(entries=entries)


__all__ = [
    "RecipientKind",
    "RevenueSource",
    "Stakeholder",
    "Share",
    "SplitPolicy",
    "SplitResult",
    "InflowResult",
    "CreditBook",
]
