# src/revledger/ledger/splitter.py
from __future__ import annotations

"""Cascading percentage cuts applied to gross revenue.

Each fixed cut takes `ceil_div(remaining * pct, max_percent)` of what the
previous cuts left, so single-recipient cuts round in their own favor and
the proportional pool absorbs the rounding dust. The same policy is used by
every manager.
"""

from typing import Iterable, List, Mapping, Tuple

from revledger.ledger.constants import MAX_PERCENT, ZERO_ADDRESS
from revledger.ledger.errors import InvalidProtocolFee, InvalidRecipient, InvalidShareTotal
from revledger.ledger.fixed_point import as_uint, checked_sub, mul_div_up
from revledger.ledger.types import RecipientKind, Share, SplitPolicy, SplitResult


def _as_percent(v: object) -> int:
    if isinstance(v, bool) or not isinstance(v, int):
        raise InvalidShareTotal("percentage_not_int", {"value": repr(v)})
    return int(v)


def validate_policy(policy: SplitPolicy) -> None:
    max_pct = policy.max_percent
    if isinstance(max_pct, bool) or not isinstance(max_pct, int) or max_pct <= 0:
        raise InvalidShareTotal("invalid_max_percent", {"max_percent": repr(max_pct)})

    for share in policy.shares:
        if share.kind == RecipientKind.POOL:
            raise InvalidShareTotal("pool_is_implicit_remainder", {"share": share.to_dict()})
        pct = _as_percent(share.percentage)
        if pct < 0 or pct > max_pct:
            if share.kind == RecipientKind.PROTOCOL:
                raise InvalidProtocolFee("protocol_fee_out_of_range", {"fee": pct, "max_percent": max_pct})
            raise InvalidShareTotal("share_out_of_range", {"share": share.to_dict(), "max_percent": max_pct})


def validate_share_table(table: Mapping[str, int], total: int) -> None:
    """A flat share table must name real recipients and sum to exactly `total`."""
    if not table:
        raise InvalidShareTotal("empty_share_table")
    acc = 0
    for recipient, share in table.items():
        r = str(recipient or "").strip()
        if not r or r.lower() == ZERO_ADDRESS:
            raise InvalidRecipient("zero_recipient", {"recipient": recipient})
        pct = _as_percent(share)
        if pct <= 0:
            raise InvalidShareTotal("non_positive_share", {"recipient": r, "share": pct})
        acc += pct
    if acc != int(total):
        raise InvalidShareTotal("shares_do_not_sum_to_total", {"sum": acc, "total": int(total)})


class Splitter:
    def __init__(self, policy: SplitPolicy) -> None:
        validate_policy(policy)
        self.policy = policy

    @classmethod
    def cascade(cls, *shares: Tuple[RecipientKind, int], max_percent: int = MAX_PERCENT) -> "Splitter":
        """Shorthand: Splitter.cascade((PROTOCOL, 10_00), (CREATOR, 20_00))."""
        return cls(SplitPolicy(shares=tuple(Share(kind=k, percentage=p) for k, p in shares), max_percent=max_percent))

    def split(self, gross: int) -> SplitResult:
        g = as_uint(gross, field="gross")
        remaining = g
        cuts: List[Tuple[Share, int]] = []
        for share in self.policy.shares:
            cut = mul_div_up(remaining, int(share.percentage), int(self.policy.max_percent)) if remaining else 0
            remaining = checked_sub(remaining, cut)
            cuts.append((share, cut))
        return SplitResult(gross=g, cuts=tuple(cuts), remainder=remaining)

    def deduct(self, amount: int) -> int:
        """What is left for the pool after the fixed cuts."""
        return self.split(amount).remainder

    @property
    def kinds(self) -> Iterable[RecipientKind]:
        return tuple(s.kind for s in self.policy.shares)


__all__ = ["Splitter", "validate_policy", "validate_share_table"]
