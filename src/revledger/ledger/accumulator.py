# src/revledger/ledger/accumulator.py
from __future__ import annotations

"""Reward-per-weight accumulator and stakeholder checkpoints.

O(1) per operation: an inflow bumps a single scaled accumulator, and each
stakeholder settles lazily by diffing the accumulator against its own
checkpoint.

Value conservation is exact. Scaled residue from inflows and settlements is
pooled in `source.dust`; whenever it reaches a whole unit it is promoted to
`source.undistributed_remainder`, which rides along with the next inflow.
With every stakeholder settled:

    sum(total_claimed) + sum(carried_owed) + undistributed_remainder
        + total_fallback == total_received
"""

from revledger.ledger.constants import SCALE, UINT256_MAX
from revledger.ledger.errors import ArithmeticOverflow, LedgerError
from revledger.ledger.fixed_point import as_uint, checked_add, mul_div_mod
from revledger.ledger.types import InflowResult, RevenueSource, Stakeholder


def _absorb_dust(source: RevenueSource, scaled: int) -> None:
    if scaled <= 0:
        return
    d = int(source.dust) + int(scaled)
    if d >= SCALE:
        whole, d = divmod(d, SCALE)
        source.undistributed_remainder = checked_add(source.undistributed_remainder, whole)
    source.dust = d


def on_inflow(source: RevenueSource, amount: int) -> InflowResult:
    """Distribute `amount` across the source's current total weight.

    With no weight registered the amount (plus any carried remainder) is
    reported as `fallback`; the caller routes it to its fallback recipient.
    """
    amount = as_uint(amount, field="amount")
    if amount == 0:
        return InflowResult(amount=0)

    source.total_received = checked_add(source.total_received, amount)
    gross = checked_add(amount, source.undistributed_remainder)
    source.undistributed_remainder = 0

    if int(source.total_weight) == 0:
        source.total_fallback = checked_add(source.total_fallback, gross)
        return InflowResult(amount=amount, fallback=gross)

    carry = int(source.dust)
    source.dust = 0
    increment, leftover = mul_div_mod(gross, SCALE, int(source.total_weight), carry)

    acc = int(source.accumulator) + increment
    if acc > UINT256_MAX:
        raise ArithmeticOverflow("accumulator_overflow", {"source_id": source.source_id})
    source.accumulator = acc
    _absorb_dust(source, leftover)

    return InflowResult(amount=amount, increment=increment)


def pending(source: RevenueSource, holder: Stakeholder) -> int:
    delta = int(source.accumulator) - int(holder.checkpoint)
    if delta < 0:
        raise LedgerError("invariant_violation", "checkpoint_ahead_of_accumulator", {"stakeholder": holder.stakeholder_id})
    if delta == 0 or int(holder.weight) == 0:
        return 0
    owed, _ = mul_div_mod(int(holder.weight), delta, SCALE)
    return owed


def claimable(source: RevenueSource, holder: Stakeholder) -> int:
    return int(holder.carried_owed) + pending(source, holder)


def settle(source: RevenueSource, holder: Stakeholder) -> int:
    """Fold accrued reward into `carried_owed` and move the checkpoint.

    Returns the carried balance (informational; it is not reset here).
    """
    acc = int(source.accumulator)
    delta = acc - int(holder.checkpoint)
    if delta < 0:
        raise LedgerError("invariant_violation", "checkpoint_ahead_of_accumulator", {"stakeholder": holder.stakeholder_id})

    if delta and int(holder.weight):
        owed, frac = mul_div_mod(int(holder.weight), delta, SCALE)
        holder.carried_owed = checked_add(holder.carried_owed, owed)
        _absorb_dust(source, frac)

    holder.checkpoint = acc
    return int(holder.carried_owed)


def take_owed(holder: Stakeholder) -> int:
    """Zero the carried balance and return what it held."""
    owed = int(holder.carried_owed)
    holder.carried_owed = 0
    return owed


def restore_owed(holder: Stakeholder, amount: int) -> None:
    holder.carried_owed = checked_add(holder.carried_owed, amount)


def record_claimed(holder: Stakeholder, amount: int) -> None:
    holder.total_claimed = checked_add(holder.total_claimed, amount)


__all__ = [
    "on_inflow",
    "pending",
    "claimable",
    "settle",
    "take_owed",
    "restore_owed",
    "record_claimed",
]
