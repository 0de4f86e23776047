# src/revledger/managers/staking.py
from __future__ import annotations

"""Staking manager: protocol and creator cuts, the rest to stakers.

Stakers' weight is their staked principal. Every stake change first
realizes whatever the escrow holds, so fees earned before a change are
shared under the weights that were in force when they were earned.

With nobody staked the staker share falls back to the creator.
"""

import time
from typing import Callable, List, Optional

from revledger.ledger.constants import ASSET_STAKE
from revledger.ledger.errors import InvalidAmount, InvalidCreatorAddress, LedgerError, StakingNotActive, Unauthorized
from revledger.ledger.fixed_point import as_uint
from revledger.ledger.splitter import Splitter
from revledger.ledger.types import RecipientKind
from revledger.managers.base import Json, TreasuryManager
from revledger.runtime import events as ev
from revledger.runtime.claim_engine import CREDIT, POOL, Leg
from revledger.runtime.manager_config import KIND_STAKING, StakingManagerConfig, parse_address
from revledger.runtime.payouts import Payer, PayoutSink, RetryPolicy


class StakingManager(TreasuryManager):
    KIND = KIND_STAKING

    def __init__(
        self,
        manager_id: str,
        *,
        sink: PayoutSink,
        principal_sink: Optional[PayoutSink] = None,
        retry: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
        **kwargs,
    ) -> None:
        super().__init__(manager_id, sink=sink, retry=retry, sleep=sleep, **kwargs)
        self.principal_payer = Payer(principal_sink or sink, policy=retry, sleep=sleep)
        self.creator: Optional[str] = None
        self.staking_active = False

    def _configure(self, cfg: StakingManagerConfig) -> None:
        self.splitter = Splitter.cascade(
            (RecipientKind.PROTOCOL, cfg.protocol_fee),
            (RecipientKind.CREATOR, cfg.creator_share),
        )
        self.creator = cfg.creator
        self.staking_active = bool(cfg.staking_active)
        self.engine.registry.min_hold_seconds = float(cfg.min_stake_seconds)

    def fallback_recipient(self) -> str:
        return str(self.creator or "")

    def _distribute(self, amount: int, *, origin: str) -> Json:
        split = self.splitter.split(amount)
        protocol = self._credit_protocol(split)
        creator = split.cut_for(RecipientKind.CREATOR)
        if creator:
            self.engine.credit(self.creator, creator)
        res = self.engine.receive(split.remainder)
        return {"protocol": protocol, "creator": creator, "stakers": split.remainder - res.fallback, "fallback": res.fallback}

    # ---- guards ----

    def _require_staking_active(self) -> None:
        if not self.staking_active:
            raise StakingNotActive("staking_paused", {"manager": self.manager_id})

    # ---- stake lifecycle ----

    def staked_of(self, account: str) -> int:
        return self.engine.registry.weight_of(account)

    @property
    def total_staked(self) -> int:
        return int(self.engine.source.total_weight)

    def stake(self, caller: str, amount: int) -> None:
        """Record `amount` of staking token transferred in by `caller`."""
        self._require_initialized()
        self._require_staking_active()
        amt = as_uint(amount, field="amount")
        if amt == 0:
            raise InvalidAmount("zero_stake")
        with self.guard.exclusive():
            self.pull_fees()
            h = self.engine.registry.increase_weight(caller, amt)
            self.events.emit(
                ev.STAKE,
                account=caller,
                amount=amt,
                weight=int(h.weight),
                total_weight=self.total_staked,
                locked_until=float(h.locked_until),
            )

    def unstake(self, caller: str, amount: int) -> None:
        """Return `amount` of principal. Accrued rewards stay claimable."""
        self._require_initialized()
        amt = as_uint(amount, field="amount")
        if amt == 0:
            raise InvalidAmount("zero_unstake")
        with self.guard.exclusive():
            self.pull_fees()
            h = self.engine.registry.decrease_weight(caller, amt)
            try:
                self.principal_payer.pay(caller, amt, asset=ASSET_STAKE, sleep=self.guard.pause)
            except Exception as e:
                self.engine.registry.reinstate(caller, amt)
                reason = e.reason if isinstance(e, LedgerError) else repr(e)
                self.events.emit(ev.PAYOUT_FAILED, recipient=caller, amount=amt, asset=ASSET_STAKE, error=reason)
                raise
            self.events.emit(ev.UNSTAKE, account=caller, amount=amt, weight=int(h.weight), total_weight=self.total_staked)

    def transfer_stake(self, caller: str, recipient: str) -> None:
        """Move the caller's whole position (weight, unclaimed rewards, lock) to `recipient`."""
        self._require_initialized()
        to = parse_address(recipient, field="recipient")
        with self.guard.exclusive():
            self.pull_fees()
            src = self.engine.registry.get(caller)
            moved = int(src.weight)
            dst = self.engine.registry.transfer(caller, to)
            self.events.emit(ev.STAKE_TRANSFERRED, source=caller, recipient=to, weight=moved, recipient_weight=int(dst.weight))

    # ---- admin ----

    def set_staking_active(self, caller: str, active: bool) -> None:
        self._require_owner(caller)
        with self.guard.exclusive():
            self.staking_active = bool(active)
            self.events.emit(ev.SHARE_CONFIG_CHANGED, staking_active=self.staking_active)

    def set_creator(self, caller: str, creator: str) -> None:
        self._require_initialized()
        if caller not in (self.creator, self.owner):
            raise Unauthorized("creator_or_owner_only", {"caller": caller})
        new = parse_address(creator, field="creator", error=InvalidCreatorAddress)
        with self.guard.exclusive():
            self._sync()
            old = self.creator
            self.creator = new
            self.events.emit(ev.CREATOR_UPDATED, old=old, new=new)

    # ---- claims ----

    def _claim_legs(self, caller: str) -> List[Leg]:
        return [(POOL, caller), (CREDIT, caller)]

    def claimable(self, account: str) -> int:
        return self.engine.claimable(account, book=POOL) + self.engine.claimable(account, book=CREDIT)

    # ---- snapshots ----

    def _state_dict(self) -> Json:
        return {"creator": self.creator, "staking_active": bool(self.staking_active)}

    def _load_state(self, state: Json) -> None:
        self.creator = state.get("creator") or self.creator
        self.staking_active = bool(state.get("staking_active", self.staking_active))

    def describe(self) -> Json:
        out = super().describe()
        out.update({"creator": self.creator, "staking_active": self.staking_active, "total_staked": self.total_staked})
        return out


__all__ = ["StakingManager"]
