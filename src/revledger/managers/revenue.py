# src/revledger/managers/revenue.py
from __future__ import annotations

"""Creator revenue manager over escrowed pools.

Each pool is owned by one creator. The escrow keeps a monotonic
`total_fees_allocated(pool_id)` counter; the creator's entitlement is the
growth of that counter since the creator's cursor, minus the protocol cut.
Fees pulled from the escrow only raise the manager's balance; attribution
happens when the counters are observed.

Escrow fees no registered pool accounts for (no pool, an unregistered pool,
or fees allocated before the pool was registered) are the growth of
`total_fees_allocated_to(manager_id)` not matched by any pool delta. That
residue is credited to the fallback recipient.

Counters are read before the escrow is drained, the per-manager counter
first, so an observed total never includes fees the manager has not
withdrawn yet and the residue is never over-counted.
"""

from typing import Dict, Iterable, List, Optional

from revledger.ledger.allocation import AllocationTracker
from revledger.ledger.errors import InvalidCreatorAddress, LedgerError, NonMonotonicAllocation, Unauthorized, UnknownPool
from revledger.ledger.splitter import Splitter
from revledger.ledger.types import RecipientKind
from revledger.managers.base import ORIGIN_PUSH, Json, TreasuryManager
from revledger.runtime import events as ev
from revledger.runtime import metrics
from revledger.runtime.claim_engine import CREDIT
from revledger.runtime.manager_config import KIND_REVENUE, RevenueManagerConfig, parse_address


class RevenueManager(TreasuryManager):
    KIND = KIND_REVENUE

    def __init__(self, manager_id: str, **kwargs) -> None:
        super().__init__(manager_id, **kwargs)
        self.pools: Dict[str, str] = {}
        self.tracker = AllocationTracker()
        self.allocated_seen = 0
        # Signed: counter growth not yet matched by a pool delta.
        self.unattributed = 0

    def _configure(self, cfg: RevenueManagerConfig) -> None:
        self.splitter = Splitter.cascade((RecipientKind.PROTOCOL, cfg.protocol_fee))

    def _distribute(self, amount: int, *, origin: str) -> Json:
        if origin == ORIGIN_PUSH:
            # Revenue pushed without a pool goes to the protocol recipient.
            recipient = self.fallback_recipient()
            self.engine.credit(recipient, amount)
            return {"unattributed": amount, "recipient": recipient}
        return {"attributed_on_observe": amount}

    # ---- pools ----

    def _require_escrow(self) -> None:
        if self.escrow is None:
            raise LedgerError("invalid_config", "escrow_required", {"manager": self.manager_id})

    def _require_pool(self, pool_id: str) -> str:
        creator = self.pools.get(str(pool_id))
        if creator is None:
            raise UnknownPool("pool_not_registered", {"pool": pool_id, "manager": self.manager_id})
        return creator

    def pools_of(self, creator: str) -> List[str]:
        return sorted(p for p, c in self.pools.items() if c == creator)

    def register_pool(self, caller: str, pool_id: str, creator: Optional[str] = None) -> None:
        """Hand a pool's fee stream to this manager; `creator` defaults to the caller."""
        self._require_initialized()
        self._require_escrow()
        pid = str(pool_id or "").strip()
        if not pid:
            raise UnknownPool("empty_pool_id")
        who = parse_address(creator or caller, field="creator", error=InvalidCreatorAddress)
        with self.guard.exclusive():
            if pid in self.pools:
                raise LedgerError("pool_exists", "pool_already_registered", {"pool": pid, "creator": self.pools[pid]})
            self.tracker.start(who, pid, self.escrow.total_fees_allocated(pid))
            self.pools[pid] = who
            self.events.emit(ev.CREATOR_UPDATED, pool=pid, old=None, new=who)

    def set_creator(self, caller: str, pool_id: str, creator: str) -> None:
        """Reassign a pool. Fees observed up to now stay with the outgoing creator."""
        self._require_initialized()
        old = self._require_pool(pool_id)
        if caller not in (old, self.owner):
            raise Unauthorized("creator_or_owner_only", {"pool": pool_id, "caller": caller})
        new = parse_address(creator, field="creator", error=InvalidCreatorAddress)
        with self.guard.exclusive():
            self._sync_all()
            seen = int(self.tracker.cursor(old, pool_id).last_seen_total)
            self.tracker.start(new, pool_id, seen)
            self.pools[pool_id] = new
            self.events.emit(ev.CREATOR_UPDATED, pool=pool_id, old=old, new=new)

    # ---- observation ----

    def _observe(self, pool_id: str, total: int) -> int:
        creator = self.pools[pool_id]
        delta = self.tracker.observe(creator, pool_id, total)
        if delta == 0:
            return 0
        split = self.splitter.split(delta)
        protocol = self._credit_protocol(split)
        self.engine.credit(creator, split.remainder)
        self.events.emit(
            ev.INFLOW_RECEIVED,
            amount=delta,
            origin="pool",
            pool=pool_id,
            protocol=protocol,
            creator=creator,
            creator_amount=split.remainder,
        )
        return delta

    def _sync_all(self) -> None:
        self._require_escrow()
        allocated = int(self.escrow.total_fees_allocated_to(self.manager_id))
        ids = sorted(self.pools)
        totals = {p: int(self.escrow.total_fees_allocated(p)) for p in ids}
        self.pull_fees()

        if allocated < int(self.allocated_seen):
            raise NonMonotonicAllocation(
                "counter_went_backwards",
                {"manager": self.manager_id, "last_seen": int(self.allocated_seen), "observed": allocated},
            )
        gap = allocated - int(self.allocated_seen)
        self.allocated_seen = allocated
        for p in ids:
            gap -= self._observe(p, totals[p])
        self.unattributed += gap
        if self.unattributed > 0:
            self._route_unattributed(self.unattributed)
            self.unattributed = 0

    def _route_unattributed(self, amount: int) -> None:
        recipient = self.fallback_recipient()
        self.engine.credit(recipient, amount)
        self.events.emit(ev.FALLBACK_ROUTED, recipient=recipient, amount=amount, origin="escrow")
        metrics.inc_counter("fallback_units_total", amount)

    def _peek_unattributed(self) -> int:
        growth = int(self.escrow.total_fees_allocated_to(self.manager_id)) - int(self.allocated_seen)
        for pool_id, creator in sorted(self.pools.items()):
            growth -= self.tracker.peek(creator, pool_id, self.escrow.total_fees_allocated(pool_id))
        return max(0, int(self.unattributed) + growth)

    def _sync(self) -> None:
        if self.escrow is None:
            self.pull_fees()
            return
        self._sync_all()

    # ---- claims ----

    def claim_pools(self, caller: str, pool_ids: Optional[Iterable[str]] = None) -> int:
        """Claim the creator share of `pool_ids` (default: every pool of the caller).

        A pool listed twice, or already claimed, contributes nothing the
        second time.
        """
        self._require_initialized()
        with self.guard.exclusive():
            ids = list(dict.fromkeys(pool_ids)) if pool_ids is not None else self.pools_of(caller)
            for p in ids:
                if self._require_pool(p) != caller:
                    raise InvalidCreatorAddress("not_pool_creator", {"pool": p, "caller": caller})
            self._sync_all()
            return self.engine.claim_legs([(CREDIT, caller)], pay_to=caller, realize=False)

    def claim(self, caller: str) -> int:
        self._require_initialized()
        with self.guard.exclusive():
            if self.escrow is not None:
                self._sync_all()
            return self.engine.claim_legs([(CREDIT, caller)], pay_to=caller, realize=False)

    def claimable(self, account: str) -> int:
        with self.guard.exclusive():
            owed = self.engine.claimable(account, book=CREDIT)
            if self.escrow is None:
                return owed
            for pool_id, creator in sorted(self.pools.items()):
                is_creator = creator == account
                if not is_creator and account != self.protocol_recipient:
                    continue
                delta = self.tracker.peek(creator, pool_id, self.escrow.total_fees_allocated(pool_id))
                if not delta:
                    continue
                split = self.splitter.split(delta)
                if is_creator:
                    owed += split.remainder
                if account == self.protocol_recipient:
                    owed += split.cut_for(RecipientKind.PROTOCOL)
            if account == self.fallback_recipient():
                owed += self._peek_unattributed()
            return owed

    # ---- snapshots ----

    def _state_dict(self) -> Json:
        return {
            "pools": dict(sorted(self.pools.items())),
            "tracker": self.tracker.to_dict(),
            "allocated_seen": int(self.allocated_seen),
            "unattributed": int(self.unattributed),
        }

    def _load_state(self, state: Json) -> None:
        self.pools = {str(k): str(v) for k, v in (state.get("pools") or {}).items()}
        self.tracker.load_dict(state.get("tracker") or {})
        self.allocated_seen = int(state.get("allocated_seen") or 0)
        self.unattributed = int(state.get("unattributed") or 0)

    def describe(self) -> Json:
        out = super().describe()
        out["pools"] = dict(sorted(self.pools.items()))
        return out


__all__ = ["RevenueManager"]
