# src/revledger/managers/multi_recipient.py
from __future__ import annotations

"""Fixed percentage split across a recipient table.

Recipients are weighted stakeholders whose weight is their percentage
(two decimals, summing to 100_00), so every inflow is a single accumulator
bump regardless of table size.
"""

from dataclasses import replace
from typing import Any, Dict, List

from revledger.ledger.splitter import Splitter
from revledger.ledger.types import RecipientKind
from revledger.managers.base import Json, TreasuryManager
from revledger.runtime import events as ev
from revledger.runtime.claim_engine import CREDIT, POOL, BatchResult, ClaimRequest, Leg
from revledger.runtime.manager_config import KIND_MULTI_RECIPIENT, MultiRecipientConfig, parse_share_table


class MultiRecipientRevenueManager(TreasuryManager):
    KIND = KIND_MULTI_RECIPIENT

    def _configure(self, cfg: MultiRecipientConfig) -> None:
        self.splitter = Splitter.cascade((RecipientKind.PROTOCOL, cfg.protocol_fee))
        for recipient, share in cfg.recipients:
            self.engine.registry.set_weight(recipient, share)

    def _distribute(self, amount: int, *, origin: str) -> Json:
        split = self.splitter.split(amount)
        protocol = self._credit_protocol(split)
        res = self.engine.receive(split.remainder)
        return {"protocol": protocol, "recipients": split.remainder - res.fallback, "fallback": res.fallback}

    def shares(self) -> Dict[str, int]:
        return {h.stakeholder_id: int(h.weight) for h in self.engine.registry if int(h.weight) > 0}

    def set_shares(self, caller: str, table: Any) -> None:
        """Replace the recipient table. Everything realized so far is shared under the old table."""
        self._require_owner(caller)
        pairs = parse_share_table(table)
        new = dict(pairs)
        with self.guard.exclusive():
            self._sync()
            old = self.shares()
            for sid in old:
                if sid not in new:
                    self.engine.registry.set_weight(sid, 0)
            for recipient, share in pairs:
                self.engine.registry.set_weight(recipient, share)
            self.config = replace(self.config, recipients=pairs)
            self.events.emit(ev.SHARE_CONFIG_CHANGED, old=old, new=new)

    # ---- claims ----

    def _claim_legs(self, caller: str) -> List[Leg]:
        return [(POOL, caller), (CREDIT, caller)]

    def claimable(self, account: str) -> int:
        return self.engine.claimable(account, book=POOL) + self.engine.claimable(account, book=CREDIT)

    def distribute(self) -> BatchResult:
        """Pay every recipient (and the protocol recipient) what it is owed.

        A recipient whose transfer fails keeps its balance and is listed in
        `failed`; the others are paid.
        """
        self._require_initialized()
        with self.guard.exclusive():
            payees = [h.stakeholder_id for h in self.engine.registry]
            payees.extend(sid for sid in sorted(self.engine.credits.entries) if sid not in payees)
            requests = [ClaimRequest(pay_to=sid, legs=tuple(self._claim_legs(sid))) for sid in payees]
            return self.engine.claim_batch(requests)


__all__ = ["MultiRecipientRevenueManager"]
