# src/revledger/managers/owner_split.py
from __future__ import annotations

"""Fee split across ERC721 collections, paid to whoever holds each token.

After the protocol cut, revenue grows a monotonic internal pool total.
Collection `c` is entitled to `share_c / SHARE_TOTAL_5DP` of it, split evenly
over its `supply_c` tokens, so a token's running entitlement is

    pool_total * share_c // (SHARE_TOTAL_5DP * supply_c)

Each token keeps a cursor on that running figure. Credits are keyed by the
token, not the holder: unclaimed fees move with the token when it changes
hands, and are paid to the current `owner_of` at claim time.
"""

from typing import Iterable, List, Optional, Tuple

from revledger.ledger.allocation import AllocationTracker
from revledger.ledger.constants import SHARE_TOTAL_5DP
from revledger.ledger.errors import InvalidRecipient, LedgerError, UnknownPool, UnknownStakeholder
from revledger.ledger.fixed_point import checked_add, mul_div
from revledger.ledger.splitter import Splitter
from revledger.ledger.types import RecipientKind
from revledger.managers.base import Json, TreasuryManager
from revledger.runtime.claim_engine import CREDIT, Leg
from revledger.runtime.escrow import TokenOwnership
from revledger.runtime.manager_config import KIND_OWNER_SPLIT, CollectionShare, OwnerSplitConfig

TokenRef = Tuple[str, int]

_POOL_KEY = "pool"


def token_book(collection: str, token_id: int) -> str:
    return f"{collection}#{int(token_id)}"


class OwnerFeeSplitManager(TreasuryManager):
    KIND = KIND_OWNER_SPLIT

    def __init__(self, manager_id: str, *, ownership: Optional[TokenOwnership] = None, **kwargs) -> None:
        super().__init__(manager_id, **kwargs)
        if ownership is None:
            raise LedgerError("invalid_config", "ownership_required", {"manager": self.manager_id})
        self.ownership = ownership
        self.pool_total = 0
        self.tracker = AllocationTracker()

    def _configure(self, cfg: OwnerSplitConfig) -> None:
        self.splitter = Splitter.cascade((RecipientKind.PROTOCOL, cfg.protocol_fee))

    def _distribute(self, amount: int, *, origin: str) -> Json:
        split = self.splitter.split(amount)
        protocol = self._credit_protocol(split)
        self.pool_total = checked_add(self.pool_total, split.remainder)
        return {"protocol": protocol, "holders": split.remainder, "pool_total": int(self.pool_total)}

    # ---- tokens ----

    def _require_collection(self, collection: str) -> CollectionShare:
        c = self.config.collection(str(collection)) if self.config is not None else None
        if c is None:
            raise UnknownPool("collection_not_configured", {"collection": collection, "manager": self.manager_id})
        return c

    def _require_token(self, collection: str, token_id: int) -> Tuple[CollectionShare, str]:
        c = self._require_collection(collection)
        if not c.holds(token_id):
            raise UnknownStakeholder("token_out_of_range", {"collection": collection, "token_id": int(token_id)})
        owner = self.ownership.owner_of(c.collection, int(token_id))
        if owner is None:
            raise UnknownStakeholder("token_not_minted", {"collection": collection, "token_id": int(token_id)})
        return c, str(owner)

    def entitlement(self, collection: str) -> int:
        """Running per-token entitlement of `collection` since inception."""
        c = self._require_collection(collection)
        return mul_div(int(self.pool_total), int(c.share), SHARE_TOTAL_5DP * int(c.supply))

    def _observe_token(self, c: CollectionShare, token_id: int) -> str:
        book = token_book(c.collection, token_id)
        delta = self.tracker.observe(book, _POOL_KEY, self.entitlement(c.collection))
        self.engine.credit(book, delta)
        return book

    # ---- claims ----

    def claim_tokens(self, caller: str, tokens: Iterable[TokenRef]) -> int:
        """Claim for a batch of tokens the caller currently holds.

        Every token is checked before anything is paid; a token listed
        twice is paid once.
        """
        self._require_initialized()
        with self.guard.exclusive():
            refs = list(dict.fromkeys((str(col), int(tid)) for col, tid in tokens))
            checked: List[Tuple[CollectionShare, int]] = []
            for col, tid in refs:
                c, owner = self._require_token(col, tid)
                if owner != caller:
                    raise InvalidRecipient("not_token_owner", {"collection": col, "token_id": tid, "caller": caller})
                checked.append((c, tid))
            if not checked:
                return 0

            self.pull_fees()
            legs: List[Leg] = [(CREDIT, self._observe_token(c, tid)) for c, tid in checked]
            return self.engine.claim_legs(legs, pay_to=caller, realize=False)

    def claimable_token(self, collection: str, token_id: int) -> int:
        with self.guard.exclusive():
            c, _ = self._require_token(collection, token_id)
            book = token_book(c.collection, token_id)
            pending = self.tracker.peek(book, _POOL_KEY, self.entitlement(c.collection))
            return self.engine.claimable(book, book=CREDIT) + pending

    # ---- snapshots ----

    def _state_dict(self) -> Json:
        return {"pool_total": int(self.pool_total), "tracker": self.tracker.to_dict()}

    def _load_state(self, state: Json) -> None:
        self.pool_total = int(state.get("pool_total") or 0)
        self.tracker.load_dict(state.get("tracker") or {})

    def describe(self) -> Json:
        out = super().describe()
        out["pool_total"] = int(self.pool_total)
        return out


__all__ = ["OwnerFeeSplitManager", "token_book"]
