# src/revledger/runtime/escrow.py
from __future__ import annotations

"""Collaborator boundaries: the fee escrow and ERC721 ownership.

Managers only depend on the two Protocols. The in-memory implementations
back the test suite, the HTTP service and local simulations.
"""

import threading
from typing import Dict, Optional, Protocol, Tuple

from revledger.ledger.errors import InvalidRecipient
from revledger.ledger.fixed_point import as_uint


class FeeEscrow(Protocol):
    def withdraw_fees(self, recipient: str, unwrap_to_native: bool = True) -> int:
        """Move everything owed to `recipient` out of escrow; return the amount."""

    def total_fees_allocated(self, pool_id: str) -> int:
        """Monotonic running total of fees ever allocated for `pool_id`."""

    def total_fees_allocated_to(self, recipient: str) -> int:
        """Monotonic running total of fees ever allocated to `recipient`, any pool or none."""


class TokenOwnership(Protocol):
    def owner_of(self, collection: str, token_id: int) -> Optional[str]:
        """Current owner, or None when the token does not exist."""


class InMemoryFeeEscrow:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: Dict[str, int] = {}
        self._pool_totals: Dict[str, int] = {}
        self._recipient_totals: Dict[str, int] = {}
        self._withdrawn: Dict[str, int] = {}
        self.last_unwrap: Optional[bool] = None

    def allocate(self, recipient: str, amount: int, *, pool_id: str = "") -> None:
        """Record `amount` of fees for `recipient` (and for `pool_id`, if given)."""
        amt = as_uint(amount, field="amount")
        r = str(recipient or "").strip()
        if not r:
            raise InvalidRecipient("empty_recipient")
        with self._lock:
            self._pending[r] = int(self._pending.get(r, 0)) + amt
            self._recipient_totals[r] = int(self._recipient_totals.get(r, 0)) + amt
            if pool_id:
                self._pool_totals[pool_id] = int(self._pool_totals.get(pool_id, 0)) + amt

    def withdraw_fees(self, recipient: str, unwrap_to_native: bool = True) -> int:
        with self._lock:
            amt = int(self._pending.pop(str(recipient), 0))
            if amt:
                self._withdrawn[recipient] = int(self._withdrawn.get(recipient, 0)) + amt
            self.last_unwrap = bool(unwrap_to_native)
            return amt

    def total_fees_allocated(self, pool_id: str) -> int:
        with self._lock:
            return int(self._pool_totals.get(str(pool_id), 0))

    def total_fees_allocated_to(self, recipient: str) -> int:
        with self._lock:
            return int(self._recipient_totals.get(str(recipient), 0))

    def pending(self, recipient: str) -> int:
        with self._lock:
            return int(self._pending.get(str(recipient), 0))

    def withdrawn(self, recipient: str) -> int:
        with self._lock:
            return int(self._withdrawn.get(str(recipient), 0))


class InMemoryTokenOwnership:
    def __init__(self) -> None:
        self._owners: Dict[Tuple[str, int], str] = {}

    def mint(self, collection: str, token_id: int, owner: str) -> None:
        self._owners[(str(collection), int(token_id))] = str(owner)

    def transfer(self, collection: str, token_id: int, new_owner: str) -> None:
        key = (str(collection), int(token_id))
        if key not in self._owners:
            raise InvalidRecipient("token_not_minted", {"collection": collection, "token_id": int(token_id)})
        self._owners[key] = str(new_owner)

    def owner_of(self, collection: str, token_id: int) -> Optional[str]:
        return self._owners.get((str(collection), int(token_id)))


__all__ = ["FeeEscrow", "TokenOwnership", "InMemoryFeeEscrow", "InMemoryTokenOwnership"]
