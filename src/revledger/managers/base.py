# src/revledger/managers/base.py
from __future__ import annotations

"""Shared manager shell.

A manager owns one ClaimEngine and wires it to the outside world:
  - an optional FeeEscrow it pulls fees from (its realizer)
  - a PayoutSink wrapped in a bounded-retry Payer
  - an EventLog and a SourceGuard shared with the engine

Subclasses supply `_configure()` (build splitter and weights from a parsed
config), `_distribute()` (route one realized inflow) and `_claim_legs()`
(which ledger entries a caller may claim). Everything else (initialization,
ownership, protocol recipient rotation, snapshots) lives here.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from revledger.ledger.errors import AlreadyInitialized, LedgerError, NotInitialized, Unauthorized
from revledger.ledger.fixed_point import as_uint
from revledger.ledger.splitter import Splitter
from revledger.ledger.types import RecipientKind, SplitResult
from revledger.runtime import events as ev
from revledger.runtime import metrics
from revledger.runtime.claim_engine import CREDIT, ClaimEngine, Leg
from revledger.runtime.escrow import FeeEscrow
from revledger.runtime.events import EventLog
from revledger.runtime.guard import SourceGuard
from revledger.runtime.ledger_logging import log_event
from revledger.runtime.manager_config import ManagerConfig, parse_address, parse_manager_config
from revledger.runtime.payouts import Payer, PayoutSink, RetryPolicy

Json = Dict[str, Any]

log = logging.getLogger("revledger.managers")

ORIGIN_ESCROW = "escrow"
ORIGIN_PUSH = "push"


class TreasuryManager:
    KIND = ""

    def __init__(
        self,
        manager_id: str,
        *,
        sink: PayoutSink,
        escrow: Optional[FeeEscrow] = None,
        retry: Optional[RetryPolicy] = None,
        clock: Optional[Callable[[], float]] = None,
        sleep: Callable[[float], None] = time.sleep,
        unwrap_to_native: bool = True,
    ) -> None:
        self.manager_id = parse_address(manager_id, field="manager_id")
        self.escrow = escrow
        self.unwrap_to_native = bool(unwrap_to_native)
        self._clock = clock or time.time

        self.events = EventLog(self.manager_id)
        self.guard = SourceGuard(self.manager_id)
        self.payer = Payer(sink, policy=retry, sleep=sleep)
        self.engine = ClaimEngine(
            self.manager_id,
            payer=self.payer,
            events=self.events,
            guard=self.guard,
            clock=self._clock,
        )
        self.engine.bind_realizer(self.pull_fees)
        self.engine.bind_fallback(self.fallback_recipient)

        self.owner: Optional[str] = None
        self.config: Optional[ManagerConfig] = None
        self.protocol_recipient: Optional[str] = None
        self.splitter: Optional[Splitter] = None
        self.total_revenue = 0

    # ---- lifecycle ----

    @property
    def initialized(self) -> bool:
        return self.owner is not None

    def initialize(self, owner: str, config: Any) -> None:
        """One-shot setup. The config is validated in full before anything is stored."""
        o = parse_address(owner, field="owner")
        cfg = parse_manager_config(self.KIND, config)
        with self.guard.exclusive():
            if self.initialized:
                raise AlreadyInitialized("initialize_called_twice", {"manager": self.manager_id})
            self.protocol_recipient = cfg.protocol_recipient
            self._configure(cfg)
            self.config = cfg
            self.owner = o
            self.events.emit(ev.MANAGER_INITIALIZED, kind=self.KIND, owner=o, config=cfg.to_dict())

    def _configure(self, cfg: Any) -> None:
        raise NotImplementedError

    # ---- guards ----

    def _require_initialized(self) -> None:
        if not self.initialized:
            raise NotInitialized("manager_not_initialized", {"manager": self.manager_id})

    def _require_owner(self, caller: str) -> None:
        self._require_initialized()
        if caller != self.owner:
            raise Unauthorized("owner_only", {"manager": self.manager_id, "caller": caller})

    # ---- inflows ----

    def pull_fees(self) -> int:
        """Withdraw everything the escrow holds for this manager and route it."""
        self._require_initialized()
        if self.escrow is None:
            return 0
        with self.guard.exclusive():
            amount = int(self.escrow.withdraw_fees(self.manager_id, self.unwrap_to_native))
            if amount:
                self.events.emit(ev.ESCROW_WITHDRAWN, amount=amount, unwrap_to_native=self.unwrap_to_native)
                self._ingest(amount, origin=ORIGIN_ESCROW)
            return amount

    def receive_revenue(self, amount: int) -> None:
        """Direct push of revenue that already sits in the manager's custody."""
        self._require_initialized()
        amt = as_uint(amount, field="amount")
        if amt == 0:
            return
        with self.guard.exclusive():
            self._ingest(amt, origin=ORIGIN_PUSH)

    def _ingest(self, amount: int, *, origin: str) -> None:
        self.engine.deposit(amount)
        self.total_revenue += int(amount)
        routed = self._distribute(amount, origin=origin)
        metrics.inc_counter("inflow_units_total", amount)
        self.events.emit(ev.INFLOW_RECEIVED, amount=amount, origin=origin, **routed)

    def _distribute(self, amount: int, *, origin: str) -> Json:
        raise NotImplementedError

    def _credit_protocol(self, split: SplitResult) -> int:
        cut = split.cut_for(RecipientKind.PROTOCOL)
        if cut:
            self.engine.credit(self._protocol_book(), cut)
        return cut

    def _protocol_book(self) -> str:
        if self.protocol_recipient is None:
            raise LedgerError("invalid_config", "protocol_cut_without_recipient", {"manager": self.manager_id})
        return self.protocol_recipient

    def fallback_recipient(self) -> str:
        return self.protocol_recipient or str(self.owner or "")

    # ---- protocol recipient ----

    def _sync(self) -> None:
        """Bring every lazily computed cut up to date before a configuration change."""
        self.pull_fees()

    def set_protocol_recipient(self, caller: str, recipient: str) -> None:
        self._require_owner(caller)
        new = parse_address(recipient, field="protocol_recipient")
        with self.guard.exclusive():
            # Fees realized so far stay credited to the outgoing recipient.
            self._sync()
            old = self.protocol_recipient
            self.protocol_recipient = new
            self.events.emit(ev.PROTOCOL_RECIPIENT_UPDATED, old=old, new=new)

    # ---- claims ----

    def _claim_legs(self, caller: str) -> List[Leg]:
        return [(CREDIT, caller)]

    def claim(self, caller: str) -> int:
        """Pay `caller` everything currently owed to it by this manager."""
        self._require_initialized()
        with self.guard.exclusive():
            return self.engine.claim_legs(self._claim_legs(caller), pay_to=caller)

    def claimable(self, account: str) -> int:
        """Owed to `account` as of the last realized inflow (no escrow pull)."""
        return self.engine.claimable(account, book=CREDIT)

    def total_claimed(self, account: str) -> int:
        return sum(self.engine.total_claimed(sid, book=book) for book, sid in self._claim_legs(account))

    # ---- snapshots ----

    def _state_dict(self) -> Json:
        return {}

    def _load_state(self, state: Json) -> None:
        return None

    def snapshot(self) -> Json:
        with self.guard.exclusive():
            return {
                "manager_id": self.manager_id,
                "kind": self.KIND,
                "owner": self.owner,
                "protocol_recipient": self.protocol_recipient,
                "config": self.config.to_dict() if self.config is not None else None,
                "engine": self.engine.to_dict(),
                "total_revenue": int(self.total_revenue),
                "state": self._state_dict(),
            }

    def restore(self, snap: Json) -> None:
        """Load a snapshot into a freshly constructed (uninitialized) manager."""
        if str(snap.get("kind") or "") != self.KIND:
            raise LedgerError("invalid_snapshot", "kind_mismatch", {"expected": self.KIND, "got": snap.get("kind")})
        if str(snap.get("manager_id") or "") != self.manager_id:
            raise LedgerError("invalid_snapshot", "manager_id_mismatch", {"expected": self.manager_id, "got": snap.get("manager_id")})
        cfg = parse_manager_config(self.KIND, snap.get("config") or {})
        owner = parse_address(snap.get("owner"), field="owner")

        with self.guard.exclusive():
            if self.initialized:
                raise AlreadyInitialized("restore_into_initialized_manager", {"manager": self.manager_id})
            self._configure(cfg)
            self.engine.load_dict(snap.get("engine") or {})
            self._load_state(snap.get("state") or {})
            self.total_revenue = int(snap.get("total_revenue") or 0)
            self.config = cfg
            self.protocol_recipient = snap.get("protocol_recipient") or cfg.protocol_recipient
            self.owner = owner
        log_event(log, "manager_restored", manager_id=self.manager_id, kind=self.KIND)

    def describe(self) -> Json:
        with self.guard.exclusive():
            return {
                "manager_id": self.manager_id,
                "kind": self.KIND,
                "owner": self.owner,
                "initialized": self.initialized,
                "protocol_recipient": self.protocol_recipient,
                "config": self.config.to_dict() if self.config is not None else None,
                "balance": int(self.engine.balance),
                "total_revenue": int(self.total_revenue),
                "total_weight": int(self.engine.source.total_weight),
                "event_seq": int(self.events.last_seq),
            }


__all__ = ["TreasuryManager", "ORIGIN_ESCROW", "ORIGIN_PUSH"]
