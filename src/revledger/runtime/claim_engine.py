# src/revledger/runtime/claim_engine.py
from __future__ import annotations

"""Generic claim engine: accumulator + checkpoints + registry + credit book.

A claim always runs in this order:
  (a) realize newly available revenue (escrow pull via the bound realizer)
  (b) settle the stakeholder against the accumulator
  (c) zero the owed counter and debit the local balance
  (d) pay out; on any failure restore (c) and re-raise

Step (c) commits before any external call, so a payout callback that
re-enters the claim path sees nothing left to pay (and is refused anyway by
the guard's in-flight check).
Retry backoff between payout attempts waits with the source lock released.

Ledger entries live in two books:
  - POOL: weighted stakeholders accruing through the accumulator
  - CREDIT: fixed-cut recipients and diff-tracked entitlements, credited
    with exact amounts
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from revledger.ledger import accumulator as acc
from revledger.ledger.constants import ASSET_NATIVE
from revledger.ledger.errors import ClaimInProgress, InsufficientBalance, InvalidAmount, InvalidRecipient, LedgerError
from revledger.ledger.fixed_point import as_uint, checked_add, checked_sub
from revledger.ledger.registry import StakeRegistry
from revledger.ledger.types import CreditBook, InflowResult, Json, RevenueSource, Stakeholder
from revledger.runtime import events as ev
from revledger.runtime import metrics
from revledger.runtime.events import EventLog
from revledger.runtime.guard import SourceGuard
from revledger.runtime.ledger_logging import log_event
from revledger.runtime.payouts import Payer

log = logging.getLogger("revledger.claims")

POOL = "pool"
CREDIT = "credit"

Leg = Tuple[str, str]


@dataclass(frozen=True)
class ClaimRequest:
    """One recipient's share of an aggregate claim: legs paid in a single transfer."""

    pay_to: str
    legs: Tuple[Leg, ...]


@dataclass
class BatchResult:
    paid: Dict[str, int] = field(default_factory=dict)
    failed: Dict[str, Json] = field(default_factory=dict)

    @property
    def total_paid(self) -> int:
        return sum(self.paid.values())

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> Json:
        return {"paid": dict(self.paid), "failed": dict(self.failed), "total_paid": self.total_paid}


class ClaimEngine:
    def __init__(
        self,
        source_id: str,
        *,
        payer: Payer,
        events: Optional[EventLog] = None,
        guard: Optional[SourceGuard] = None,
        min_hold_seconds: float = 0.0,
        clock: Optional[Callable[[], float]] = None,
        asset: str = ASSET_NATIVE,
    ) -> None:
        self.source = RevenueSource(source_id=str(source_id))
        self.registry = StakeRegistry(self.source, min_hold_seconds=min_hold_seconds, clock=clock or time.time)
        self.credits = CreditBook()
        self.balance = 0
        self.asset = asset
        self.payer = payer
        self.events = events if events is not None else EventLog(source_id)
        self.guard = guard if guard is not None else SourceGuard(source_id)
        self._realizer: Optional[Callable[[], int]] = None
        self._fallback: Optional[Callable[[], str]] = None

    # ---- wiring ----

    def bind_realizer(self, fn: Callable[[], int]) -> None:
        self._realizer = fn

    def bind_fallback(self, fn: Callable[[], str]) -> None:
        self._fallback = fn

    def realize(self) -> int:
        if self._realizer is None:
            return 0
        return int(self._realizer() or 0)

    # ---- funds in ----

    def deposit(self, amount: int) -> None:
        """Record funds that physically arrived in the manager's custody."""
        amt = as_uint(amount, field="amount")
        with self.guard.exclusive():
            self.balance = checked_add(self.balance, amt)

    def receive(self, amount: int) -> InflowResult:
        """Fold a pool share into the accumulator (or the fallback when nobody holds weight)."""
        with self.guard.exclusive():
            res = acc.on_inflow(self.source, amount)
            if res.fallback:
                recipient = self._fallback_recipient()
                self.credit(recipient, res.fallback)
                self.events.emit(ev.FALLBACK_ROUTED, recipient=recipient, amount=res.fallback)
                metrics.inc_counter("fallback_units_total", res.fallback)
            return res

    def credit(self, book_id: str, amount: int) -> None:
        amt = as_uint(amount, field="amount")
        if amt == 0:
            return
        key = str(book_id or "").strip()
        if not key:
            raise InvalidRecipient("empty_credit_book")
        with self.guard.exclusive():
            h = self.credits.get(key)
            h.carried_owed = checked_add(h.carried_owed, amt)

    def _fallback_recipient(self) -> str:
        if self._fallback is None:
            raise LedgerError("no_fallback", "zero_weight_without_fallback", {"source": self.source.source_id})
        r = str(self._fallback() or "").strip()
        if not r:
            raise InvalidRecipient("empty_fallback_recipient", {"source": self.source.source_id})
        return r

    # ---- views ----

    def _holder(self, book: str, sid: str) -> Optional[Stakeholder]:
        if book == POOL:
            return self.registry.find(sid)
        if book == CREDIT:
            return self.credits.entries.get(str(sid or "").strip())
        raise InvalidAmount("unknown_book", {"book": book})

    def claimable(self, sid: str, *, book: str = POOL) -> int:
        with self.guard.exclusive():
            h = self._holder(book, sid)
            if h is None:
                return 0
            if book == POOL:
                return acc.claimable(self.source, h)
            return int(h.carried_owed)

    def total_claimed(self, sid: str, *, book: str = POOL) -> int:
        h = self._holder(book, sid)
        return int(h.total_claimed) if h is not None else 0

    def settle(self, sid: str) -> int:
        with self.guard.exclusive():
            return acc.settle(self.source, self.registry.get(sid))

    def audit(self) -> Json:
        """Full ledger breakdown. O(stakeholders); for monitoring and tests only."""
        with self.guard.exclusive():
            holders = list(self.registry)
            pool_claimed = sum(int(h.total_claimed) for h in holders)
            pool_owed = sum(int(h.carried_owed) for h in holders)
            pool_pending = sum(acc.pending(self.source, h) for h in holders)
            return {
                "source_id": self.source.source_id,
                "balance": int(self.balance),
                "total_received": int(self.source.total_received),
                "total_fallback": int(self.source.total_fallback),
                "undistributed_remainder": int(self.source.undistributed_remainder),
                "dust": int(self.source.dust),
                "total_weight": int(self.source.total_weight),
                "pool_claimed": pool_claimed,
                "pool_owed": pool_owed,
                "pool_pending": pool_pending,
                "credit_claimed": self.credits.total_claimed(),
                "credit_owed": self.credits.total_owed(),
            }

    # ---- claims ----

    def claim(self, sid: str, *, pay_to: Optional[str] = None, realize: bool = True) -> int:
        return self.claim_legs([(POOL, sid)], pay_to=pay_to or sid, realize=realize)

    def claim_credit(self, book_id: str, *, pay_to: Optional[str] = None, realize: bool = True) -> int:
        return self.claim_legs([(CREDIT, book_id)], pay_to=pay_to or book_id, realize=realize)

    def claim_legs(self, legs: Sequence[Leg], *, pay_to: str, realize: bool = True) -> int:
        """Settle several entries and pay their sum to `pay_to` in one transfer.

        All-or-nothing: if the transfer fails every leg is restored. A leg
        listed twice is only paid once. Nothing owed returns 0 without error.
        """
        recipient = str(pay_to or "").strip()
        if not recipient:
            raise InvalidRecipient("empty_pay_to")

        with self.guard.claiming(recipient):
            if realize:
                self.realize()

            collected: List[Tuple[str, Stakeholder, int]] = []
            seen = set()
            for book, sid in legs:
                key = (book, sid)
                if key in seen:
                    continue
                seen.add(key)
                h = self._holder(book, sid)
                if h is None:
                    continue
                if book == POOL:
                    acc.settle(self.source, h)
                owed = acc.take_owed(h)
                if owed:
                    collected.append((book, h, owed))

            total = sum(o for _, _, o in collected)
            if total == 0:
                return 0

            if total > int(self.balance):
                for _, h, owed in collected:
                    acc.restore_owed(h, owed)
                raise InsufficientBalance(
                    "manager_balance_short",
                    {"owed": total, "balance": int(self.balance), "source": self.source.source_id},
                )
            self.balance = checked_sub(self.balance, total)

            try:
                self.payer.pay(recipient, total, asset=self.asset, sleep=self.guard.pause)
            except Exception as e:
                self.balance = checked_add(self.balance, total)
                for _, h, owed in collected:
                    acc.restore_owed(h, owed)
                reason = e.reason if isinstance(e, LedgerError) else repr(e)
                self.events.emit(ev.PAYOUT_FAILED, recipient=recipient, amount=total, error=reason)
                raise

            for book, h, owed in collected:
                acc.record_claimed(h, owed)
                self.events.emit(
                    ev.CLAIM_EXECUTED,
                    book=book,
                    stakeholder=h.stakeholder_id,
                    recipient=recipient,
                    amount=owed,
                    total_claimed=int(h.total_claimed),
                )
            metrics.inc_counter("claims_total")
            metrics.inc_counter("claimed_units_total", total)
            return total

    def claim_batch(self, requests: Sequence[ClaimRequest], *, realize: bool = True) -> BatchResult:
        """Aggregate claim across independent recipients.

        Errors that can be known up front (an empty or busy recipient, or a
        balance that cannot cover every leg) abort the batch before anyone is
        paid. After that, recipients are independent: one whose claim fails
        keeps its owed balance and is reported in `failed`; everyone else is
        paid.
        """
        out = BatchResult()
        with self.guard.exclusive():
            if realize:
                self.realize()
            self._check_batch(requests)
            for req in requests:
                try:
                    amount = self.claim_legs(req.legs, pay_to=req.pay_to, realize=False)
                except LedgerError as e:
                    out.failed[req.pay_to] = {"code": e.code, "reason": e.reason, "details": e.details or {}}
                    log_event(log, "batch_leg_failed", source_id=self.source.source_id, recipient=req.pay_to)
                    continue
                if amount:
                    out.paid[req.pay_to] = out.paid.get(req.pay_to, 0) + amount
        return out

    def _check_batch(self, requests: Sequence[ClaimRequest]) -> None:
        owed = 0
        seen = set()
        for req in requests:
            recipient = str(req.pay_to or "").strip()
            if not recipient:
                raise InvalidRecipient("empty_pay_to")
            if self.guard.in_flight(recipient):
                raise ClaimInProgress("claim_already_running", {"identity": recipient, "source": self.source.source_id})
            for book, sid in req.legs:
                if (book, sid) in seen:
                    continue
                seen.add((book, sid))
                h = self._holder(book, sid)
                if h is None:
                    continue
                owed += acc.claimable(self.source, h) if book == POOL else int(h.carried_owed)
        if owed > int(self.balance):
            raise InsufficientBalance(
                "manager_balance_short",
                {"owed": owed, "balance": int(self.balance), "source": self.source.source_id},
            )

    # ---- snapshots ----

    def to_dict(self) -> Json:
        with self.guard.exclusive():
            return {
                "source": self.source.to_dict(),
                "registry": self.registry.to_dict(),
                "credits": self.credits.to_dict(),
                "balance": int(self.balance),
                "asset": self.asset,
            }

    def load_dict(self, d: Json) -> None:
        with self.guard.exclusive():
            src = RevenueSource.from_dict(d.get("source") or {})
            # The registry holds a reference to the source; update in place.
            for k, v in src.to_dict().items():
                setattr(self.source, k, v)
            self.registry.load_dict(d.get("registry") or {})
            self.credits = CreditBook.from_dict(d.get("credits") or {})
            self.balance = int(d.get("balance") or 0)
            self.asset = str(d.get("asset") or self.asset)


__all__ = ["ClaimEngine", "ClaimRequest", "BatchResult", "POOL", "CREDIT"]
