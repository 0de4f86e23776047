# src/revledger/runtime/payouts.py
from __future__ import annotations

import logging
import random
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol, Set

from revledger.ledger.constants import ASSET_NATIVE
from revledger.ledger.errors import UnableToSendRevenue
from revledger.ledger.fixed_point import as_uint
from revledger.runtime import metrics
from revledger.runtime.ledger_logging import log_event

log = logging.getLogger("revledger.payouts")


class TransferFailed(RuntimeError):
    """Raised by a PayoutSink when a value transfer did not happen."""


class PayoutSink(Protocol):
    def send(self, recipient: str, amount: int, *, asset: str = ASSET_NATIVE) -> None:
        """Transfer `amount` to `recipient`; raise to signal failure."""


class InMemoryBank:
    """PayoutSink that credits balances in memory.

    Failure injection for tests:
      - reject(recipient): every send to that recipient fails
      - fail_times(recipient, n): the next n sends fail, then succeed
      - on_send: callback run before crediting (used to simulate reentry)
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.balances: Dict[str, Dict[str, int]] = {}
        self._rejected: Set[str] = set()
        self._fail_budget: Dict[str, int] = {}
        self.sends = 0
        self.on_send: Optional[Callable[[str, int, str], None]] = None

    def reject(self, recipient: str) -> None:
        self._rejected.add(str(recipient))

    def accept(self, recipient: str) -> None:
        self._rejected.discard(str(recipient))
        self._fail_budget.pop(str(recipient), None)

    def fail_times(self, recipient: str, n: int) -> None:
        self._fail_budget[str(recipient)] = int(n)

    def balance_of(self, recipient: str, asset: str = ASSET_NATIVE) -> int:
        with self._lock:
            return int(self.balances.get(asset, {}).get(str(recipient), 0))

    def send(self, recipient: str, amount: int, *, asset: str = ASSET_NATIVE) -> None:
        r = str(recipient)
        with self._lock:
            self.sends += 1
            if r in self._rejected:
                raise TransferFailed(f"recipient rejected transfer: {r}")
            budget = int(self._fail_budget.get(r, 0))
            if budget > 0:
                self._fail_budget[r] = budget - 1
                raise TransferFailed(f"transient transfer failure: {r}")
        if self.on_send is not None:
            self.on_send(r, int(amount), asset)
        with self._lock:
            book = self.balances.setdefault(asset, {})
            book[r] = int(book.get(r, 0)) + int(amount)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_base_ms: int = 5
    backoff_max_ms: int = 250

    def delay_s(self, attempt: int) -> float:
        base = max(0.001, float(self.backoff_base_ms) / 1000.0)
        cap = max(base, float(self.backoff_max_ms) / 1000.0)
        d = min(cap, base * (2.0 ** min(attempt, 8)))
        return d * (0.5 + random.random())


class Payer:
    """Bounded-retry wrapper around a PayoutSink.

    Never retries forever: after `max_attempts` failed sends the payout is
    reported as UnableToSendRevenue and the caller rolls back its leg.
    """

    def __init__(
        self,
        sink: PayoutSink,
        *,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.sink = sink
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    def pay(
        self,
        recipient: str,
        amount: int,
        *,
        asset: str = ASSET_NATIVE,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        """Send `amount`, retrying failed sends.

        Any exception from the sink counts as a failed transfer. `sleep`
        replaces the configured backoff sleep for this call.
        """
        amt = as_uint(amount, field="amount")
        if amt == 0:
            return

        attempts = max(1, int(self.policy.max_attempts))
        pause = sleep if sleep is not None else self._sleep
        last_err: Optional[Exception] = None
        for attempt in range(attempts):
            try:
                self.sink.send(recipient, amt, asset=asset)
                return
            except Exception as e:
                last_err = e
                metrics.inc_counter("payout_attempt_failures_total")
                if attempt + 1 < attempts:
                    pause(self.policy.delay_s(attempt))

        metrics.inc_counter("payout_failures_total")
        log_event(log, "payout_gave_up", recipient=recipient, amount=amt, asset=asset, attempts=attempts, error=repr(last_err))
        raise UnableToSendRevenue(
            "transfer_failed",
            {"recipient": recipient, "amount": amt, "asset": asset, "attempts": attempts, "error": repr(last_err)},
        ) from last_err


__all__ = ["TransferFailed", "PayoutSink", "InMemoryBank", "RetryPolicy", "Payer"]
