from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, Set

from revledger.ledger.errors import ClaimInProgress


class SourceGuard:
    """Serializes every mutation of one RevenueSource.

    The accumulator and total weight are read-then-written as a pair, so
    inflows, settlements, claims and weight changes all run under one lock.
    The lock is re-entrant so a manager operation can call into the engine;
    `claiming()` additionally refuses a second claim for an identity whose
    first claim has not finished (a payout callback re-entering the claim
    path on the same thread).

    `pause()` waits with the lock fully released, however deeply it is held,
    so a payout backoff never stalls other work on the source.
    """

    def __init__(self, name: str = "") -> None:
        self.name = str(name)
        self._lock = threading.RLock()
        self._idle = threading.Condition(self._lock)
        self._in_flight: Set[str] = set()

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        with self._lock:
            yield

    @contextmanager
    def claiming(self, identity: str) -> Iterator[None]:
        with self._lock:
            key = str(identity)
            if key in self._in_flight:
                raise ClaimInProgress("claim_already_running", {"identity": key, "source": self.name})
            self._in_flight.add(key)
            try:
                yield
            finally:
                self._in_flight.discard(key)

    def pause(self, seconds: float) -> None:
        with self._idle:
            self._idle.wait(timeout=max(0.0, float(seconds)))

    def in_flight(self, identity: str) -> bool:
        with self._lock:
            return str(identity) in self._in_flight
