# src/revledger/runtime/events.py
from __future__ import annotations

"""Observability events.

The event stream is the minimum signal a monitor needs to rebuild a
manager's ledger independently: every inflow, share change, stake change
and claim is recorded with exact integer amounts.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from revledger.runtime.ledger_logging import log_event

Json = Dict[str, Any]

MANAGER_INITIALIZED = "manager_initialized"
INFLOW_RECEIVED = "inflow_received"
FALLBACK_ROUTED = "fallback_routed"
SHARE_CONFIG_CHANGED = "share_config_changed"
CREATOR_UPDATED = "creator_updated"
PROTOCOL_RECIPIENT_UPDATED = "protocol_recipient_updated"
STAKE = "stake"
UNSTAKE = "unstake"
STAKE_TRANSFERRED = "stake_transferred"
CLAIM_EXECUTED = "claim_executed"
PAYOUT_FAILED = "payout_failed"
ESCROW_WITHDRAWN = "escrow_withdrawn"


@dataclass(frozen=True)
class LedgerEvent:
    seq: int
    event: str
    source_id: str
    ts_ms: int
    fields: Json = field(default_factory=dict)

    def to_dict(self) -> Json:
        return {
            "seq": int(self.seq),
            "event": self.event,
            "source_id": self.source_id,
            "ts_ms": int(self.ts_ms),
            "fields": dict(self.fields),
        }


class EventLog:
    """Append-only, in-process event log that mirrors every entry to logging."""

    def __init__(self, source_id: str, *, logger: Optional[logging.Logger] = None, max_events: int = 10_000) -> None:
        self.source_id = str(source_id)
        self._logger = logger or logging.getLogger("revledger.events")
        self._max = max(1, int(max_events))
        self._events: List[LedgerEvent] = []
        self._seq = 0
        self._lock = threading.Lock()

    def emit(self, event: str, **fields: Any) -> LedgerEvent:
        with self._lock:
            self._seq += 1
            ev = LedgerEvent(
                seq=self._seq,
                event=str(event),
                source_id=self.source_id,
                ts_ms=int(time.time() * 1000),
                fields=dict(fields),
            )
            self._events.append(ev)
            if len(self._events) > self._max:
                del self._events[: len(self._events) - self._max]
        log_event(self._logger, ev.event, source_id=self.source_id, seq=ev.seq, **fields)
        return ev

    def since(self, seq: int = 0, *, limit: int = 500) -> List[LedgerEvent]:
        with self._lock:
            out = [e for e in self._events if e.seq > int(seq)]
        return out[: max(0, int(limit))]

    def of_type(self, event: str) -> List[LedgerEvent]:
        with self._lock:
            return [e for e in self._events if e.event == event]

    @property
    def last_seq(self) -> int:
        return self._seq

    def __len__(self) -> int:
        return len(self._events)
