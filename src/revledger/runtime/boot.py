# src/revledger/runtime/boot.py
from __future__ import annotations

"""Process-level wiring: config -> collaborators -> managers -> store."""

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from revledger.ledger.errors import LedgerError, UnknownManager
from revledger.managers.base import TreasuryManager
from revledger.managers.factory import build_manager, deploy_manager
from revledger.runtime import metrics
from revledger.runtime.escrow import InMemoryFeeEscrow, InMemoryTokenOwnership
from revledger.runtime.ledger_config import LedgerConfig, load_ledger_config, retry_policy_from_config
from revledger.runtime.ledger_logging import log_event
from revledger.runtime.manager_config import ManagerSpec, load_manager_specs
from revledger.runtime.payouts import InMemoryBank
from revledger.runtime.sqlite_db import SqliteDB, SqliteManagerStore

log = logging.getLogger("revledger.boot")


class LedgerRuntime:
    """Directory of live managers sharing one escrow, payout sink and store."""

    def __init__(
        self,
        *,
        cfg: LedgerConfig,
        escrow: Optional[Any] = None,
        bank: Optional[Any] = None,
        ownership: Optional[Any] = None,
        store: Optional[SqliteManagerStore] = None,
        clock: Optional[Callable[[], float]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.cfg = cfg
        self.escrow = escrow if escrow is not None else InMemoryFeeEscrow()
        self.bank = bank if bank is not None else InMemoryBank()
        self.ownership = ownership if ownership is not None else InMemoryTokenOwnership()
        self.store = store
        self.retry = retry_policy_from_config(cfg)
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self.managers: Dict[str, TreasuryManager] = {}

    def _deps(self) -> Dict[str, Any]:
        return {
            "sink": self.bank,
            "escrow": self.escrow,
            "ownership": self.ownership,
            "principal_sink": self.bank,
            "retry": self.retry,
            "clock": self._clock,
            "sleep": self._sleep,
        }

    def ids(self) -> List[str]:
        with self._lock:
            return sorted(self.managers)

    def get(self, manager_id: str) -> TreasuryManager:
        with self._lock:
            m = self.managers.get(str(manager_id))
        if m is None:
            raise UnknownManager("manager_not_found", {"manager": manager_id})
        return m

    def deploy(self, spec: ManagerSpec) -> TreasuryManager:
        with self._lock:
            if spec.manager_id in self.managers:
                raise LedgerError("manager_exists", "manager_already_deployed", {"manager": spec.manager_id})
            m = deploy_manager(spec.kind, spec.manager_id, owner=spec.owner, config=spec.config, **self._deps())
            self.managers[spec.manager_id] = m
            metrics.set_gauge("managers", len(self.managers))
        log_event(log, "manager_deployed", manager_id=spec.manager_id, kind=spec.kind)
        self.persist(spec.manager_id)
        return m

    def persist(self, manager_id: Optional[str] = None) -> None:
        if self.store is None:
            return
        for mid in [manager_id] if manager_id is not None else self.ids():
            self.store.save(self.get(mid))

    def load_from_store(self) -> int:
        if self.store is None:
            return 0
        loaded = 0
        for mid in self.store.list_ids():
            snap = self.store.load(mid)
            if snap is None:
                continue
            m = build_manager(str(snap.get("kind") or ""), mid, **self._deps())
            m.restore(snap)
            with self._lock:
                self.managers[mid] = m
                metrics.set_gauge("managers", len(self.managers))
            loaded += 1
        log_event(log, "managers_restored", count=loaded)
        return loaded

    def bootstrap(self) -> None:
        """Restore stored managers, then deploy any declared manager not yet known."""
        self.load_from_store()
        if not self.cfg.managers_path:
            return
        for spec in load_manager_specs(self.cfg.managers_path):
            if spec.manager_id in self.managers:
                continue
            self.deploy(spec)


def boot_runtime(cfg: Optional[LedgerConfig] = None, **kwargs: Any) -> LedgerRuntime:
    c = cfg or load_ledger_config()
    store = SqliteManagerStore(db=SqliteDB(path=c.db_path))
    rt = LedgerRuntime(cfg=c, store=store, **kwargs)
    rt.bootstrap()
    log_event(log, "runtime_booted", mode=c.mode, managers=len(rt.managers), db_path=c.db_path)
    return rt


__all__ = ["LedgerRuntime", "boot_runtime"]
