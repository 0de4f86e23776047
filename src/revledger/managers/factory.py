# src/revledger/managers/factory.py
from __future__ import annotations

import time
from typing import Any, Callable, Dict, Optional, Type

from revledger.ledger.errors import LedgerError
from revledger.managers.base import TreasuryManager
from revledger.managers.multi_recipient import MultiRecipientRevenueManager
from revledger.managers.owner_split import OwnerFeeSplitManager
from revledger.managers.revenue import RevenueManager
from revledger.managers.staking import StakingManager
from revledger.runtime.escrow import FeeEscrow, TokenOwnership
from revledger.runtime.payouts import PayoutSink, RetryPolicy

MANAGER_TYPES: Dict[str, Type[TreasuryManager]] = {
    RevenueManager.KIND: RevenueManager,
    StakingManager.KIND: StakingManager,
    OwnerFeeSplitManager.KIND: OwnerFeeSplitManager,
    MultiRecipientRevenueManager.KIND: MultiRecipientRevenueManager,
}


def build_manager(
    kind: str,
    manager_id: str,
    *,
    sink: PayoutSink,
    escrow: Optional[FeeEscrow] = None,
    ownership: Optional[TokenOwnership] = None,
    principal_sink: Optional[PayoutSink] = None,
    retry: Optional[RetryPolicy] = None,
    clock: Optional[Callable[[], float]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> TreasuryManager:
    """Construct an uninitialized manager (for `initialize()` or `restore()`)."""
    cls = MANAGER_TYPES.get(str(kind or "").strip().lower())
    if cls is None:
        raise LedgerError("invalid_config", "unknown_manager_kind", {"kind": kind, "known": sorted(MANAGER_TYPES)})

    kwargs: Dict[str, Any] = {"sink": sink, "escrow": escrow, "retry": retry, "clock": clock, "sleep": sleep}
    if cls is OwnerFeeSplitManager:
        kwargs["ownership"] = ownership
    if cls is StakingManager:
        kwargs["principal_sink"] = principal_sink
    return cls(manager_id, **kwargs)


def deploy_manager(kind: str, manager_id: str, *, owner: str, config: Any, **deps: Any) -> TreasuryManager:
    """Build a manager and initialize it exactly once with a validated config."""
    m = build_manager(kind, manager_id, **deps)
    m.initialize(owner, config)
    return m


__all__ = ["MANAGER_TYPES", "build_manager", "deploy_manager"]
