# src/revledger/api/routes_parts/common.py
from __future__ import annotations

from typing import Any

from fastapi import Request

from revledger.api.errors import ApiError
from revledger.managers.base import TreasuryManager
from revledger.runtime.boot import LedgerRuntime


def _runtime(request: Request) -> LedgerRuntime:
    rt = getattr(request.app.state, "runtime", None)
    if rt is None:
        raise ApiError.internal("not_ready", "runtime not attached to app.state", {})
    return rt


def _manager(request: Request, manager_id: str) -> TreasuryManager:
    return _runtime(request).get(manager_id)


def _safe_int(v: Any, default: int = 0) -> int:
    if v is None or isinstance(v, bool):
        return int(default)
    try:
        return int(v)
    except (TypeError, ValueError):
        return int(default)
