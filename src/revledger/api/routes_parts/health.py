# src/revledger/api/routes_parts/health.py
from __future__ import annotations

import os
import time
from typing import Any, Dict

from fastapi import APIRouter, Request

router = APIRouter()

Json = Dict[str, Any]


@router.get("/health")
def health(request: Request) -> Json:
    rt = getattr(request.app.state, "runtime", None)
    return {
        "ok": True,
        "ts_ms": int(time.time() * 1000),
        "mode": (os.environ.get("REVLEDGER_MODE") or "prod").strip().lower(),
        "runtime_attached": rt is not None,
        "managers": len(rt.managers) if rt is not None else 0,
    }
