# src/revledger/api/routes.py
from __future__ import annotations

from fastapi import APIRouter

from revledger.api.routes_parts.health import router as health_router
from revledger.api.routes_parts.managers import router as managers_router
from revledger.api.routes_parts.metrics import router as metrics_router

public_router = APIRouter()

# Versioned API surface
public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(managers_router, prefix="/v1", tags=["managers"])

# Ops
public_router.include_router(metrics_router, prefix="/v1", tags=["metrics"])
