# src/revledger/api/app.py
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from revledger.api.errors import ApiError, from_ledger_error
from revledger.api.routes import public_router
from revledger.api.structured_logging import RequestLogMiddleware, configure_structured_logging
from revledger.ledger.errors import LedgerError
from revledger.runtime.boot import LedgerRuntime
from revledger.runtime.boot import boot_runtime as _boot_runtime
from revledger.runtime.ledger_config import apply_ledger_config_to_env, load_ledger_config
from revledger.runtime.ledger_logging import log_event

log = logging.getLogger("revledger.api")


def build_runtime() -> LedgerRuntime:
    """Boot the ledger runtime from config.

    Tests monkeypatch `revledger.api.app.build_runtime` to avoid touching disk.
    """
    cfg = load_ledger_config()
    apply_ledger_config_to_env(cfg)
    return _boot_runtime(cfg)


def _parse_cors_origins() -> List[str]:
    """Explicit allowlist from REVLEDGER_CORS_ORIGINS; "*" is refused in prod."""
    raw = os.environ.get("REVLEDGER_CORS_ORIGINS", "").strip()
    mode = os.environ.get("REVLEDGER_MODE", "prod").strip().lower()

    if not raw:
        return []

    origins = [o.strip() for o in raw.split(",") if o.strip()]
    if "*" in origins:
        if mode == "prod":
            raise RuntimeError(
                "Unsafe CORS configuration: wildcard '*' not allowed in production. "
                "Set explicit origins in REVLEDGER_CORS_ORIGINS."
            )
        return ["*"]
    return origins


def create_app(*, boot_runtime: bool = True, runtime: Optional[LedgerRuntime] = None) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load config, open the store, restore/deploy managers
      - False: no runtime unless one is passed in (unit tests)
    """
    configure_structured_logging()
    mode = os.environ.get("REVLEDGER_MODE", "prod").strip().lower()

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        yield
        rt = getattr(app.state, "runtime", None)
        if rt is not None:
            # Final flush; claims already persist as they happen.
            rt.persist()
            log_event(log, "runtime_flushed", managers=len(rt.managers))

    if mode == "prod":
        app = FastAPI(title="revledger API", docs_url=None, redoc_url=None, openapi_url=None, lifespan=_lifespan)
    else:
        app = FastAPI(title="revledger API", lifespan=_lifespan)

    if runtime is not None:
        app.state.runtime = runtime
    elif boot_runtime:
        app.state.runtime = build_runtime()
    else:
        app.state.runtime = None

    @app.exception_handler(ApiError)
    async def _api_error(request: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(LedgerError)
    async def _ledger_error(request: Request, exc: LedgerError) -> JSONResponse:
        err = from_ledger_error(exc)
        log_event(log, "ledger_error", path=str(request.url.path), status=err.status_code, code=err.code, reason=err.message)
        return JSONResponse(status_code=err.status_code, content=err.to_body())

    # --- Middleware ---
    app.add_middleware(RequestLogMiddleware)

    cors_origins = _parse_cors_origins()
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type"],
        )

    # --- Routers ---
    app.include_router(public_router)

    return app
