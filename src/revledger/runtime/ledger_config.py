# src/revledger/runtime/ledger_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


def _as_opt_str(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


@dataclass(frozen=True)
class LedgerConfig:
    mode: str  # "dev" | "testnet" | "prod"

    # SQLite file holding manager snapshots.
    db_path: str

    # Optional JSON/YAML file declaring the managers to deploy at boot.
    managers_path: Optional[str]

    api_host: str
    api_port: int

    payout_max_attempts: int
    payout_backoff_base_ms: int
    payout_backoff_max_ms: int

    log_level: str


_ALLOWED_MODES = {"dev", "testnet", "prod"}
_ALLOWED_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def validate_ledger_config(cfg: LedgerConfig) -> None:
    """Fail-fast validation for operator config."""

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    if not isinstance(cfg.db_path, str) or not cfg.db_path.strip():
        raise ValueError("db_path must be a non-empty string")

    if cfg.managers_path is not None and not Path(cfg.managers_path).is_file():
        raise ValueError(f"managers_path does not exist or is not a file: {cfg.managers_path!r}")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if int(cfg.payout_max_attempts) < 1 or int(cfg.payout_max_attempts) > 20:
        # Payouts must never retry unboundedly.
        raise ValueError(f"payout_max_attempts must be 1..20; got: {cfg.payout_max_attempts}")

    if int(cfg.payout_backoff_base_ms) < 0:
        raise ValueError(f"payout_backoff_base_ms must be >= 0; got: {cfg.payout_backoff_base_ms}")

    if int(cfg.payout_backoff_max_ms) < int(cfg.payout_backoff_base_ms):
        raise ValueError("payout_backoff_max_ms must be >= payout_backoff_base_ms")

    if str(cfg.log_level or "").strip().upper() not in _ALLOWED_LEVELS:
        raise ValueError(f"log_level must be one of {_ALLOWED_LEVELS}; got: {cfg.log_level!r}")


def default_ledger_config() -> LedgerConfig:
    return LedgerConfig(
        mode="prod",
        db_path="./data/revledger.db",
        managers_path=None,
        api_host="127.0.0.1",
        api_port=8080,
        payout_max_attempts=3,
        payout_backoff_base_ms=5,
        payout_backoff_max_ms=250,
        log_level="INFO",
    )


def read_ledger_config_file(path: str) -> LedgerConfig:
    p = Path(path)
    raw = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("ledger config must be a JSON object")

    d = default_ledger_config()

    managers_path = _as_opt_str(raw.get("managers_path"))
    if managers_path is not None and not Path(managers_path).is_absolute():
        # Relative manager files resolve next to the config file.
        managers_path = str((p.parent / managers_path).resolve())

    cfg = LedgerConfig(
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        db_path=_as_str(raw.get("db_path"), d.db_path),
        managers_path=managers_path,
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        payout_max_attempts=_as_int(raw.get("payout_max_attempts"), d.payout_max_attempts),
        payout_backoff_base_ms=_as_int(raw.get("payout_backoff_base_ms"), d.payout_backoff_base_ms),
        payout_backoff_max_ms=_as_int(raw.get("payout_backoff_max_ms"), d.payout_backoff_max_ms),
        log_level=_as_str(raw.get("log_level"), d.log_level).strip().upper(),
    )

    validate_ledger_config(cfg)
    return cfg


def load_ledger_config(*, config_path: Optional[str] = None) -> LedgerConfig:
    p = config_path or os.environ.get("REVLEDGER_CONFIG_PATH")
    if p:
        return read_ledger_config_file(p)

    cfg = default_ledger_config()
    validate_ledger_config(cfg)
    return cfg


def apply_ledger_config_to_env(cfg: LedgerConfig) -> None:
    validate_ledger_config(cfg)
    os.environ["REVLEDGER_MODE"] = (cfg.mode or "prod").strip().lower()
    os.environ["REVLEDGER_DB_PATH"] = cfg.db_path
    if cfg.managers_path:
        os.environ["REVLEDGER_MANAGERS_PATH"] = cfg.managers_path
    os.environ["REVLEDGER_API_HOST"] = cfg.api_host
    os.environ["REVLEDGER_API_PORT"] = str(int(cfg.api_port))
    os.environ["REVLEDGER_PAYOUT_MAX_ATTEMPTS"] = str(int(cfg.payout_max_attempts))
    os.environ["REVLEDGER_PAYOUT_BACKOFF_BASE_MS"] = str(int(cfg.payout_backoff_base_ms))
    os.environ["REVLEDGER_PAYOUT_BACKOFF_MAX_MS"] = str(int(cfg.payout_backoff_max_ms))
    os.environ["REVLEDGER_LOG_LEVEL"] = cfg.log_level


def retry_policy_from_config(cfg: LedgerConfig) -> "RetryPolicy":
    from revledger.runtime.payouts import RetryPolicy

    return RetryPolicy(
        max_attempts=int(cfg.payout_max_attempts),
        backoff_base_ms=int(cfg.payout_backoff_base_ms),
        backoff_max_ms=int(cfg.payout_backoff_max_ms),
    )
