from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict


Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _jsonable(v: Any) -> Any:
    # Amounts above 2**53 lose precision in most JSON consumers; emit them as strings.
    if isinstance(v, bool) or v is None:
        return v
    if isinstance(v, int) and abs(v) > (1 << 53):
        return str(v)
    if isinstance(v, dict):
        return {str(k): _jsonable(x) for k, x in v.items()}
    if isinstance(v, (list, tuple)):
        return [_jsonable(x) for x in v]
    return v


def log_event(logger: logging.Logger, event: str, **fields: Any) -> None:
    """Emit a single JSONL log event."""
    payload: Json = {"ts_ms": _now_ms(), "event": str(event)}
    payload.update({k: _jsonable(v) for k, v in fields.items()})
    try:
        logger.info(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))
    except (TypeError, ValueError):
        parts = [f"event={event}"] + [f"{k}={fields.get(k)!r}" for k in sorted(fields.keys())]
        logger.info(" ".join(parts))
