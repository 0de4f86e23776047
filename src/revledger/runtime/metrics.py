from __future__ import annotations

import os
import threading
import time
from typing import Dict


_lock = threading.Lock()
_counters: Dict[str, int] = {}
_gauges: Dict[str, int] = {}
_started_ms = int(time.time() * 1000)


def metrics_enabled() -> bool:
    v = (os.environ.get("REVLEDGER_METRICS_ENABLED") or "").strip().lower()
    if not v:
        return False
    return v in {"1", "true", "yes", "y", "on"}


def inc_counter(name: str, value: int = 1) -> None:
    n = str(name or "").strip()
    if not n:
        return
    with _lock:
        _counters[n] = int(_counters.get(n, 0)) + int(value)


def set_gauge(name: str, value: int) -> None:
    n = str(name or "").strip()
    if not n:
        return
    with _lock:
        _gauges[n] = int(value)


def get_counter(name: str) -> int:
    with _lock:
        return int(_counters.get(str(name), 0))


def reset() -> None:
    with _lock:
        _counters.clear()
        _gauges.clear()


def snapshot() -> dict:
    with _lock:
        return {
            "ts_ms": int(time.time() * 1000),
            "started_ms": int(_started_ms),
            "uptime_ms": int(time.time() * 1000) - int(_started_ms),
            "counters": dict(_counters),
            "gauges": dict(_gauges),
        }


def format_prometheus(prefix: str = "revledger_") -> str:
    """Prometheus exposition text: integer counters and gauges only."""
    pre = str(prefix or "").strip() or "revledger_"
    snap = snapshot()
    lines: list[str] = []

    lines.append(f"{pre}uptime_ms {int(snap.get('uptime_ms') or 0)}")

    c = snap["counters"]
    g = snap["gauges"]

    for k in sorted(c.keys()):
        lines.append(f"# TYPE {pre}{k} counter")
        lines.append(f"{pre}{k} {int(c[k])}")

    for k in sorted(g.keys()):
        lines.append(f"# TYPE {pre}{k} gauge")
        lines.append(f"{pre}{k} {int(g[k])}")

    return "\n".join(lines) + "\n"
