# src/revledger/runtime/sqlite_db.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    """Canonical JSON encoding.

    Python ints are arbitrary precision and json round-trips them exactly,
    which matters for 2**128-scaled accumulators. Unknown types are an error.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    try:
        raw = str(os.environ.get(name, "")).strip()
        return int(raw) if raw else int(default)
    except ValueError:
        return int(default)


class SqliteDB:
    """SQLite file for manager snapshots.

    Connections are never shared between threads: every read or write opens
    its own. SQLite allows one writer at a time, so write_tx() retries
    `BEGIN IMMEDIATE` with bounded backoff.
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    @staticmethod
    def _sqlite_synchronous_pragma() -> str:
        """prod -> FULL, dev/testnet -> NORMAL; REVLEDGER_SQLITE_SYNCHRONOUS overrides."""
        mode = (os.environ.get("REVLEDGER_MODE") or "prod").strip().lower()
        default = "FULL" if mode == "prod" else "NORMAL"
        raw = (os.environ.get("REVLEDGER_SQLITE_SYNCHRONOUS") or default).strip().upper()
        if raw not in {"OFF", "NORMAL", "FULL", "EXTRA"}:
            raw = default
        return raw

    def ensure_parent_dir(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        self.ensure_parent_dir()
        connect_timeout_s = float(_env_int("REVLEDGER_SQLITE_CONNECT_TIMEOUT_MS", 30_000)) / 1000.0

        con = sqlite3.connect(
            self.path,
            timeout=connect_timeout_s,
            isolation_level=None,  # BEGIN/COMMIT are issued explicitly
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        row = con.execute("PRAGMA journal_mode=WAL;").fetchone()
        mode = str(row[0]).strip().lower() if row is not None else ""
        allow_non_wal = (os.environ.get("REVLEDGER_SQLITE_ALLOW_NON_WAL") or "").strip().lower() in {"1", "true"}
        if mode and mode != "wal" and not allow_non_wal:
            con.close()
            raise RuntimeError(f"sqlite journal_mode is '{mode}', expected 'wal'")

        con.execute(f"PRAGMA synchronous={self._sqlite_synchronous_pragma()};")
        con.execute("PRAGMA foreign_keys=ON;")
        con.execute("PRAGMA temp_store=MEMORY;")

        busy_ms = max(0, _env_int("REVLEDGER_SQLITE_BUSY_TIMEOUT_MS", int(connect_timeout_s * 1000)))
        con.execute(f"PRAGMA busy_timeout={busy_ms};")
        return con

    def init_schema(self) -> None:
        with self.write_tx() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS meta (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS manager_snapshots (
                  manager_id TEXT PRIMARY KEY,
                  kind TEXT NOT NULL,
                  snapshot_json TEXT NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )
            con.execute("CREATE INDEX IF NOT EXISTS idx_manager_snapshots_kind ON manager_snapshots(kind);")

            row = con.execute("SELECT value FROM meta WHERE key='schema_version' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
            else:
                try:
                    v = int(str(row["value"]))
                except ValueError:
                    v = 0
                if v != self.SCHEMA_VERSION:
                    raise RuntimeError(
                        f"sqlite schema_version mismatch: have={v} want={self.SCHEMA_VERSION}. "
                        "Refuse to start to avoid corrupting data."
                    )

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            yield con
        finally:
            con.close()

    @staticmethod
    def _is_locked_error(e: Exception) -> bool:
        msg = str(e).lower()
        return ("database is locked" in msg) or ("database is busy" in msg)

    @staticmethod
    def _backoff_s(attempt: int) -> float:
        base = max(0.001, float(_env_int("REVLEDGER_SQLITE_WRITE_BACKOFF_BASE_MS", 5)) / 1000.0)
        cap = max(base, float(_env_int("REVLEDGER_SQLITE_WRITE_BACKOFF_MAX_MS", 250)) / 1000.0)
        return min(cap, base * (2.0 ** min(attempt, 8))) * (0.5 + random.random())

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """Write transaction with bounded retry on writer-lock contention.

        BEGIN IMMEDIATE and COMMIT are retried with exponential backoff and
        jitter until REVLEDGER_SQLITE_WRITE_DEADLINE_MS, then the error is
        raised.
        """
        deadline_ts = _now_ms() + max(250, _env_int("REVLEDGER_SQLITE_WRITE_DEADLINE_MS", 30_000))

        with self.connection() as con:
            attempt = 0
            while True:
                try:
                    con.execute("BEGIN IMMEDIATE;")
                    break
                except sqlite3.OperationalError as e:
                    if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                        raise
                    time.sleep(self._backoff_s(attempt))
                    attempt += 1

            try:
                yield con
                c_attempt = 0
                while True:
                    try:
                        con.execute("COMMIT;")
                        break
                    except sqlite3.OperationalError as e:
                        if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                            raise
                        time.sleep(self._backoff_s(c_attempt))
                        c_attempt += 1
            except BaseException:
                con.execute("ROLLBACK;")
                raise


class SqliteManagerStore:
    """One canonical-JSON snapshot row per manager.

      - save(manager): overwrite the manager's snapshot atomically
      - load(manager_id): latest snapshot, or None
      - list_ids(): every stored manager id
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    def save(self, manager: Any) -> None:
        self.save_snapshot(manager.snapshot())

    def save_snapshot(self, snap: Json) -> None:
        if not isinstance(snap, dict):
            raise ValueError("snapshot must be a dict")
        mid = str(snap.get("manager_id") or "").strip()
        if not mid:
            raise ValueError("snapshot is missing manager_id")
        payload = _canon_json(snap)
        with self._db.write_tx() as con:
            con.execute(
                """
                INSERT INTO manager_snapshots(manager_id, kind, snapshot_json, updated_ts_ms)
                VALUES(?, ?, ?, ?)
                ON CONFLICT(manager_id) DO UPDATE SET
                  kind=excluded.kind,
                  snapshot_json=excluded.snapshot_json,
                  updated_ts_ms=excluded.updated_ts_ms;
                """,
                (mid, str(snap.get("kind") or ""), payload, _now_ms()),
            )

    def load(self, manager_id: str) -> Optional[Json]:
        with self._db.connection() as con:
            row = con.execute(
                "SELECT snapshot_json FROM manager_snapshots WHERE manager_id=?;",
                (str(manager_id),),
            ).fetchone()
        if row is None:
            return None
        snap = json.loads(str(row["snapshot_json"]))
        if not isinstance(snap, dict):
            raise ValueError(f"snapshot for {manager_id!r} is not a JSON object")
        return snap

    def list_ids(self) -> List[str]:
        with self._db.connection() as con:
            rows = con.execute("SELECT manager_id FROM manager_snapshots ORDER BY manager_id;").fetchall()
        return [str(r["manager_id"]) for r in rows]

    def delete(self, manager_id: str) -> bool:
        with self._db.write_tx() as con:
            cur = con.execute("DELETE FROM manager_snapshots WHERE manager_id=?;", (str(manager_id),))
            return cur.rowcount > 0


__all__ = ["SqliteDB", "SqliteManagerStore"]
