from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from conftest import CREATOR, OWNER, PROTOCOL
from revledger.ledger.errors import AlreadyInitialized, LedgerError
from revledger.managers.factory import build_manager, deploy_manager
from revledger.runtime.sqlite_db import SqliteDB, SqliteManagerStore


def _store(tmp_path: Path) -> SqliteManagerStore:
    return SqliteManagerStore(db=SqliteDB(path=str(tmp_path / "ledger.db")))


def _staking(deps):
    cfg = {
        "staking_token": "STK",
        "creator": CREATOR,
        "creator_share": 20_00,
        "protocol_recipient": PROTOCOL,
        "protocol_fee": 10_00,
    }
    return deploy_manager("staking", "stk-1", owner=OWNER, config=cfg, **deps)


def test_wal_mode_and_schema(tmp_path: Path) -> None:
    store = _store(tmp_path)
    with store._db.connection() as con:
        assert str(con.execute("PRAGMA journal_mode;").fetchone()[0]).lower() == "wal"
        row = con.execute("SELECT value FROM meta WHERE key='schema_version';").fetchone()
    assert int(row["value"]) == SqliteDB.SCHEMA_VERSION


def test_schema_mismatch_refuses_to_start(tmp_path: Path) -> None:
    _store(tmp_path)
    con = sqlite3.connect(str(tmp_path / "ledger.db"))
    con.execute("UPDATE meta SET value='99' WHERE key='schema_version';")
    con.commit()
    con.close()

    with pytest.raises(RuntimeError):
        _store(tmp_path)


def test_snapshot_restore_round_trip(tmp_path: Path, deps, escrow) -> None:
    store = _store(tmp_path)
    m = _staking(deps)
    m.stake("0xa", 90)
    m.stake("0xb", 270)
    escrow.allocate("stk-1", 1_000)
    m.pull_fees()
    m.claim("0xa")
    store.save(m)

    snap = store.load("stk-1")
    fresh = build_manager("staking", "stk-1", **deps)
    fresh.restore(snap)

    assert fresh.snapshot() == m.snapshot()
    assert fresh.claimable("0xb") == 540
    assert fresh.claimable(CREATOR) == 180
    assert fresh.total_claimed("0xa") == 180
    assert fresh.claim("0xb") == 540

    with pytest.raises(AlreadyInitialized):
        fresh.restore(snap)


def test_restore_checks_kind_and_id(tmp_path: Path, deps) -> None:
    m = deploy_manager("revenue", "rev-1", owner=OWNER, config={}, **deps)
    snap = m.snapshot()

    with pytest.raises(LedgerError):
        build_manager("staking", "rev-1", **deps).restore(snap)
    with pytest.raises(LedgerError):
        build_manager("revenue", "rev-2", **deps).restore(snap)


def test_list_and_delete(tmp_path: Path, deps) -> None:
    store = _store(tmp_path)
    for mid in ("b-1", "a-1"):
        store.save(deploy_manager("revenue", mid, owner=OWNER, config={}, **deps))

    assert store.list_ids() == ["a-1", "b-1"]
    assert store.delete("a-1") is True
    assert store.delete("a-1") is False
    assert store.load("a-1") is None

    with pytest.raises(ValueError):
        store.save_snapshot({"kind": "revenue"})
