from __future__ import annotations

import json
import logging
import os
from pathlib import Path

import pytest

from revledger import env
from revledger.runtime import events as ev
from revledger.runtime.events import EventLog
from revledger.runtime.ledger_logging import log_event


def test_event_log_sequence_and_window() -> None:
    log = EventLog("src-1", max_events=3)
    for i in range(5):
        log.emit(ev.INFLOW_RECEIVED, amount=i)

    assert log.last_seq == 5
    assert len(log) == 3
    assert [e.seq for e in log.since(0)] == [3, 4, 5]
    assert [e.seq for e in log.since(3, limit=1)] == [4]
    assert log.of_type(ev.INFLOW_RECEIVED)[0].fields == {"amount": 2}


def test_large_amounts_are_logged_as_strings(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("revledger.test")
    with caplog.at_level(logging.INFO, logger="revledger.test"):
        log_event(logger, "claim_executed", amount=10**30, small=7, nested={"x": 2**60})

    payload = json.loads(caplog.records[-1].getMessage())
    assert payload["event"] == "claim_executed"
    assert payload["amount"] == str(10**30)
    assert payload["small"] == 7
    assert payload["nested"] == {"x": str(2**60)}


def test_dotenv_loads_once_without_overriding(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    p = tmp_path / ".env"
    p.write_text("REVLEDGER_TEST_A=from_file\nREVLEDGER_TEST_B=from_file\n", encoding="utf-8")
    monkeypatch.setattr(env, "_LOADED", False)
    monkeypatch.setenv("REVLEDGER_TEST_A", "from_env")
    # setenv first so the value loaded from the file is removed after the test
    monkeypatch.setenv("REVLEDGER_TEST_B", "")
    monkeypatch.delenv("REVLEDGER_TEST_B")

    assert env.load_dotenv_if_present(str(p)) is True
    assert env.load_dotenv_if_present(str(p)) is False

    assert os.environ["REVLEDGER_TEST_A"] == "from_env"
    assert os.environ["REVLEDGER_TEST_B"] == "from_file"
