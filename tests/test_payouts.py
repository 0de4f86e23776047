from __future__ import annotations

import pytest

from revledger.ledger.errors import UnableToSendRevenue
from revledger.runtime import metrics
from revledger.runtime.payouts import InMemoryBank, Payer, RetryPolicy


def _payer(bank: InMemoryBank, sleeps: list, attempts: int = 3) -> Payer:
    return Payer(bank, policy=RetryPolicy(max_attempts=attempts, backoff_base_ms=1, backoff_max_ms=4), sleep=sleeps.append)


def test_transient_failure_is_retried() -> None:
    bank = InMemoryBank()
    sleeps: list = []
    bank.fail_times("alice", 2)

    _payer(bank, sleeps).pay("alice", 10)

    assert bank.balance_of("alice") == 10
    assert bank.sends == 3
    assert len(sleeps) == 2
    assert metrics.get_counter("payout_attempt_failures_total") == 2


def test_gives_up_after_max_attempts() -> None:
    bank = InMemoryBank()
    sleeps: list = []
    bank.reject("alice")

    with pytest.raises(UnableToSendRevenue) as ei:
        _payer(bank, sleeps).pay("alice", 10)

    assert ei.value.details["attempts"] == 3
    assert bank.sends == 3
    # no sleep after the last attempt
    assert len(sleeps) == 2
    assert bank.balance_of("alice") == 0
    assert metrics.get_counter("payout_failures_total") == 1


def test_zero_amount_is_not_sent() -> None:
    bank = InMemoryBank()
    _payer(bank, []).pay("alice", 0)
    assert bank.sends == 0


def test_backoff_is_capped() -> None:
    p = RetryPolicy(max_attempts=5, backoff_base_ms=10, backoff_max_ms=40)
    for attempt in range(10):
        assert p.delay_s(attempt) <= 0.040 * 1.5
