from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure local "src/" takes precedence over any globally-installed "revledger" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)

from revledger.runtime import metrics  # noqa: E402
from revledger.runtime.escrow import InMemoryFeeEscrow, InMemoryTokenOwnership  # noqa: E402
from revledger.runtime.payouts import InMemoryBank, RetryPolicy  # noqa: E402

OWNER = "0xowner"
PROTOCOL = "0xprotocol"
CREATOR = "0xcreator"


@pytest.fixture(autouse=True)
def _reset_metrics() -> None:
    metrics.reset()


@pytest.fixture
def escrow() -> InMemoryFeeEscrow:
    return InMemoryFeeEscrow()


@pytest.fixture
def bank() -> InMemoryBank:
    return InMemoryBank()


@pytest.fixture
def ownership() -> InMemoryTokenOwnership:
    return InMemoryTokenOwnership()


@pytest.fixture
def no_sleep():
    return lambda _s: None


@pytest.fixture
def deps(escrow, bank, ownership, no_sleep) -> dict:
    """Collaborators for build_manager/deploy_manager with instant retries."""
    return {
        "sink": bank,
        "escrow": escrow,
        "ownership": ownership,
        "retry": RetryPolicy(max_attempts=2, backoff_base_ms=0, backoff_max_ms=0),
        "sleep": no_sleep,
    }
