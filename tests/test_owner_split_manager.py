from __future__ import annotations

import pytest

from conftest import OWNER, PROTOCOL
from revledger.ledger.errors import InvalidRecipient, LedgerError, UnknownPool, UnknownStakeholder
from revledger.managers.factory import build_manager, deploy_manager
from revledger.managers.owner_split import token_book

MID = "split-1"


def _deploy(deps, **extra):
    cfg = {
        "protocol_fee": 0,
        "collections": [
            {"collection": "punks", "share": 60_00000, "supply": 10},
            {"collection": "apes", "share": 40_00000, "supply": 4, "first_token_id": 1},
        ],
    }
    cfg.update(extra)
    return deploy_manager("owner_split", MID, owner=OWNER, config=cfg, **deps)


def test_token_holders_claim_their_collection_share(deps, ownership, bank) -> None:
    m = _deploy(deps)
    ownership.mint("punks", 0, "0xalice")
    ownership.mint("apes", 1, "0xbob")
    m.receive_revenue(1_000)

    assert m.entitlement("punks") == 60
    assert m.entitlement("apes") == 100
    assert m.claim_tokens("0xalice", [("punks", 0)]) == 60
    assert m.claim_tokens("0xbob", [("apes", 1), ("apes", 1)]) == 100
    assert m.claim_tokens("0xbob", [("apes", 1)]) == 0
    assert bank.balance_of("0xbob") == 100


def test_token_checks_run_before_payment(deps, ownership, bank) -> None:
    m = _deploy(deps)
    ownership.mint("punks", 0, "0xalice")
    ownership.mint("apes", 1, "0xbob")
    m.receive_revenue(1_000)

    with pytest.raises(InvalidRecipient):
        m.claim_tokens("0xalice", [("punks", 0), ("apes", 1)])
    with pytest.raises(UnknownStakeholder):
        m.claim_tokens("0xbob", [("apes", 0)])
    with pytest.raises(UnknownStakeholder):
        m.claim_tokens("0xalice", [("punks", 5)])
    with pytest.raises(UnknownPool):
        m.claim_tokens("0xalice", [("kitties", 0)])

    assert bank.sends == 0
    assert m.claimable_token("punks", 0) == 60


def test_unclaimed_fees_travel_with_the_token(deps, ownership) -> None:
    m = _deploy(deps)
    ownership.mint("punks", 3, "0xalice")
    m.receive_revenue(1_000)
    ownership.transfer("punks", 3, "0xcarol")
    m.receive_revenue(1_000)

    with pytest.raises(InvalidRecipient):
        m.claim_tokens("0xalice", [("punks", 3)])
    assert m.claim_tokens("0xcarol", [("punks", 3)]) == 120
    assert m.claimable(token_book("punks", 3)) == 0


def test_protocol_cut_before_collections(deps, ownership) -> None:
    m = _deploy(deps, protocol_fee=10_00, protocol_recipient=PROTOCOL)
    ownership.mint("apes", 2, "0xbob")
    m.receive_revenue(1_000)

    assert m.claim(PROTOCOL) == 100
    assert m.claim_tokens("0xbob", [("apes", 2)]) == 90


def test_requires_ownership_source(deps) -> None:
    d = dict(deps)
    d["ownership"] = None
    with pytest.raises(LedgerError):
        build_manager("owner_split", MID, **d)
