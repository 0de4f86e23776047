from __future__ import annotations

import pytest

from conftest import CREATOR, OWNER, PROTOCOL
from revledger.ledger.errors import (
    AlreadyInitialized,
    InvalidCreatorAddress,
    NotInitialized,
    Unauthorized,
    UnableToSendRevenue,
    UnknownPool,
)
from revledger.managers.factory import build_manager, deploy_manager
from revledger.runtime import events as ev

MID = "rev-1"


def _deploy(deps, fee: int = 10_00):
    cfg = {"protocol_fee": fee, "protocol_recipient": PROTOCOL}
    return deploy_manager("revenue", MID, owner=OWNER, config=cfg, **deps)


def test_creator_claims_pool_fees_net_of_protocol(deps, escrow, bank) -> None:
    m = _deploy(deps)
    m.register_pool(CREATOR, "pool-a")
    escrow.allocate(MID, 1_000, pool_id="pool-a")

    assert m.claimable(CREATOR) == 900
    assert m.claimable(PROTOCOL) == 100

    assert m.claim_pools(CREATOR) == 900
    assert m.claim_pools(CREATOR) == 0
    assert m.claim(PROTOCOL) == 100

    assert bank.balance_of(CREATOR) == 900
    assert bank.balance_of(PROTOCOL) == 100
    assert m.engine.balance == 0
    assert escrow.last_unwrap is True


def test_fees_no_pool_accounts_for_go_to_protocol(deps, escrow, bank) -> None:
    m = _deploy(deps)
    escrow.allocate(MID, 1_000)
    escrow.allocate(MID, 400, pool_id="pool-b")
    escrow.allocate(MID, 500, pool_id="pool-c")
    m.register_pool("0xlate", "pool-c")
    escrow.allocate(MID, 100, pool_id="pool-c")

    assert m.claimable(PROTOCOL) == 1_910
    assert m.claimable("0xlate") == 90

    assert m.claim_pools("0xlate") == 90
    assert m.claim(PROTOCOL) == 1_910
    assert m.engine.balance == 0
    assert bank.balance_of(PROTOCOL) == 1_910
    assert m.events.of_type(ev.FALLBACK_ROUTED)[0].fields["amount"] == 1_900


def test_unattributed_fees_without_protocol_go_to_owner(deps, escrow) -> None:
    m = deploy_manager("revenue", MID, owner=OWNER, config={"protocol_fee": 0}, **deps)
    escrow.allocate(MID, 250)

    assert m.claim(OWNER) == 250
    assert m.engine.balance == 0


def test_claims_are_recorded_in_the_manager_log(deps, escrow) -> None:
    m = _deploy(deps)
    m.register_pool(CREATOR, "pool-a")
    escrow.allocate(MID, 1_000, pool_id="pool-a")
    m.claim_pools(CREATOR)

    executed = m.events.of_type(ev.CLAIM_EXECUTED)
    assert [(e.fields["recipient"], e.fields["amount"]) for e in executed] == [(CREATOR, 900)]


def test_pool_listed_twice_is_paid_once(deps, escrow, bank) -> None:
    m = _deploy(deps, fee=0)
    m.register_pool(CREATOR, "pool-a")
    m.register_pool(CREATOR, "pool-b")
    escrow.allocate(MID, 300, pool_id="pool-a")
    escrow.allocate(MID, 200, pool_id="pool-b")

    assert m.claim_pools(CREATOR, ["pool-a", "pool-a", "pool-b"]) == 500
    assert bank.sends == 1


def test_claim_rejects_foreign_and_unknown_pools(deps, escrow) -> None:
    m = _deploy(deps)
    m.register_pool(CREATOR, "pool-a")

    with pytest.raises(InvalidCreatorAddress):
        m.claim_pools("0xstranger", ["pool-a"])
    with pytest.raises(UnknownPool):
        m.claim_pools(CREATOR, ["pool-z"])


def test_reassigned_pool_keeps_history_with_old_creator(deps, escrow) -> None:
    m = _deploy(deps)
    m.register_pool(CREATOR, "pool-a")
    escrow.allocate(MID, 1_000, pool_id="pool-a")

    with pytest.raises(Unauthorized):
        m.set_creator("0xstranger", "pool-a", "0xnew")
    m.set_creator(CREATOR, "pool-a", "0xnew")
    escrow.allocate(MID, 100, pool_id="pool-a")

    assert m.claim(CREATOR) == 900
    assert m.claim_pools("0xnew") == 90
    assert len(m.events.of_type(ev.CREATOR_UPDATED)) == 2


def test_protocol_rotation_splits_history(deps, escrow, bank) -> None:
    m = _deploy(deps)
    m.register_pool(CREATOR, "pool-a")
    escrow.allocate(MID, 1_000, pool_id="pool-a")

    with pytest.raises(Unauthorized):
        m.set_protocol_recipient(CREATOR, "0xp2")
    m.set_protocol_recipient(OWNER, "0xp2")
    escrow.allocate(MID, 1_000, pool_id="pool-a")

    assert m.claim("0xp2") == 100
    assert m.claim(PROTOCOL) == 100
    assert m.claim(CREATOR) == 1_800


def test_pushed_revenue_goes_to_protocol_recipient(deps) -> None:
    m = _deploy(deps)
    m.receive_revenue(50)
    assert m.claim(PROTOCOL) == 50
    assert m.total_revenue == 50


def test_failed_payout_keeps_entitlement(deps, escrow, bank) -> None:
    m = _deploy(deps)
    m.register_pool(CREATOR, "pool-a")
    escrow.allocate(MID, 1_000, pool_id="pool-a")
    bank.reject(CREATOR)

    with pytest.raises(UnableToSendRevenue):
        m.claim_pools(CREATOR)

    assert m.claimable(CREATOR) == 900
    bank.accept(CREATOR)
    assert m.claim_pools(CREATOR) == 900


def test_lifecycle_guards(deps) -> None:
    m = build_manager("revenue", MID, **deps)
    with pytest.raises(NotInitialized):
        m.claim(CREATOR)

    m.initialize(OWNER, {"protocol_fee": 0})
    with pytest.raises(AlreadyInitialized):
        m.initialize(OWNER, {"protocol_fee": 0})
    assert m.describe()["initialized"] is True
