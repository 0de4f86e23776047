from __future__ import annotations

import json
from pathlib import Path

import pytest

from revledger.ledger.constants import ZERO_ADDRESS
from revledger.ledger.errors import (
    InvalidAmount,
    InvalidCreatorAddress,
    InvalidProtocolFee,
    InvalidRecipient,
    InvalidShareTotal,
    LedgerError,
)
from revledger.runtime.manager_config import (
    MultiRecipientConfig,
    StakingManagerConfig,
    load_manager_specs,
    parse_manager_config,
    parse_share_table,
)


def test_share_table_accepts_mapping_and_rows() -> None:
    assert parse_share_table({"0xa": 40_00, "0xb": 60_00}) == (("0xa", 40_00), ("0xb", 60_00))
    rows = [{"recipient": "0xa", "share": 40_00}, {"recipient": "0xb", "share": 60_00}]
    assert parse_share_table(rows) == (("0xa", 40_00), ("0xb", 60_00))


def test_share_table_rejects_bad_tables() -> None:
    with pytest.raises(InvalidShareTotal):
        parse_share_table({"0xa": 40_00})
    with pytest.raises(InvalidShareTotal):
        parse_share_table([{"recipient": "0xa", "share": 50_00}, {"recipient": "0xa", "share": 50_00}])
    with pytest.raises(InvalidRecipient):
        parse_share_table({ZERO_ADDRESS: 100_00})
    with pytest.raises(InvalidAmount):
        parse_share_table({"0xa": "lots"})
    with pytest.raises(InvalidShareTotal):
        parse_share_table("0xa=100")


def test_protocol_fee_rules() -> None:
    with pytest.raises(InvalidProtocolFee):
        parse_manager_config("revenue", {"protocol_fee": 100_01, "protocol_recipient": "0xp"})
    with pytest.raises(InvalidRecipient):
        parse_manager_config("revenue", {"protocol_fee": 5_00})
    cfg = parse_manager_config("revenue", {"protocol_fee": 5_00, "protocol_recipient": "0xp"})
    assert cfg.to_dict() == {"protocol_recipient": "0xp", "protocol_fee": 5_00}


def test_staking_config() -> None:
    cfg = parse_manager_config("staking", {"staking_token": "STK", "creator": "0xc", "creator_share": 20_00})
    assert isinstance(cfg, StakingManagerConfig)
    assert cfg.staking_active is True
    assert parse_manager_config("staking", cfg) is cfg

    with pytest.raises(InvalidCreatorAddress):
        parse_manager_config("staking", {"staking_token": "STK", "creator": ZERO_ADDRESS})
    with pytest.raises(LedgerError):
        parse_manager_config("staking", {"creator": "0xc"})


@pytest.mark.parametrize("value", ["soon", float("nan"), True, -1])
def test_staking_min_stake_seconds_is_validated(value) -> None:
    raw = {"staking_token": "STK", "creator": "0xc", "creator_share": 20_00, "min_stake_seconds": value}
    with pytest.raises(InvalidAmount) as ei:
        parse_manager_config("staking", raw)
    assert ei.value.details["field"] == "min_stake_seconds"


def test_staking_min_stake_seconds_accepts_numeric_strings() -> None:
    raw = {"staking_token": "STK", "creator": "0xc", "creator_share": 20_00, "min_stake_seconds": "90"}
    assert parse_manager_config("staking", raw).min_stake_seconds == 90.0


def test_owner_split_config() -> None:
    raw = {
        "collections": [
            {"collection": "punks", "share": 70_00000, "supply": 100},
            {"collection": "apes", "share": 30_00000, "supply": 10, "first_token_id": 1},
        ]
    }
    cfg = parse_manager_config("owner_split", raw)
    assert cfg.collection("apes").holds(10)
    assert not cfg.collection("apes").holds(11)
    assert cfg.collection("nope") is None

    bad = {"collections": [{"collection": "punks", "share": 70_00000, "supply": 100}]}
    with pytest.raises(InvalidShareTotal):
        parse_manager_config("owner_split", bad)
    zero = {"collections": [{"collection": "punks", "share": 100_00000, "supply": 0}]}
    with pytest.raises(InvalidAmount):
        parse_manager_config("owner_split", zero)


def test_unknown_kind() -> None:
    with pytest.raises(LedgerError) as ei:
        parse_manager_config("lottery", {})
    assert ei.value.reason == "unknown_manager_kind"


def test_load_specs_from_yaml(tmp_path: Path) -> None:
    p = tmp_path / "managers.yaml"
    p.write_text(
        """
managers:
  - id: splits-1
    kind: multi_recipient
    owner: "0xowner"
    config:
      protocol_fee: 0
      recipients:
        "0xaaa": 3000
        "0xbbb": 7000
""",
        encoding="utf-8",
    )

    specs = load_manager_specs(str(p))

    assert [s.manager_id for s in specs] == ["splits-1"]
    assert isinstance(specs[0].config, MultiRecipientConfig)
    assert specs[0].config.share_table == {"0xaaa": 3000, "0xbbb": 7000}


def test_load_specs_from_json_rejects_duplicates(tmp_path: Path) -> None:
    entry = {"id": "rev-1", "kind": "revenue", "owner": "0xowner", "config": {}}
    p = tmp_path / "managers.json"
    p.write_text(json.dumps({"managers": [entry, entry]}), encoding="utf-8")

    with pytest.raises(ValueError):
        load_manager_specs(str(p))
