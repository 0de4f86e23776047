# src/revledger/runtime/manager_config.py
from __future__ import annotations

"""Typed, validated manager configurations.

A config is validated once, at parse time, and then frozen: managers never
see a half-valid share table. Manager files may be JSON or YAML:

    managers:
      - id: splits-1
        kind: multi_recipient
        owner: "0xowner"
        config:
          protocol_fee: 0
          recipients:
            "0xaaa": 3000
            "0xbbb": 7000
"""

import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import yaml

from revledger.ledger.constants import MAX_PERCENT, SHARE_TOTAL_5DP, ZERO_ADDRESS
from revledger.ledger.errors import (
    InvalidAmount,
    InvalidCreatorAddress,
    InvalidProtocolFee,
    InvalidRecipient,
    InvalidShareTotal,
    LedgerError,
)
from revledger.ledger.splitter import validate_share_table

Json = Dict[str, Any]

KIND_REVENUE = "revenue"
KIND_STAKING = "staking"
KIND_OWNER_SPLIT = "owner_split"
KIND_MULTI_RECIPIENT = "multi_recipient"

MANAGER_KINDS = (KIND_REVENUE, KIND_STAKING, KIND_OWNER_SPLIT, KIND_MULTI_RECIPIENT)


def is_zero_address(v: Any) -> bool:
    s = str(v or "").strip().lower()
    return not s or s == ZERO_ADDRESS


def parse_address(v: Any, *, field: str = "address", error: type = InvalidRecipient) -> str:
    if v is None or is_zero_address(v):
        raise error("zero_address", {"field": field})
    return str(v).strip()


def _optional_address(v: Any, *, field: str) -> Optional[str]:
    if v is None or str(v).strip() == "":
        return None
    return parse_address(v, field=field)


def _int(v: Any, *, field: str, default: Optional[int] = None) -> int:
    if v is None and default is not None:
        return int(default)
    if isinstance(v, bool):
        raise InvalidAmount("not_an_integer", {"field": field})
    try:
        return int(v)
    except (TypeError, ValueError) as e:
        raise InvalidAmount("not_an_integer", {"field": field, "value": repr(v)}) from e


def _seconds(v: Any, *, field: str) -> float:
    if v is None or v == "":
        return 0.0
    if isinstance(v, bool):
        raise InvalidAmount("not_a_number", {"field": field})
    try:
        s = float(v)
    except (TypeError, ValueError) as e:
        raise InvalidAmount("not_a_number", {"field": field, "value": repr(v)}) from e
    if not math.isfinite(s):
        raise InvalidAmount("not_a_number", {"field": field, "value": repr(v)})
    if s < 0:
        raise InvalidAmount("negative", {"field": field})
    return s


def _percent(v: Any, *, field: str, error: type) -> int:
    pct = _int(v, field=field, default=0)
    if pct < 0 or pct > MAX_PERCENT:
        raise error("percent_out_of_range", {"field": field, "value": pct, "max_percent": MAX_PERCENT})
    return pct


def _protocol(raw: Mapping[str, Any]) -> Tuple[Optional[str], int]:
    fee = _percent(raw.get("protocol_fee"), field="protocol_fee", error=InvalidProtocolFee)
    recipient = _optional_address(raw.get("protocol_recipient"), field="protocol_recipient")
    if fee > 0 and recipient is None:
        raise InvalidRecipient("protocol_fee_without_recipient", {"protocol_fee": fee})
    return recipient, fee


@dataclass(frozen=True)
class RevenueManagerConfig:
    protocol_recipient: Optional[str] = None
    protocol_fee: int = 0

    def to_dict(self) -> Json:
        return {"protocol_recipient": self.protocol_recipient, "protocol_fee": int(self.protocol_fee)}


@dataclass(frozen=True)
class StakingManagerConfig:
    staking_token: str
    creator: str
    creator_share: int = 0
    protocol_recipient: Optional[str] = None
    protocol_fee: int = 0
    min_stake_seconds: float = 0.0
    staking_active: bool = True

    def to_dict(self) -> Json:
        return {
            "staking_token": self.staking_token,
            "creator": self.creator,
            "creator_share": int(self.creator_share),
            "protocol_recipient": self.protocol_recipient,
            "protocol_fee": int(self.protocol_fee),
            "min_stake_seconds": float(self.min_stake_seconds),
            "staking_active": bool(self.staking_active),
        }


@dataclass(frozen=True)
class CollectionShare:
    collection: str
    share: int
    supply: int
    first_token_id: int = 0

    def holds(self, token_id: int) -> bool:
        return self.first_token_id <= int(token_id) < self.first_token_id + self.supply

    def to_dict(self) -> Json:
        return {
            "collection": self.collection,
            "share": int(self.share),
            "supply": int(self.supply),
            "first_token_id": int(self.first_token_id),
        }


@dataclass(frozen=True)
class OwnerSplitConfig:
    collections: Tuple[CollectionShare, ...]
    protocol_recipient: Optional[str] = None
    protocol_fee: int = 0

    def collection(self, name: str) -> Optional[CollectionShare]:
        for c in self.collections:
            if c.collection == name:
                return c
        return None

    def to_dict(self) -> Json:
        return {
            "protocol_recipient": self.protocol_recipient,
            "protocol_fee": int(self.protocol_fee),
            "collections": [c.to_dict() for c in self.collections],
        }


@dataclass(frozen=True)
class MultiRecipientConfig:
    recipients: Tuple[Tuple[str, int], ...]
    protocol_recipient: Optional[str] = None
    protocol_fee: int = 0

    @property
    def share_table(self) -> Dict[str, int]:
        return {r: int(s) for r, s in self.recipients}

    def to_dict(self) -> Json:
        return {
            "protocol_recipient": self.protocol_recipient,
            "protocol_fee": int(self.protocol_fee),
            "recipients": self.share_table,
        }


ManagerConfig = Union[RevenueManagerConfig, StakingManagerConfig, OwnerSplitConfig, MultiRecipientConfig]


def parse_share_table(raw: Any, *, total: int = MAX_PERCENT) -> Tuple[Tuple[str, int], ...]:
    """Accept {recipient: share} or [{recipient, share}, ...]; must sum to `total`."""
    pairs: List[Tuple[str, int]] = []
    if isinstance(raw, Mapping):
        items = list(raw.items())
    elif isinstance(raw, list):
        items = []
        for row in raw:
            if not isinstance(row, Mapping):
                raise InvalidShareTotal("share_row_not_mapping", {"row": repr(row)})
            items.append((row.get("recipient"), row.get("share")))
    else:
        raise InvalidShareTotal("share_table_missing")

    seen = set()
    for recipient, share in items:
        r = parse_address(recipient, field="recipient")
        if r in seen:
            raise InvalidShareTotal("duplicate_recipient", {"recipient": r})
        seen.add(r)
        pairs.append((r, _int(share, field=f"share[{r}]")))

    validate_share_table(dict(pairs), total)
    return tuple(pairs)


def _parse_revenue(raw: Mapping[str, Any]) -> RevenueManagerConfig:
    recipient, fee = _protocol(raw)
    return RevenueManagerConfig(protocol_recipient=recipient, protocol_fee=fee)


def _parse_staking(raw: Mapping[str, Any]) -> StakingManagerConfig:
    recipient, fee = _protocol(raw)
    token = str(raw.get("staking_token") or "").strip()
    if not token:
        raise LedgerError("invalid_config", "staking_token_required")
    min_stake = _seconds(raw.get("min_stake_seconds"), field="min_stake_seconds")
    active = raw.get("staking_active", True)
    return StakingManagerConfig(
        staking_token=token,
        creator=parse_address(raw.get("creator"), field="creator", error=InvalidCreatorAddress),
        creator_share=_percent(raw.get("creator_share"), field="creator_share", error=InvalidShareTotal),
        protocol_recipient=recipient,
        protocol_fee=fee,
        min_stake_seconds=min_stake,
        staking_active=bool(active),
    )


def _parse_owner_split(raw: Mapping[str, Any]) -> OwnerSplitConfig:
    recipient, fee = _protocol(raw)
    rows = raw.get("collections")
    if not isinstance(rows, list) or not rows:
        raise InvalidShareTotal("collections_required")

    out: List[CollectionShare] = []
    for row in rows:
        if not isinstance(row, Mapping):
            raise InvalidShareTotal("collection_row_not_mapping", {"row": repr(row)})
        name = parse_address(row.get("collection"), field="collection")
        supply = _int(row.get("supply"), field=f"supply[{name}]")
        if supply <= 0:
            raise InvalidAmount("non_positive_supply", {"collection": name, "supply": supply})
        first = _int(row.get("first_token_id"), field=f"first_token_id[{name}]", default=0)
        if first < 0:
            raise InvalidAmount("negative", {"field": f"first_token_id[{name}]"})
        out.append(
            CollectionShare(
                collection=name,
                share=_int(row.get("share"), field=f"share[{name}]"),
                supply=supply,
                first_token_id=first,
            )
        )

    if len({c.collection for c in out}) != len(out):
        raise InvalidShareTotal("duplicate_collection")
    validate_share_table({c.collection: c.share for c in out}, SHARE_TOTAL_5DP)
    return OwnerSplitConfig(collections=tuple(out), protocol_recipient=recipient, protocol_fee=fee)


def _parse_multi_recipient(raw: Mapping[str, Any]) -> MultiRecipientConfig:
    recipient, fee = _protocol(raw)
    return MultiRecipientConfig(
        recipients=parse_share_table(raw.get("recipients")),
        protocol_recipient=recipient,
        protocol_fee=fee,
    )


_PARSERS = {
    KIND_REVENUE: _parse_revenue,
    KIND_STAKING: _parse_staking,
    KIND_OWNER_SPLIT: _parse_owner_split,
    KIND_MULTI_RECIPIENT: _parse_multi_recipient,
}

_TYPES = {
    KIND_REVENUE: RevenueManagerConfig,
    KIND_STAKING: StakingManagerConfig,
    KIND_OWNER_SPLIT: OwnerSplitConfig,
    KIND_MULTI_RECIPIENT: MultiRecipientConfig,
}


def parse_manager_config(kind: str, raw: Any) -> ManagerConfig:
    k = str(kind or "").strip().lower()
    parser = _PARSERS.get(k)
    if parser is None:
        raise LedgerError("invalid_config", "unknown_manager_kind", {"kind": kind, "known": list(MANAGER_KINDS)})
    if isinstance(raw, _TYPES[k]):
        return raw
    if not isinstance(raw, Mapping):
        raise LedgerError("invalid_config", "config_must_be_mapping", {"kind": k})
    return parser(raw)


@dataclass(frozen=True)
class ManagerSpec:
    manager_id: str
    kind: str
    owner: str
    config: ManagerConfig


def _read_mapping(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in (".yaml", ".yml"):
        return yaml.safe_load(text)
    return json.loads(text)


def load_manager_specs(path: str) -> List[ManagerSpec]:
    """Read a JSON or YAML manager file. Every entry is validated before any is returned."""
    p = Path(path)
    raw = _read_mapping(p)
    if isinstance(raw, Mapping):
        raw = raw.get("managers")
    if not isinstance(raw, list):
        raise ValueError(f"manager file must hold a list under 'managers': {path!r}")

    out: List[ManagerSpec] = []
    seen = set()
    for i, row in enumerate(raw):
        if not isinstance(row, Mapping):
            raise ValueError(f"manager entry #{i} must be a mapping")
        mid = str(row.get("id") or "").strip()
        if not mid:
            raise ValueError(f"manager entry #{i} is missing 'id'")
        if mid in seen:
            raise ValueError(f"duplicate manager id: {mid!r}")
        seen.add(mid)
        kind = str(row.get("kind") or "").strip().lower()
        out.append(
            ManagerSpec(
                manager_id=mid,
                kind=kind,
                owner=parse_address(row.get("owner"), field=f"{mid}.owner"),
                config=parse_manager_config(kind, row.get("config") or {}),
            )
        )
    return out


__all__ = [
    "KIND_REVENUE",
    "KIND_STAKING",
    "KIND_OWNER_SPLIT",
    "KIND_MULTI_RECIPIENT",
    "MANAGER_KINDS",
    "RevenueManagerConfig",
    "StakingManagerConfig",
    "CollectionShare",
    "OwnerSplitConfig",
    "MultiRecipientConfig",
    "ManagerConfig",
    "ManagerSpec",
    "is_zero_address",
    "parse_address",
    "parse_share_table",
    "parse_manager_config",
    "load_manager_specs",
]
