from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

Json = Dict[str, Any]


@dataclass
class LedgerError(Exception):
    """Canonical error type for ledger, engine and manager failures."""

    code: str
    reason: str
    details: Optional[Json] = None

    def __str__(self) -> str:
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


class _CodedError(LedgerError):
    CODE = "ledger_error"

    def __init__(self, reason: str = "", details: Optional[Json] = None) -> None:
        super().__init__(self.CODE, reason or self.CODE, details)


class InvalidShareTotal(_CodedError):
    CODE = "invalid_share_total"


class InvalidProtocolFee(_CodedError):
    CODE = "invalid_protocol_fee"


class InvalidRecipient(_CodedError):
    CODE = "invalid_recipient"


class InvalidCreatorAddress(_CodedError):
    CODE = "invalid_creator_address"


class InsufficientBalance(_CodedError):
    CODE = "insufficient_balance"


class StakeLocked(_CodedError):
    CODE = "stake_locked"


class UnableToSendRevenue(_CodedError):
    CODE = "unable_to_send_revenue"


class InvalidAmount(_CodedError):
    CODE = "invalid_amount"


class ArithmeticOverflow(_CodedError):
    CODE = "arithmetic_overflow"


class UnknownStakeholder(_CodedError):
    CODE = "unknown_stakeholder"


class UnknownPool(_CodedError):
    CODE = "unknown_pool"


class NonMonotonicAllocation(_CodedError):
    CODE = "non_monotonic_allocation"


class ClaimInProgress(_CodedError):
    CODE = "claim_in_progress"


class Unauthorized(_CodedError):
    CODE = "unauthorized"


class AlreadyInitialized(_CodedError):
    CODE = "already_initialized"


class NotInitialized(_CodedError):
    CODE = "not_initialized"


class StakingNotActive(_CodedError):
    CODE = "staking_not_active"


class UnknownManager(_CodedError):
    CODE = "unknown_manager"


__all__ = [
    "LedgerError",
    "InvalidShareTotal",
    "InvalidProtocolFee",
    "InvalidRecipient",
    "InvalidCreatorAddress",
    "InsufficientBalance",
    "StakeLocked",
    "UnableToSendRevenue",
    "InvalidAmount",
    "ArithmeticOverflow",
    "UnknownStakeholder",
    "UnknownPool",
    "NonMonotonicAllocation",
    "ClaimInProgress",
    "Unauthorized",
    "AlreadyInitialized",
    "NotInitialized",
    "StakingNotActive",
    "UnknownManager",
]
