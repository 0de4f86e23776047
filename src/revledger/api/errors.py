# src/revledger/api/errors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from revledger.ledger import errors as le


@dataclass
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

    @staticmethod
    def bad_request(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(400, code, message, details or {})

    @staticmethod
    def forbidden(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(403, code, message, details or {})

    @staticmethod
    def not_found(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(404, code, message, details or {})

    @staticmethod
    def conflict(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(409, code, message, details or {})

    @staticmethod
    def bad_gateway(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(502, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})

    def to_body(self) -> Dict[str, Any]:
        return {"ok": False, "error": {"code": self.code, "message": self.message, "details": self.details}}


_STATUS_BY_TYPE = (
    (le.Unauthorized, 403),
    (le.UnknownManager, 404),
    (le.UnknownStakeholder, 404),
    (le.UnknownPool, 404),
    (le.ClaimInProgress, 409),
    (le.AlreadyInitialized, 409),
    (le.NotInitialized, 409),
    (le.StakingNotActive, 409),
    (le.StakeLocked, 409),
    (le.NonMonotonicAllocation, 409),
    (le.UnableToSendRevenue, 502),
)


def from_ledger_error(e: le.LedgerError) -> ApiError:
    status = 400
    for cls, code in _STATUS_BY_TYPE:
        if isinstance(e, cls):
            status = code
            break
    return ApiError(status, e.code, e.reason, dict(e.details or {}))
