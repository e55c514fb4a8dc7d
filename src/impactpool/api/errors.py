from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from impactpool.runtime.errors import PoolError

# Ledger error code -> HTTP status.
_POOL_STATUS: Dict[str, int] = {
    "invalid_amount": 400,
    "invalid_tx": 400,
    "unauthorized": 403,
    "untrusted_source": 403,
    "unknown_beneficiary": 404,
    "unknown_cycle": 404,
    "phase_closed": 409,
    "insufficient_power": 409,
    "duplicate_submission": 409,
    "not_closed": 409,
    "already_distributed": 409,
    "cycle_active": 409,
    "invariant_violation": 500,
}


@dataclass(frozen=True, slots=True)
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

    @staticmethod
    def bad_request(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(400, code, message, details or {})

    @staticmethod
    def unauthenticated(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(401, code, message, details or {})

    @staticmethod
    def not_found(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(404, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})

    @staticmethod
    def from_pool_error(err: PoolError) -> "ApiError":
        return ApiError(_POOL_STATUS.get(err.code, 400), err.code, err.reason, dict(err.details or {}))

    def to_json(self) -> Dict[str, Any]:
        return {"ok": False, "error": {"code": self.code, "message": self.message, "details": self.details}}
