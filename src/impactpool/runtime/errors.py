from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class PoolError(Exception):
    """Canonical error type for ledger operations.

    Every rejected operation raises a subclass; the ledger is left unchanged.
    """

    code: str
    reason: str
    details: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


class _Kind(PoolError):
    CODE = "pool_error"

    def __init__(self, reason: str = "", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(self.CODE, reason or self.CODE, details)


class PhaseClosed(_Kind):
    CODE = "phase_closed"


class InvalidAmount(_Kind):
    CODE = "invalid_amount"


class InsufficientPower(_Kind):
    CODE = "insufficient_power"


class UnknownBeneficiary(_Kind):
    CODE = "unknown_beneficiary"


class UntrustedSource(_Kind):
    CODE = "untrusted_source"


class DuplicateSubmission(_Kind):
    CODE = "duplicate_submission"


class NotClosed(_Kind):
    CODE = "not_closed"


class AlreadyDistributed(_Kind):
    CODE = "already_distributed"


class UnknownCycle(_Kind):
    CODE = "unknown_cycle"


class Unauthorized(_Kind):
    CODE = "unauthorized"


class CycleActive(_Kind):
    CODE = "cycle_active"


ERROR_TYPES = (
    PhaseClosed,
    InvalidAmount,
    InsufficientPower,
    UnknownBeneficiary,
    UntrustedSource,
    DuplicateSubmission,
    NotClosed,
    AlreadyDistributed,
    UnknownCycle,
    Unauthorized,
    CycleActive,
)
