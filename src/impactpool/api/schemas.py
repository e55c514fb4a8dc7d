from __future__ import annotations

"""Pydantic request schemas for the public API.

These exist only for HTTP input validation. Range checks (positive amounts,
128-bit ceiling) stay in the ledger so HTTP and in-process callers see the
same error codes.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ContributeRequest(BaseModel):
    amount: int = Field(..., description="Amount contributed to the current cycle's pool")


class VoteRequest(BaseModel):
    beneficiary: str = Field(..., description="Registered and verified beneficiary id")
    power: int = Field(..., description="Voting power to spend (debited in full)")


class ImpactSubmitRequest(BaseModel):
    beneficiary: str = Field(..., description="Registered and verified beneficiary id")
    score: int = Field(..., description="Impact score for the cycle")
    cycle_id: int = Field(..., description="Open or closed cycle the score applies to")


class CycleOpenRequest(BaseModel):
    duration_ms: Optional[int] = Field(default=None, description="Override of the configured cycle window")

    model_config = {"extra": "forbid"}
