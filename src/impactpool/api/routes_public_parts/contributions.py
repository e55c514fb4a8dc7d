from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from impactpool.api.routes_public_parts.common import _caller, _engine
from impactpool.api.schemas import ContributeRequest, ImpactSubmitRequest, VoteRequest

router = APIRouter()

Json = Dict[str, Any]


@router.post("/contributions")
def contribute(body: ContributeRequest, request: Request) -> Json:
    """Record a donation from the caller into the current open cycle.

    Returns the power granted for this donation and the caller's spendable
    power after it.
    """
    eng = _engine(request)
    return {"ok": True, **eng.contribute(_caller(request), body.amount)}


@router.post("/votes")
def vote(body: VoteRequest, request: Request) -> Json:
    eng = _engine(request)
    return {"ok": True, **eng.vote(_caller(request), body.beneficiary, body.power)}


@router.post("/impact")
def impact_submit(body: ImpactSubmitRequest, request: Request) -> Json:
    """Accept an impact score from the configured trusted source.

    One submission per (cycle, beneficiary); resubmission is rejected.
    """
    eng = _engine(request)
    return {"ok": True, **eng.submit_impact(_caller(request), body.beneficiary, body.score, body.cycle_id)}
