from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Request

from impactpool.api.routes_public_parts.common import _caller, _engine
from impactpool.api.schemas import CycleOpenRequest

router = APIRouter()

Json = Dict[str, Any]


@router.post("/cycles/open")
def cycle_open(request: Request, body: Optional[CycleOpenRequest] = None) -> Json:
    """Open the next funding cycle (admin only).

    Fails with cycle_active unless the previous cycle has been distributed.
    The new cycle's carry_in is the previous cycle's remainder.
    """
    eng = _engine(request)
    caller = _caller(request)
    duration = body.duration_ms if body is not None else None
    return {"ok": True, **eng.open_cycle(caller, duration_ms=duration)}


@router.post("/cycles/close")
def cycle_close(request: Request) -> Json:
    """Close the current cycle.

    Before the window ends only the admin may close; afterwards anyone can.
    Closing an already closed cycle returns its phase with deduped=true.
    """
    eng = _engine(request)
    return {"ok": True, **eng.close_cycle(_caller(request))}


@router.post("/cycles/{cycle_id}/distribute")
def cycle_distribute(cycle_id: int, request: Request) -> Json:
    eng = _engine(request)
    return {"ok": True, **eng.distribute(int(cycle_id), caller=_caller(request))}
