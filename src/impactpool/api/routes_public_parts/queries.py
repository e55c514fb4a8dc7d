from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from impactpool.api.errors import ApiError
from impactpool.api.routes_public_parts.common import _engine, _int_param, _opt_int_param

router = APIRouter()

Json = Dict[str, Any]

_MAX_AUDIT_PAGE = 1000


@router.get("/cycle")
def current_cycle(request: Request) -> Json:
    eng = _engine(request)
    view = eng.view()
    return {
        "ok": True,
        "cycle_id": view.current_cycle_id,
        "phase": view.get_cycle_phase(),
        "cycle": view.get_cycle() or None,
    }


@router.get("/cycles/{cycle_id}")
def cycle_detail(cycle_id: int, request: Request) -> Json:
    eng = _engine(request)
    rec = eng.get_cycle(int(cycle_id))
    if not rec:
        raise ApiError.not_found("unknown_cycle", "cycle not found", {"cycle_id": int(cycle_id)})
    return {"ok": True, "cycle": rec}


@router.get("/tallies/{beneficiary_id}")
def tally(beneficiary_id: str, request: Request) -> Json:
    eng = _engine(request)
    cid = _opt_int_param(request.query_params.get("cycle_id"))
    return {"ok": True, "beneficiary": beneficiary_id, "tally": eng.get_tally(beneficiary_id, cid)}


@router.get("/donors/{donor_id}/power")
def donor_power(donor_id: str, request: Request) -> Json:
    eng = _engine(request)
    cid = _opt_int_param(request.query_params.get("cycle_id"))
    return {"ok": True, "donor": donor_id, "power": eng.get_donor_power(donor_id, cid)}


@router.get("/payouts/{cycle_id}/{beneficiary_id}")
def payout(cycle_id: int, beneficiary_id: str, request: Request) -> Json:
    eng = _engine(request)
    return {
        "ok": True,
        "cycle_id": int(cycle_id),
        "beneficiary": beneficiary_id,
        "amount": eng.get_payout(beneficiary_id, int(cycle_id)),
    }


@router.get("/audit")
def audit_log(request: Request) -> Json:
    """Page through the hash-chained audit log.

    Query params: cycle_id (optional), after_seq (default 0), limit (<= 1000).
    Pass verify=1 to recompute the whole chain against the snapshot head.
    """
    eng = _engine(request)
    q = request.query_params
    limit = max(1, min(_MAX_AUDIT_PAGE, _int_param(q.get("limit"), 100)))
    events = eng.get_audit_log(
        cycle_id=_opt_int_param(q.get("cycle_id")),
        after_seq=max(0, _int_param(q.get("after_seq"), 0)),
        limit=limit,
    )
    out: Json = {"ok": True, "events": events, "next_after_seq": int(events[-1]["seq"]) if events else None}
    if str(q.get("verify") or "").strip().lower() in {"1", "true", "yes"}:
        check = eng.verify_audit()
        out["verify"] = {
            "ok": check.ok,
            "checked": check.checked,
            "broken_at": check.broken_at,
            "reason": check.reason,
        }
    return out
