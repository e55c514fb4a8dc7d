# src/impactpool/runtime/apply/impact.py
from __future__ import annotations

from typing import Any, Dict, Optional

from impactpool.ledger.constants import MAX_AMOUNT, PHASE_DISTRIBUTED
from impactpool.ledger.state import get_cycle
from impactpool.runtime.apply.cycles import require_amount
from impactpool.runtime.apply_context import ApplyContext
from impactpool.runtime.errors import (
    DuplicateSubmission,
    InvalidAmount,
    PhaseClosed,
    UnknownBeneficiary,
    UnknownCycle,
    UntrustedSource,
)
from impactpool.runtime.tx_admission_types import TX_IMPACT_SUBMIT, TxEnvelope

Json = Dict[str, Any]


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int)) else ""


def _as_int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _apply_impact_submit(state: Json, env: TxEnvelope, ctx: ApplyContext) -> Json:
    payload = env.payload
    try:
        cid = int(payload.get("cycle_id"))
    except (TypeError, ValueError):
        raise UnknownCycle("missing_cycle_id", {"cycle_id": payload.get("cycle_id")})

    cyc = get_cycle(state, cid)
    if cyc is None:
        raise UnknownCycle("cycle_not_found", {"cycle_id": cid})
    if str(cyc.get("phase") or "") == PHASE_DISTRIBUTED:
        raise PhaseClosed("cycle_distributed", {"cycle_id": cid})

    trusted = str(ctx.trusted.trusted_source_for(cid) or "").strip()
    if not trusted or env.caller != trusted:
        raise UntrustedSource("source_not_trusted", {"cycle_id": cid, "source": env.caller})

    beneficiary = _as_str(payload.get("beneficiary"))
    if not beneficiary or not ctx.registry.is_registered_and_verified(beneficiary):
        raise UnknownBeneficiary("beneficiary_not_verified", {"beneficiary": beneficiary})

    score = require_amount(payload.get("score"), field="score", allow_zero=True)

    impact = cyc.get("impact")
    if not isinstance(impact, dict):
        impact = {}
        cyc["impact"] = impact
    existing = impact.get(beneficiary)
    if isinstance(existing, dict):
        raise DuplicateSubmission(
            "score_already_set",
            {"cycle_id": cid, "beneficiary": beneficiary, "score": _as_int(existing.get("score"), 0)},
        )

    total_after = _as_int(cyc.get("total_score"), 0) + score
    if total_after > MAX_AMOUNT:
        raise InvalidAmount("score_overflow", {"cycle_id": cid, "beneficiary": beneficiary})

    impact[beneficiary] = {"score": score, "source": env.caller, "submitted_at_ms": int(ctx.now_ms)}
    cyc["total_score"] = total_after

    ctx.trail.emit(
        state,
        "impact_submitted",
        cycle_id=cid,
        actor=env.caller,
        beneficiary=beneficiary,
        score=score,
    )
    return {"applied": TX_IMPACT_SUBMIT, "cycle_id": cid, "beneficiary": beneficiary, "score": score}


def apply_impact(state: Json, env: TxEnvelope, ctx: ApplyContext) -> Optional[Json]:
    if env.tx_type == TX_IMPACT_SUBMIT:
        return _apply_impact_submit(state, env, ctx)
    return None


__all__ = ["apply_impact"]
