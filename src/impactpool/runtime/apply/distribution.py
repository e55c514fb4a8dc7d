# src/impactpool/runtime/apply/distribution.py
from __future__ import annotations

"""End-of-cycle distribution.

Runs once per cycle, in the same mutation that moves the cycle from Closed to
Distributed. Payouts are computed with exact integer math (see
ledger.allocation.compute_payouts); the rounding remainder is stored on the
cycle and carried into the next cycle's opening pool.
"""

from typing import Any, Dict, Optional

from impactpool.ledger.allocation import compute_payouts, transfer_instructions
from impactpool.ledger.constants import (
    IMPACT_WEIGHT_BPS,
    PHASE_CLOSED,
    PHASE_DISTRIBUTED,
    PHASE_OPEN,
    SYSTEM_ACTOR,
    VOTE_WEIGHT_BPS,
)
from impactpool.ledger.state import get_cycle
from impactpool.runtime.apply.cycles import open_next_cycle
from impactpool.runtime.apply_context import ApplyContext
from impactpool.runtime.errors import AlreadyDistributed, NotClosed, PoolError, UnknownCycle
from impactpool.runtime.state_invariants import cycle_violations
from impactpool.runtime.tx_admission_types import TX_CYCLE_DISTRIBUTE, TxEnvelope

Json = Dict[str, Any]


def _as_int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


def _apply_distribute(state: Json, env: TxEnvelope, ctx: ApplyContext) -> Json:
    try:
        cid = int(env.payload.get("cycle_id"))
    except (TypeError, ValueError):
        raise UnknownCycle("missing_cycle_id", {"cycle_id": env.payload.get("cycle_id")})

    cyc = get_cycle(state, cid)
    if cyc is None:
        raise UnknownCycle("cycle_not_found", {"cycle_id": cid})

    phase = str(cyc.get("phase") or "")
    if phase == PHASE_DISTRIBUTED:
        raise AlreadyDistributed("cycle_already_distributed", {"cycle_id": cid})
    if phase != PHASE_CLOSED:
        raise NotClosed("cycle_not_closed", {"cycle_id": cid, "phase": phase or PHASE_OPEN})

    problems = cycle_violations(cyc, ctx.issuance)
    if problems:
        raise PoolError("invariant_violation", "cycle_aggregates_inconsistent", {"cycle_id": cid, "problems": problems})

    params = _as_dict(state.get("params"))
    tallies = {b: _as_int(t) for b, t in _as_dict(cyc.get("tallies")).items()}
    scores = {b: _as_int(_as_dict(r).get("score")) for b, r in _as_dict(cyc.get("impact")).items()}
    total_pool = _as_int(cyc.get("total_pool"), 0)

    alloc = compute_payouts(
        total_pool=total_pool,
        tallies=tallies,
        scores=scores,
        vote_weight_bps=_as_int(params.get("vote_weight_bps"), VOTE_WEIGHT_BPS),
        impact_weight_bps=_as_int(params.get("impact_weight_bps"), IMPACT_WEIGHT_BPS),
    )

    cyc["payouts"] = dict(alloc.payouts)
    cyc["remainder"] = alloc.remainder
    cyc["distributed_total"] = alloc.distributed
    cyc["phase"] = PHASE_DISTRIBUTED
    cyc["distributed_at_ms"] = int(ctx.now_ms)
    cyc["distributed_by"] = env.caller

    transfers = transfer_instructions(alloc.payouts)
    ctx.trail.emit(
        state,
        "cycle_distributed",
        cycle_id=cid,
        actor=env.caller,
        total_pool=total_pool,
        payouts=dict(alloc.payouts),
        remainder=alloc.remainder,
    )

    next_cycle_id = None
    if ctx.auto_open_next and _as_int(state.get("current_cycle_id"), 0) == cid:
        next_cycle_id = int(open_next_cycle(state, ctx, actor=SYSTEM_ACTOR)["id"])

    return {
        "applied": TX_CYCLE_DISTRIBUTE,
        "cycle_id": cid,
        "total_pool": total_pool,
        "transfers": [{"beneficiary": b, "amount": a} for b, a in transfers],
        "distributed": alloc.distributed,
        "remainder": alloc.remainder,
        "next_cycle_id": next_cycle_id,
    }


def apply_distribution(state: Json, env: TxEnvelope, ctx: ApplyContext) -> Optional[Json]:
    if env.tx_type == TX_CYCLE_DISTRIBUTE:
        return _apply_distribute(state, env, ctx)
    return None


__all__ = ["apply_distribution"]
