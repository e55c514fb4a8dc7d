# src/impactpool/runtime/apply/cycles.py
from __future__ import annotations

"""Cycle lifecycle: Open -> Closed -> Distributed (terminal).

Exactly one cycle is Open at a time, and a new cycle opens only after the
previous one is Distributed. This module also owns the shared gates other
appliers use (open-window check, amount parsing).

State assumptions:
  state["current_cycle_id"]: id of the newest cycle (0 before the first)
  state["cycles"][str(id)]:  cycle record (see ledger.state.new_cycle_record)
"""

from typing import Any, Dict, Optional

from impactpool.ledger.constants import (
    MAX_AMOUNT,
    PHASE_CLOSED,
    PHASE_DISTRIBUTED,
    PHASE_OPEN,
)
from impactpool.ledger.state import (
    current_cycle,
    ensure_cycles,
    new_cycle_record,
)
from impactpool.runtime.apply_context import ApplyContext
from impactpool.runtime.errors import CycleActive, InvalidAmount, PhaseClosed, Unauthorized
from impactpool.runtime.tx_admission_types import TX_CYCLE_CLOSE, TX_CYCLE_OPEN, TxEnvelope

Json = Dict[str, Any]


def _as_int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def require_amount(v: Any, *, field: str, allow_zero: bool = False) -> int:
    """Parse an unsigned amount. No clamping: anything out of range is rejected."""
    if isinstance(v, bool) or not isinstance(v, int):
        s = v.strip() if isinstance(v, str) else ""
        # ASCII only: isdigit() also accepts superscripts that int() rejects.
        if s.isascii() and s.isdigit():
            if len(s.lstrip("0")) > len(str(MAX_AMOUNT)):
                raise InvalidAmount("exceeds_max_amount", {"field": field, "value": s[:48]})
            v = int(s)
        else:
            raise InvalidAmount("not_an_integer", {"field": field, "value": repr(v)})
    if v < 0 or (v == 0 and not allow_zero):
        raise InvalidAmount("must_be_positive" if not allow_zero else "must_be_unsigned", {"field": field, "value": v})
    if v > MAX_AMOUNT:
        raise InvalidAmount("exceeds_max_amount", {"field": field, "value": v})
    return int(v)


def require_open_cycle(state: Json, ctx: ApplyContext) -> Json:
    """Return the current cycle if it accepts contributions and votes.

    A cycle whose time window has elapsed is treated as closed even before
    anyone records the close.
    """
    cyc = current_cycle(state)
    if cyc is None:
        raise PhaseClosed("no_cycle", {})
    phase = str(cyc.get("phase") or "")
    if phase != PHASE_OPEN:
        raise PhaseClosed("cycle_not_open", {"cycle_id": cyc.get("id"), "phase": phase})
    if int(ctx.now_ms) >= _as_int(cyc.get("ends_at_ms"), 0):
        raise PhaseClosed("cycle_window_elapsed", {"cycle_id": cyc.get("id"), "ends_at_ms": cyc.get("ends_at_ms")})
    return cyc


def _require_admin(env: TxEnvelope, ctx: ApplyContext, action: str) -> None:
    if ctx.admin_id and env.caller == ctx.admin_id:
        return
    raise Unauthorized("admin_required", {"action": action, "caller": env.caller})


def open_next_cycle(state: Json, ctx: ApplyContext, *, actor: str, duration_ms: Optional[int] = None) -> Json:
    """Open cycle N+1, carrying the previous remainder into its pool."""
    prev = current_cycle(state)
    carry_in = 0
    if prev is not None:
        phase = str(prev.get("phase") or "")
        if phase != PHASE_DISTRIBUTED:
            raise CycleActive("previous_cycle_not_distributed", {"cycle_id": prev.get("id"), "phase": phase})
        carry_in = _as_int(prev.get("remainder"), 0)

    dur = int(ctx.cycle_duration_ms if duration_ms is None else duration_ms)
    if dur <= 0:
        raise InvalidAmount("duration_must_be_positive", {"field": "duration_ms", "value": dur})

    cid = _as_int(state.get("current_cycle_id"), 0) + 1
    rec = new_cycle_record(
        cycle_id=cid,
        opened_at_ms=ctx.now_ms,
        ends_at_ms=int(ctx.now_ms) + dur,
        carry_in=carry_in,
        opened_by=actor,
    )
    ensure_cycles(state)[str(cid)] = rec
    state["current_cycle_id"] = cid

    ctx.trail.emit(
        state,
        "cycle_opened",
        cycle_id=cid,
        actor=actor,
        ends_at_ms=rec["ends_at_ms"],
        carry_in=carry_in,
    )
    return rec


def _apply_cycle_open(state: Json, env: TxEnvelope, ctx: ApplyContext) -> Json:
    _require_admin(env, ctx, TX_CYCLE_OPEN)
    raw = env.payload.get("duration_ms")
    duration = None if raw is None else require_amount(raw, field="duration_ms")
    rec = open_next_cycle(state, ctx, actor=env.caller, duration_ms=duration)
    return {
        "applied": TX_CYCLE_OPEN,
        "cycle_id": rec["id"],
        "ends_at_ms": rec["ends_at_ms"],
        "carry_in": rec["carry_in"],
    }


def _apply_cycle_close(state: Json, env: TxEnvelope, ctx: ApplyContext) -> Json:
    cyc = current_cycle(state)
    if cyc is None:
        raise PhaseClosed("no_cycle", {})

    cid = int(cyc["id"])
    phase = str(cyc.get("phase") or "")
    if phase in (PHASE_CLOSED, PHASE_DISTRIBUTED):
        # Only the first closer captures the pool.
        return {"applied": TX_CYCLE_CLOSE, "cycle_id": cid, "phase": phase, "deduped": True}

    elapsed = int(ctx.now_ms) >= _as_int(cyc.get("ends_at_ms"), 0)
    if not elapsed:
        _require_admin(env, ctx, TX_CYCLE_CLOSE)

    total_pool = _as_int(cyc.get("carry_in"), 0) + _as_int(cyc.get("contributed_total"), 0)
    cyc["phase"] = PHASE_CLOSED
    cyc["closed_at_ms"] = int(ctx.now_ms)
    cyc["closed_by"] = env.caller
    cyc["total_pool"] = total_pool

    ctx.trail.emit(
        state,
        "cycle_closed",
        cycle_id=cid,
        actor=env.caller,
        total_pool=total_pool,
        total_tally=_as_int(cyc.get("total_tally"), 0),
        total_score=_as_int(cyc.get("total_score"), 0),
        window_elapsed=elapsed,
    )
    return {"applied": TX_CYCLE_CLOSE, "cycle_id": cid, "phase": PHASE_CLOSED, "total_pool": total_pool}


def apply_cycles(state: Json, env: TxEnvelope, ctx: ApplyContext) -> Optional[Json]:
    t = env.tx_type
    if t == TX_CYCLE_OPEN:
        return _apply_cycle_open(state, env, ctx)
    if t == TX_CYCLE_CLOSE:
        return _apply_cycle_close(state, env, ctx)
    return None


__all__ = ["apply_cycles", "open_next_cycle", "require_open_cycle", "require_amount"]
