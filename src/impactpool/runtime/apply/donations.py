# src/impactpool/runtime/apply/donations.py
from __future__ import annotations

from typing import Any, Dict, Optional

from impactpool.ledger.allocation import power_grant
from impactpool.ledger.constants import MAX_AMOUNT
from impactpool.ledger.state import ensure_cycle_donor, ensure_donors
from impactpool.runtime.apply.cycles import require_amount, require_open_cycle
from impactpool.runtime.apply_context import ApplyContext
from impactpool.runtime.errors import InvalidAmount
from impactpool.runtime.tx_admission_types import TX_CONTRIBUTE, TxEnvelope

Json = Dict[str, Any]


def _as_int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _ensure_donor(state: Json, donor_id: str) -> Json:
    donors = ensure_donors(state)
    rec = donors.get(donor_id)
    if not isinstance(rec, dict):
        rec = {"total_contributed": 0}
        donors[donor_id] = rec
    return rec


def _apply_contribute(state: Json, env: TxEnvelope, ctx: ApplyContext) -> Json:
    donor_id = env.caller
    if not donor_id:
        raise InvalidAmount("missing_donor", {"tx_type": env.tx_type})

    cyc = require_open_cycle(state, ctx)
    amount = require_amount(env.payload.get("amount"), field="amount")

    pool_after = _as_int(cyc.get("carry_in"), 0) + _as_int(cyc.get("contributed_total"), 0) + amount
    if pool_after > MAX_AMOUNT:
        raise InvalidAmount("pool_overflow", {"cycle_id": cyc["id"], "amount": amount})

    donor = _ensure_donor(state, donor_id)
    lifetime_after = _as_int(donor.get("total_contributed"), 0) + amount
    if lifetime_after > MAX_AMOUNT:
        raise InvalidAmount("donor_total_overflow", {"donor": donor_id, "amount": amount})

    cd = ensure_cycle_donor(cyc, donor_id)
    before = _as_int(cd.get("contributed"), 0)
    after = before + amount
    try:
        grant = power_grant(ctx.issuance, before, after)
    except ValueError:
        raise InvalidAmount("issuance_not_monotonic", {"donor": donor_id, "before": before, "after": after})
    if _as_int(cd.get("power_issued"), 0) + grant > MAX_AMOUNT:
        raise InvalidAmount("power_overflow", {"donor": donor_id, "amount": amount})

    donor["total_contributed"] = lifetime_after
    cd["contributed"] = after
    cd["power_issued"] = _as_int(cd.get("power_issued"), 0) + grant
    cd["power_spendable"] = _as_int(cd.get("power_spendable"), 0) + grant
    cyc["contributed_total"] = _as_int(cyc.get("contributed_total"), 0) + amount

    ctx.trail.emit(
        state,
        "contribution",
        cycle_id=int(cyc["id"]),
        actor=donor_id,
        amount=amount,
        power_granted=grant,
        contributed_total=cyc["contributed_total"],
    )
    return {
        "applied": TX_CONTRIBUTE,
        "cycle_id": int(cyc["id"]),
        "donor": donor_id,
        "amount": amount,
        "power_granted": grant,
        "power_spendable": cd["power_spendable"],
    }


def apply_donations(state: Json, env: TxEnvelope, ctx: ApplyContext) -> Optional[Json]:
    if env.tx_type == TX_CONTRIBUTE:
        return _apply_contribute(state, env, ctx)
    return None


__all__ = ["apply_donations"]
