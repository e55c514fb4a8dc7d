# src/impactpool/runtime/apply/voting.py
from __future__ import annotations

"""Quadratic voting.

A donor spends power on a beneficiary; the full spend is debited from the
donor's spendable power, while the beneficiary's tally grows by the square
root of the donor's cumulative spend on it:

    tally(b) = sum over donors d of isqrt(spend(d, b))

The running tally is updated by isqrt(new_cum) - isqrt(old_cum), so 25+25+50
lands on exactly the same tally as a single vote of 100.
"""

from typing import Any, Dict, Optional

from impactpool.ledger.allocation import tally_delta
from impactpool.ledger.constants import MAX_AMOUNT
from impactpool.runtime.apply.cycles import require_amount, require_open_cycle
from impactpool.runtime.apply_context import ApplyContext
from impactpool.runtime.errors import InsufficientPower, InvalidAmount, UnknownBeneficiary
from impactpool.runtime.tx_admission_types import TX_VOTE, TxEnvelope

Json = Dict[str, Any]


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int)) else ""


def _as_int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _ensure_map(parent: Json, key: str) -> Json:
    m = parent.get(key)
    if not isinstance(m, dict):
        m = {}
        parent[key] = m
    return m


def _apply_vote(state: Json, env: TxEnvelope, ctx: ApplyContext) -> Json:
    donor_id = env.caller
    cyc = require_open_cycle(state, ctx)
    cid = int(cyc["id"])

    power = require_amount(env.payload.get("power"), field="power")

    beneficiary = _as_str(env.payload.get("beneficiary"))
    if not beneficiary or not ctx.registry.is_registered_and_verified(beneficiary):
        raise UnknownBeneficiary("beneficiary_not_verified", {"beneficiary": beneficiary})

    donors = _ensure_map(cyc, "donors")
    cd = donors.get(donor_id)
    spendable = _as_int(cd.get("power_spendable"), 0) if isinstance(cd, dict) else 0
    if power > spendable:
        raise InsufficientPower(
            "power_exceeds_balance",
            {"cycle_id": cid, "donor": donor_id, "requested": power, "spendable": spendable},
        )

    donor_votes = _ensure_map(_ensure_map(cyc, "votes"), donor_id)
    old_cum = _as_int(donor_votes.get(beneficiary), 0)
    new_cum = old_cum + power
    if new_cum > MAX_AMOUNT:
        raise InvalidAmount("vote_overflow", {"cycle_id": cid, "donor": donor_id, "beneficiary": beneficiary})

    delta = tally_delta(old_cum, new_cum)
    tallies = _ensure_map(cyc, "tallies")

    # Debit, spend, tally and total move together.
    cd["power_spendable"] = spendable - power
    donor_votes[beneficiary] = new_cum
    tallies[beneficiary] = _as_int(tallies.get(beneficiary), 0) + delta
    cyc["total_tally"] = _as_int(cyc.get("total_tally"), 0) + delta

    ctx.trail.emit(
        state,
        "vote",
        cycle_id=cid,
        actor=donor_id,
        beneficiary=beneficiary,
        power=power,
        cumulative=new_cum,
        tally_delta=delta,
    )
    return {
        "applied": TX_VOTE,
        "cycle_id": cid,
        "donor": donor_id,
        "beneficiary": beneficiary,
        "power_spent": power,
        "cumulative_spend": new_cum,
        "tally": tallies[beneficiary],
        "power_spendable": cd["power_spendable"],
    }


def apply_voting(state: Json, env: TxEnvelope, ctx: ApplyContext) -> Optional[Json]:
    if env.tx_type == TX_VOTE:
        return _apply_vote(state, env, ctx)
    return None


__all__ = ["apply_voting"]
