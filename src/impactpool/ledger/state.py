from __future__ import annotations

from dataclasses import dataclass, field
import copy
from typing import Any, Dict, List, Optional

from impactpool.ledger.constants import (
    BPS_DENOM,
    IMPACT_WEIGHT_BPS,
    PHASE_NONE,
    PHASE_OPEN,
    VOTE_WEIGHT_BPS,
)


Json = Dict[str, Any]


def _as_int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


def initial_state(*, pool_id: str) -> Json:
    return {
        "pool_id": str(pool_id),
        "params": {
            "vote_weight_bps": VOTE_WEIGHT_BPS,
            "impact_weight_bps": IMPACT_WEIGHT_BPS,
            "bps_denom": BPS_DENOM,
        },
        "current_cycle_id": 0,
        "donors": {},
        "cycles": {},
        "audit": {"seq": 0, "head": ""},
    }


def ensure_donors(state: Json) -> Json:
    d = state.get("donors")
    if not isinstance(d, dict):
        d = {}
        state["donors"] = d
    return d


def ensure_cycles(state: Json) -> Json:
    c = state.get("cycles")
    if not isinstance(c, dict):
        c = {}
        state["cycles"] = c
    return c


def get_cycle(state: Json, cycle_id: int) -> Optional[Json]:
    rec = _as_dict(state.get("cycles")).get(str(int(cycle_id)))
    return rec if isinstance(rec, dict) else None


def current_cycle(state: Json) -> Optional[Json]:
    cid = _as_int(state.get("current_cycle_id"), 0)
    if cid <= 0:
        return None
    return get_cycle(state, cid)


def new_cycle_record(*, cycle_id: int, opened_at_ms: int, ends_at_ms: int, carry_in: int, opened_by: str) -> Json:
    return {
        "id": int(cycle_id),
        "phase": PHASE_OPEN,
        "opened_at_ms": int(opened_at_ms),
        "ends_at_ms": int(ends_at_ms),
        "opened_by": str(opened_by),
        "closed_at_ms": 0,
        "closed_by": "",
        "distributed_at_ms": 0,
        "carry_in": int(carry_in),
        "contributed_total": 0,
        "total_pool": 0,
        "total_tally": 0,
        "total_score": 0,
        "donors": {},
        "votes": {},
        "tallies": {},
        "impact": {},
        "payouts": {},
        "remainder": 0,
    }


def ensure_cycle_donor(cycle: Json, donor_id: str) -> Json:
    donors = cycle.get("donors")
    if not isinstance(donors, dict):
        donors = {}
        cycle["donors"] = donors
    rec = donors.get(donor_id)
    if not isinstance(rec, dict):
        rec = {"contributed": 0, "power_issued": 0, "power_spendable": 0}
        donors[donor_id] = rec
    return rec


@dataclass(frozen=True, slots=True)
class PoolView:
    """
    Immutable read-only view of the ledger used by queries and the HTTP layer.
    """

    current_cycle_id: int = 0
    cycles: Dict[str, Any] = field(default_factory=dict)
    donors: Dict[str, Any] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)
    audit_head: str = ""
    audit_seq: int = 0

    @classmethod
    def from_ledger(cls, state: Dict[str, Any]) -> "PoolView":
        audit = _as_dict(state.get("audit"))
        return cls(
            current_cycle_id=_as_int(state.get("current_cycle_id"), 0),
            cycles=copy.deepcopy(_as_dict(state.get("cycles"))),
            donors=copy.deepcopy(_as_dict(state.get("donors"))),
            params=copy.deepcopy(_as_dict(state.get("params"))),
            audit_head=str(audit.get("head") or ""),
            audit_seq=_as_int(audit.get("seq"), 0),
        )

    def _cycle(self, cycle_id: Optional[int]) -> Json:
        cid = self.current_cycle_id if cycle_id is None else int(cycle_id)
        rec = self.cycles.get(str(cid))
        return rec if isinstance(rec, dict) else {}

    def get_cycle(self, cycle_id: Optional[int] = None) -> Json:
        return copy.deepcopy(self._cycle(cycle_id))

    def get_cycle_phase(self, cycle_id: Optional[int] = None) -> str:
        rec = self._cycle(cycle_id)
        return str(rec.get("phase") or PHASE_NONE)

    def get_tally(self, beneficiary_id: str, cycle_id: Optional[int] = None) -> int:
        tallies = _as_dict(self._cycle(cycle_id).get("tallies"))
        return _as_int(tallies.get(beneficiary_id), 0)

    def get_donor_power(self, donor_id: str, cycle_id: Optional[int] = None) -> int:
        donors = _as_dict(self._cycle(cycle_id).get("donors"))
        return _as_int(_as_dict(donors.get(donor_id)).get("power_spendable"), 0)

    def get_committed_power(self, donor_id: str, cycle_id: Optional[int] = None) -> int:
        votes = _as_dict(_as_dict(self._cycle(cycle_id).get("votes")).get(donor_id))
        return sum(_as_int(v, 0) for v in votes.values())

    def get_total_contributed(self, donor_id: str) -> int:
        return _as_int(_as_dict(self.donors.get(donor_id)).get("total_contributed"), 0)

    def get_payout(self, beneficiary_id: str, cycle_id: int) -> int:
        payouts = _as_dict(self._cycle(cycle_id).get("payouts"))
        return _as_int(payouts.get(beneficiary_id), 0)

    def get_impact_score(self, beneficiary_id: str, cycle_id: Optional[int] = None) -> Optional[int]:
        rec = _as_dict(self._cycle(cycle_id).get("impact")).get(beneficiary_id)
        if not isinstance(rec, dict):
            return None
        return _as_int(rec.get("score"), 0)

    def cycle_ids(self) -> List[int]:
        out: List[int] = []
        for k in self.cycles.keys():
            try:
                out.append(int(k))
            except (TypeError, ValueError):
                continue
        return sorted(out)
