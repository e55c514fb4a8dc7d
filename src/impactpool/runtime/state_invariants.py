# src/impactpool/runtime/state_invariants.py
from __future__ import annotations

"""State invariants / normalization helpers.

The ledger is a nested JSON-like dict mutated by the apply_* modules. This
module is the single place that:

  - validates the state is dict-like and carries the core containers
  - recomputes a cycle's aggregates from its per-entity records and reports
    any drift between the two

Aggregates are maintained incrementally on every mutation; the recomputation
here is the audit that runs before a cycle is distributed.
"""

from collections.abc import MutableMapping
from typing import Any, Dict, List

from impactpool.ledger.allocation import Issuance, quadratic_influence

Json = Dict[str, Any]


def ensure_state(st: Any) -> Json:
    """Ensure `st` is a dict and contains core keys.

    Raises:
        TypeError: if st is not a MutableMapping or a core key has the wrong type
    """
    if not isinstance(st, MutableMapping):
        raise TypeError(f"state must be MutableMapping, got {type(st)}")

    for key in ("params", "donors", "cycles", "audit"):
        v = st.get(key)
        if v is None:
            st[key] = {}
        elif not isinstance(v, dict):
            # Fail closed: do not attempt to coerce arbitrary types.
            raise TypeError(f"state[{key!r}] must be dict, got {type(v)}")

    st.setdefault("current_cycle_id", 0)
    return st  # type: ignore[return-value]


def _i(v: Any) -> int:
    try:
        return int(v)
    except Exception:
        return 0


def cycle_violations(cycle: Json, issuance: Issuance) -> List[str]:
    """Return human-readable invariant violations for one cycle record."""
    out: List[str] = []
    cid = _i(cycle.get("id"))
    donors = cycle.get("donors") if isinstance(cycle.get("donors"), dict) else {}
    votes = cycle.get("votes") if isinstance(cycle.get("votes"), dict) else {}
    tallies = cycle.get("tallies") if isinstance(cycle.get("tallies"), dict) else {}
    impact = cycle.get("impact") if isinstance(cycle.get("impact"), dict) else {}

    contributed = 0
    for donor, rec in donors.items():
        if not isinstance(rec, dict):
            out.append(f"cycle {cid}: donor {donor} record malformed")
            continue
        c = _i(rec.get("contributed"))
        contributed += c
        spent = sum(_i(v) for v in (votes.get(donor) or {}).values())
        spendable = _i(rec.get("power_spendable"))
        if spendable < 0:
            out.append(f"cycle {cid}: donor {donor} negative spendable power")
        if spendable + spent != int(issuance(c)):
            out.append(f"cycle {cid}: donor {donor} power not conserved")

    for donor in votes:
        if donor not in donors:
            out.append(f"cycle {cid}: votes from donor {donor} without contribution")

    if contributed != _i(cycle.get("contributed_total")):
        out.append(f"cycle {cid}: contributed_total drift")

    expected: Dict[str, int] = {}
    for donor_votes in votes.values():
        if not isinstance(donor_votes, dict):
            continue
        for b, spend in donor_votes.items():
            expected[b] = expected.get(b, 0) + quadratic_influence(_i(spend))
    got = {b: _i(t) for b, t in tallies.items() if _i(t) != 0}
    if {b: t for b, t in expected.items() if t != 0} != got:
        out.append(f"cycle {cid}: tallies drift")
    if sum(expected.values()) != _i(cycle.get("total_tally")):
        out.append(f"cycle {cid}: total_tally drift")

    score_sum = sum(_i(r.get("score")) for r in impact.values() if isinstance(r, dict))
    if score_sum != _i(cycle.get("total_score")):
        out.append(f"cycle {cid}: total_score drift")

    return out


__all__ = ["ensure_state", "cycle_violations"]
