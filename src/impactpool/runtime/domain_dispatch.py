# src/impactpool/runtime/domain_dispatch.py

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from impactpool.runtime.apply.cycles import apply_cycles
from impactpool.runtime.apply.distribution import apply_distribution
from impactpool.runtime.apply.donations import apply_donations
from impactpool.runtime.apply.impact import apply_impact
from impactpool.runtime.apply.voting import apply_voting
from impactpool.runtime.apply_context import ApplyContext
from impactpool.runtime.errors import PoolError
from impactpool.runtime.state_invariants import ensure_state
from impactpool.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]
ApplyFn = Callable[[Json, TxEnvelope, ApplyContext], Optional[Json]]


_APPLIERS: tuple[ApplyFn, ...] = (
    apply_donations,
    apply_voting,
    apply_impact,
    apply_cycles,
    apply_distribution,
)


def apply_tx(state: Json, env: Any, ctx: ApplyContext) -> Json:
    """Dispatch a TxEnvelope to the first domain applier that claims it.

    Appliers mutate `state` in place. Callers that need all-or-nothing
    semantics run this inside LedgerStore.update(), which discards the state
    when a PoolError escapes.
    """

    ensure_state(state)

    # Tests and some tools pass raw dict envelopes.
    env_norm = TxEnvelope.from_json(env)

    t = env_norm.tx_type
    if not t:
        raise PoolError("invalid_tx", "missing_tx_type", {"tx_type": t})

    for fn in _APPLIERS:
        out = fn(state, env_norm, ctx)
        if out is not None:
            return out

    raise PoolError("tx_unimplemented", "tx_type_not_implemented", {"tx_type": t})


__all__ = ["apply_tx", "ApplyFn"]
