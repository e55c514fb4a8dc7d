from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from impactpool.ledger.allocation import Issuance, identity_issuance
from impactpool.ledger.audit import AuditTrail, ChainCheck, verify_audit_chain
from impactpool.ledger.constants import DEFAULT_CYCLE_DURATION_MS, SYSTEM_ACTOR
from impactpool.ledger.state import PoolView, initial_state
from impactpool.runtime.apply_context import ApplyContext
from impactpool.runtime.collaborators import NullRewardSink, Registry, RewardSink, TrustedSourceConfig
from impactpool.runtime.domain_dispatch import apply_tx
from impactpool.runtime.errors import PoolError
from impactpool.runtime.memory_store import LedgerStore
from impactpool.runtime.metrics import inc_counter, set_gauge
from impactpool.runtime.runtime_logging import log_event
from impactpool.runtime.state_invariants import cycle_violations
from impactpool.runtime.tx_admission_types import (
    TX_CONTRIBUTE,
    TX_CYCLE_CLOSE,
    TX_CYCLE_DISTRIBUTE,
    TX_CYCLE_OPEN,
    TX_IMPACT_SUBMIT,
    TX_VOTE,
    TxEnvelope,
)

Json = Dict[str, Any]

log = logging.getLogger("impactpool.engine")


def _now_ms() -> int:
    return int(time.time() * 1000)


class EngineError(RuntimeError):
    pass


class PoolEngine:
    """Cycle state machine over a LedgerStore.

    Every mutating call is one LedgerStore.update(): the applier runs against
    the freshly loaded snapshot and either commits (snapshot + audit events)
    or raises a PoolError and leaves the ledger untouched. Queries read a
    snapshot and never write.
    """

    def __init__(
        self,
        *,
        store: LedgerStore,
        pool_id: str,
        admin_id: str,
        registry: Registry,
        trusted: TrustedSourceConfig,
        reward_sink: Optional[RewardSink] = None,
        issuance: Issuance = identity_issuance,
        cycle_duration_ms: int = DEFAULT_CYCLE_DURATION_MS,
        auto_open_next: bool = False,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self.pool_id = str(pool_id)
        self.admin_id = str(admin_id)
        self.registry = registry
        self.trusted = trusted
        self.reward_sink: RewardSink = reward_sink if reward_sink is not None else NullRewardSink()
        self.issuance = issuance
        self.cycle_duration_ms = int(cycle_duration_ms)
        self.auto_open_next = bool(auto_open_next)
        self._clock = clock
        self._store = store

        if store.exists():
            st = store.read()
            st_pool = str(st.get("pool_id") or "").strip()
            if st_pool and st_pool != self.pool_id:
                raise EngineError(f"pool_id mismatch: db={st_pool!r} engine={self.pool_id!r}. Refuse to start.")
        else:
            store.write(initial_state(pool_id=self.pool_id))

    @property
    def store(self) -> LedgerStore:
        return self._store

    # ----------------------------
    # Mutation path
    # ----------------------------

    def submit(self, env: Any) -> Json:
        """Apply one authenticated operation atomically."""
        e = TxEnvelope.from_json(env)
        if e.ts_ms <= 0:
            e = TxEnvelope(tx_type=e.tx_type, caller=e.caller, payload=e.payload, ts_ms=int(self._clock()))

        def _mut(st: Json) -> Tuple[Json, List[Json]]:
            trail = AuditTrail(now_ms=e.ts_ms)
            ctx = ApplyContext(
                now_ms=e.ts_ms,
                trail=trail,
                registry=self.registry,
                trusted=self.trusted,
                admin_id=self.admin_id,
                issuance=self.issuance,
                cycle_duration_ms=self.cycle_duration_ms,
                auto_open_next=self.auto_open_next,
            )
            out = apply_tx(st, e, ctx)
            return out, trail.events

        try:
            result = self._store.update(_mut)
        except PoolError as err:
            inc_counter(f"rejected_{err.code}_total")
            log_event(
                log,
                "op_rejected",
                level=logging.WARNING,
                tx_type=e.tx_type,
                caller=e.caller,
                code=err.code,
                reason=err.reason,
                details=err.details,
            )
            raise

        inc_counter(f"applied_{e.tx_type.lower()}_total")
        if result.get("cycle_id") is not None:
            set_gauge("current_cycle_id", int(result.get("next_cycle_id") or result["cycle_id"]))
        log_event(log, "op_applied", tx_type=e.tx_type, caller=e.caller, result=result)
        return result

    def _env(self, tx_type: str, caller: str, payload: Json, now_ms: Optional[int]) -> TxEnvelope:
        return TxEnvelope(
            tx_type=tx_type,
            caller=str(caller or "").strip(),
            payload=payload,
            ts_ms=int(now_ms) if now_ms is not None else int(self._clock()),
        )

    def contribute(self, donor: str, amount: int, *, now_ms: Optional[int] = None) -> Json:
        result = self.submit(self._env(TX_CONTRIBUTE, donor, {"amount": amount}, now_ms))
        self._credit_reward(result["donor"], int(result["amount"]))
        return result

    def _credit_reward(self, donor: str, amount: int) -> None:
        # Fire-and-forget: the donation is already committed.
        try:
            self.reward_sink.credit_reward(donor, amount)
        except Exception as e:
            inc_counter("reward_credit_failed_total")
            log_event(log, "reward_credit_failed", level=logging.ERROR, donor=donor, amount=amount, error=repr(e))
        else:
            inc_counter("reward_credited_total")

    def vote(self, donor: str, beneficiary: str, power: int, *, now_ms: Optional[int] = None) -> Json:
        return self.submit(self._env(TX_VOTE, donor, {"beneficiary": beneficiary, "power": power}, now_ms))

    def submit_impact(
        self, source: str, beneficiary: str, score: int, cycle_id: int, *, now_ms: Optional[int] = None
    ) -> Json:
        payload = {"beneficiary": beneficiary, "score": score, "cycle_id": cycle_id}
        return self.submit(self._env(TX_IMPACT_SUBMIT, source, payload, now_ms))

    def open_cycle(self, caller: str, *, duration_ms: Optional[int] = None, now_ms: Optional[int] = None) -> Json:
        payload: Json = {} if duration_ms is None else {"duration_ms": duration_ms}
        return self.submit(self._env(TX_CYCLE_OPEN, caller, payload, now_ms))

    def close_cycle(self, caller: str, *, now_ms: Optional[int] = None) -> Json:
        """Close the current cycle. Repeated calls return the current phase."""
        return self.submit(self._env(TX_CYCLE_CLOSE, caller, {}, now_ms))

    def distribute(self, cycle_id: int, *, caller: str = SYSTEM_ACTOR, now_ms: Optional[int] = None) -> Json:
        result = self.submit(self._env(TX_CYCLE_DISTRIBUTE, caller, {"cycle_id": cycle_id}, now_ms))
        for t in result.get("transfers") or []:
            log_event(log, "transfer_instruction", cycle_id=result["cycle_id"], **t)
        return result

    # ----------------------------
    # Queries (read-only)
    # ----------------------------

    def view(self) -> PoolView:
        return PoolView.from_ledger(self._store.read())

    def read_state(self) -> Json:
        return self._store.read()

    def get_cycle_phase(self) -> str:
        return self.view().get_cycle_phase()

    def get_cycle(self, cycle_id: Optional[int] = None) -> Json:
        return self.view().get_cycle(cycle_id)

    def get_tally(self, beneficiary_id: str, cycle_id: Optional[int] = None) -> int:
        return self.view().get_tally(beneficiary_id, cycle_id)

    def get_donor_power(self, donor_id: str, cycle_id: Optional[int] = None) -> int:
        return self.view().get_donor_power(donor_id, cycle_id)

    def get_payout(self, beneficiary_id: str, cycle_id: int) -> int:
        return self.view().get_payout(beneficiary_id, cycle_id)

    def get_audit_log(self, *, cycle_id: Optional[int] = None, after_seq: int = 0, limit: int = 1000) -> List[Json]:
        return self._store.read_audit(cycle_id=cycle_id, after_seq=after_seq, limit=limit)

    def verify_audit(self) -> ChainCheck:
        """Recompute the full audit chain and compare with the snapshot head."""
        events: List[Json] = []
        after = 0
        while True:
            page = self._store.read_audit(after_seq=after, limit=1000)
            if not page:
                break
            events.extend(page)
            after = int(page[-1]["seq"])
        check = verify_audit_chain(events)
        if not check.ok:
            return check
        head = self.view().audit_head
        tail = str(events[-1]["hash"]) if events else ""
        if head != tail:
            return ChainCheck(False, check.checked, int(events[-1]["seq"]) if events else 0, "head_mismatch")
        return check

    def check_invariants(self) -> List[str]:
        st = self._store.read()
        out: List[str] = []
        for rec in (st.get("cycles") or {}).values():
            if isinstance(rec, dict):
                out.extend(cycle_violations(rec, self.issuance))
        return out
