# src/impactpool/ledger/audit.py
from __future__ import annotations

"""Hash-chained audit trail for ledger mutations.

Every committed mutation emits one or more events. Each event links to the
previous one through `prev`, and `hash` is sha256 over the canonical JSON of
the event without its own hash. The chain head is kept in the ledger snapshot
so a store can persist events and snapshot in the same transaction.

State assumptions:
  state["audit"]["seq"]:  last emitted sequence number (int)
  state["audit"]["head"]: hash of the last emitted event ("" at genesis)
"""

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

Json = Dict[str, Any]

GENESIS_HEAD: str = ""


def canon_json(obj: Any) -> str:
    """Canonical JSON encoding. Unknown types fail fast."""
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def event_hash(event: Json) -> str:
    body = {k: v for k, v in event.items() if k != "hash"}
    return hashlib.sha256(canon_json(body).encode("utf-8")).hexdigest()


def _ensure_audit_root(state: Json) -> Json:
    a = state.get("audit")
    if not isinstance(a, dict):
        a = {}
        state["audit"] = a
    a.setdefault("seq", 0)
    a.setdefault("head", GENESIS_HEAD)
    return a


@dataclass
class AuditTrail:
    """Collects chained events for one mutation.

    The trail advances state["audit"] as events are emitted, so an aborted
    mutation (whose state copy is discarded) leaves the chain untouched.
    """

    now_ms: int
    events: List[Json] = field(default_factory=list)

    def emit(self, state: Json, kind: str, *, cycle_id: int, actor: str, **fields: Any) -> Json:
        root = _ensure_audit_root(state)
        seq = int(root.get("seq", 0)) + 1
        ev: Json = {
            "seq": seq,
            "kind": str(kind),
            "cycle_id": int(cycle_id),
            "actor": str(actor),
            "ts_ms": int(self.now_ms),
            "fields": dict(fields),
            "prev": str(root.get("head") or GENESIS_HEAD),
        }
        ev["hash"] = event_hash(ev)
        root["seq"] = seq
        root["head"] = ev["hash"]
        self.events.append(ev)
        return ev


@dataclass(frozen=True)
class ChainCheck:
    ok: bool
    checked: int
    broken_at: Optional[int] = None
    reason: str = ""


def verify_audit_chain(events: Iterable[Json], *, start_head: str = GENESIS_HEAD) -> ChainCheck:
    """Recompute the chain over events ordered by seq.

    Returns the seq of the first event whose link or hash does not verify.
    """
    prev = str(start_head or GENESIS_HEAD)
    expected_seq: Optional[int] = None
    n = 0
    for ev in events:
        seq = int(ev.get("seq", 0))
        if expected_seq is not None and seq != expected_seq:
            return ChainCheck(False, n, seq, "seq_gap")
        if str(ev.get("prev") or "") != prev:
            return ChainCheck(False, n, seq, "prev_mismatch")
        if event_hash(ev) != str(ev.get("hash") or ""):
            return ChainCheck(False, n, seq, "hash_mismatch")
        prev = str(ev["hash"])
        expected_seq = seq + 1
        n += 1
    return ChainCheck(True, n)
