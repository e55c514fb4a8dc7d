from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

# Mutating operation types routed by domain_dispatch.
TX_CONTRIBUTE = "CONTRIBUTE"
TX_VOTE = "VOTE"
TX_IMPACT_SUBMIT = "IMPACT_SUBMIT"
TX_CYCLE_OPEN = "CYCLE_OPEN"
TX_CYCLE_CLOSE = "CYCLE_CLOSE"
TX_CYCLE_DISTRIBUTE = "CYCLE_DISTRIBUTE"


@dataclass(frozen=True)
class TxEnvelope:
    """An authenticated mutating operation.

    `caller` is the identity the host already authenticated; this core never
    verifies signatures. `ts_ms` is the host's clock at admission.
    """

    tx_type: str
    caller: str
    payload: Dict[str, Any]
    ts_ms: int

    @staticmethod
    def from_json(j: Any) -> "TxEnvelope":
        if isinstance(j, TxEnvelope):
            return j
        if not isinstance(j, dict):
            j = dict(j)  # type: ignore[arg-type]
        return TxEnvelope(
            tx_type=str(j.get("tx_type", "")).strip().upper(),
            caller=str(j.get("caller", "")).strip(),
            payload=dict(j.get("payload", {}) or {}),
            ts_ms=int(j.get("ts_ms", 0) or 0),
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "tx_type": self.tx_type,
            "caller": self.caller,
            "payload": self.payload,
            "ts_ms": self.ts_ms,
        }
