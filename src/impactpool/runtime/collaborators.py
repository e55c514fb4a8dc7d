# src/impactpool/runtime/collaborators.py
from __future__ import annotations

"""Narrow interfaces to the systems this core does not own.

  - Registry:            is a beneficiary registered and verified?
  - TrustedSourceConfig: which identity may attest impact for a cycle?
  - RewardSink:          credit reward tokens to a donor (fire-and-forget)

Each is a Protocol with a single method; stock implementations are provided
for tests and single-node deployments.
"""

import json
import threading
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional, Protocol


class Registry(Protocol):
    def is_registered_and_verified(self, beneficiary_id: str) -> bool: ...


class TrustedSourceConfig(Protocol):
    def trusted_source_for(self, cycle_id: int) -> str: ...


class RewardSink(Protocol):
    def credit_reward(self, donor_id: str, amount: int) -> None: ...


class StaticRegistry:
    """In-memory registry. Unknown ids are neither registered nor verified."""

    def __init__(self, verified: Iterable[str] = (), *, registered_only: Iterable[str] = ()) -> None:
        self._verified = {str(b).strip() for b in verified if str(b).strip()}
        self._registered = set(self._verified) | {str(b).strip() for b in registered_only if str(b).strip()}

    def is_registered_and_verified(self, beneficiary_id: str) -> bool:
        b = str(beneficiary_id or "").strip()
        return b in self._registered and b in self._verified


class JsonFileRegistry:
    """Registry read from a JSON file.

    Expected shape:
      {"beneficiaries": {"<id>": {"registered": true, "verified": true}, ...}}

    The file is re-read when its mtime changes. Fail-closed: a missing or
    malformed file verifies nobody.
    """

    def __init__(self, path: str) -> None:
        self.path = str(path)
        self._lock = threading.Lock()
        self._mtime: Optional[float] = None
        self._records: Dict[str, Mapping[str, object]] = {}

    def _reload_if_changed(self) -> None:
        p = Path(self.path)
        try:
            mtime = p.stat().st_mtime
        except OSError:
            self._mtime = None
            self._records = {}
            return
        if self._mtime == mtime:
            return
        try:
            raw = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            self._records = {}
            self._mtime = mtime
            return
        recs = raw.get("beneficiaries") if isinstance(raw, dict) else None
        self._records = {str(k): v for k, v in recs.items() if isinstance(v, dict)} if isinstance(recs, dict) else {}
        self._mtime = mtime

    def is_registered_and_verified(self, beneficiary_id: str) -> bool:
        with self._lock:
            self._reload_if_changed()
            rec = self._records.get(str(beneficiary_id or "").strip())
        if not rec:
            return False
        return bool(rec.get("registered", False)) and bool(rec.get("verified", False))


class StaticTrustedSource:
    """One trusted source for every cycle, with optional per-cycle overrides."""

    def __init__(self, default: str, *, per_cycle: Optional[Mapping[int, str]] = None) -> None:
        self._default = str(default or "").strip()
        self._per_cycle = {int(k): str(v).strip() for k, v in (per_cycle or {}).items()}

    def trusted_source_for(self, cycle_id: int) -> str:
        return self._per_cycle.get(int(cycle_id), self._default)


class MemoryRewardLedger:
    """Mintable balance store for reward tokens."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._balances: Dict[str, int] = {}

    def credit_reward(self, donor_id: str, amount: int) -> None:
        a = int(amount)
        if a <= 0:
            return
        with self._lock:
            self._balances[donor_id] = self._balances.get(donor_id, 0) + a

    def balance_of(self, donor_id: str) -> int:
        with self._lock:
            return int(self._balances.get(donor_id, 0))


class NullRewardSink:
    def credit_reward(self, donor_id: str, amount: int) -> None:
        return None
