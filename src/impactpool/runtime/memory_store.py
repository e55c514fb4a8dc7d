from __future__ import annotations

import copy
import threading
from typing import Any, Dict, List, Optional, Protocol

from impactpool.runtime.sqlite_db import Mutation

Json = Dict[str, Any]


class LedgerStore(Protocol):
    def exists(self) -> bool: ...

    def read(self) -> Json: ...

    def write(self, st: Json) -> None: ...

    def update(self, mut: Mutation) -> Any: ...

    def read_audit(self, *, cycle_id: Optional[int] = None, after_seq: int = 0, limit: int = 1000) -> List[Json]: ...


class MemoryLedgerStore:
    """Process-local ledger store with the same contract as SqliteLedgerStore.

    update() runs the mutation on a deep copy under a lock and swaps it in
    only if the mutation returns, so a rejected operation leaves no trace.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._state: Optional[Json] = None
        self._audit: List[Json] = []

    def exists(self) -> bool:
        with self._lock:
            return self._state is not None

    def read(self) -> Json:
        with self._lock:
            if self._state is None:
                raise FileNotFoundError("memory ledger_state is missing")
            return copy.deepcopy(self._state)

    def write(self, st: Json) -> None:
        if not isinstance(st, dict):
            raise ValueError("ledger write expects dict")
        with self._lock:
            self._state = copy.deepcopy(st)

    def update(self, mut: Mutation) -> Any:
        with self._lock:
            if self._state is None:
                raise FileNotFoundError("memory ledger_state is missing")
            work = copy.deepcopy(self._state)
            result, events = mut(work)
            self._audit.extend(copy.deepcopy(list(events)))
            self._state = work
            return result

    def read_audit(self, *, cycle_id: Optional[int] = None, after_seq: int = 0, limit: int = 1000) -> List[Json]:
        with self._lock:
            out = [
                copy.deepcopy(ev)
                for ev in self._audit
                if int(ev.get("seq", 0)) > int(after_seq) and (cycle_id is None or int(ev.get("cycle_id", 0)) == int(cycle_id))
            ]
        return out[: max(1, int(limit))]
