from __future__ import annotations

from typing import Iterable, Optional

from impactpool.runtime.collaborators import MemoryRewardLedger, RewardSink, StaticRegistry, StaticTrustedSource
from impactpool.runtime.engine import PoolEngine
from impactpool.runtime.memory_store import LedgerStore, MemoryLedgerStore

ADMIN = "admin"
ORACLE = "oracle"
DURATION_MS = 10_000


class FakeClock:
    def __init__(self, now_ms: int = 1_000) -> None:
        self.now_ms = int(now_ms)

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += int(ms)


def make_engine(
    *,
    store: Optional[LedgerStore] = None,
    verified: Iterable[str] = ("X", "Y", "a", "b", "c"),
    clock: Optional[FakeClock] = None,
    reward_sink: Optional[RewardSink] = None,
    auto_open_next: bool = False,
    pool_id: str = "pool-test",
    **kw,
) -> PoolEngine:
    return PoolEngine(
        store=store if store is not None else MemoryLedgerStore(),
        pool_id=pool_id,
        admin_id=ADMIN,
        registry=StaticRegistry(verified, registered_only=("pending",)),
        trusted=StaticTrustedSource(ORACLE),
        reward_sink=reward_sink if reward_sink is not None else MemoryRewardLedger(),
        cycle_duration_ms=DURATION_MS,
        auto_open_next=auto_open_next,
        clock=clock if clock is not None else FakeClock(),
        **kw,
    )


def run_reference_cycle(eng: PoolEngine) -> dict:
    """A=100 and B=400 all on X; oracle scores X=0, Y=100; close and distribute."""
    eng.open_cycle(ADMIN)
    eng.contribute("A", 100)
    eng.contribute("B", 400)
    eng.vote("A", "X", 100)
    eng.vote("B", "X", 400)
    eng.submit_impact(ORACLE, "X", 0, 1)
    eng.submit_impact(ORACLE, "Y", 100, 1)
    eng.close_cycle(ADMIN)
    return eng.distribute(1)
