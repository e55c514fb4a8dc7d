# src/impactpool/runtime/engine_boot.py

from __future__ import annotations

from typing import Optional

from impactpool.runtime.collaborators import (
    JsonFileRegistry,
    MemoryRewardLedger,
    Registry,
    StaticRegistry,
    StaticTrustedSource,
)
from impactpool.runtime.engine import PoolEngine
from impactpool.runtime.memory_store import LedgerStore, MemoryLedgerStore
from impactpool.runtime.pool_config import PoolConfig, load_pool_config
from impactpool.runtime.sqlite_db import SqliteDB, SqliteLedgerStore


def build_store(db_path: str) -> LedgerStore:
    p = str(db_path or "").strip()
    if p in {"", ":memory:"}:
        return MemoryLedgerStore()
    return SqliteLedgerStore(db=SqliteDB(path=p))


def build_registry(registry_path: str) -> Registry:
    p = str(registry_path or "").strip()
    if not p:
        # Fail-closed: with no registry configured nobody is verified.
        return StaticRegistry(())
    return JsonFileRegistry(p)


def build_engine(cfg: Optional[PoolConfig] = None) -> PoolEngine:
    """
    Build a PoolEngine from an explicit config or, if omitted, from
    IMPACTPOOL_CONFIG_PATH / IMPACTPOOL_* environment variables.
    """
    c = cfg or load_pool_config()
    return PoolEngine(
        store=build_store(c.db_path),
        pool_id=c.pool_id,
        admin_id=c.admin_id,
        registry=build_registry(c.registry_path),
        trusted=StaticTrustedSource(c.trusted_source),
        reward_sink=MemoryRewardLedger(),
        cycle_duration_ms=c.cycle_duration_ms,
        auto_open_next=c.auto_open_next,
    )
