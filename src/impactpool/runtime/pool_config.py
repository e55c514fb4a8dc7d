# src/impactpool/runtime/pool_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional

from impactpool.ledger.constants import DEFAULT_CYCLE_DURATION_MS

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return bool(default)
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


@dataclass(frozen=True)
class PoolConfig:
    pool_id: str
    mode: str  # "dev" | "testnet" | "prod"

    # Single SQLite DB file path ("" or ":memory:" selects the in-memory store).
    db_path: str

    # Identity allowed to open cycles and close them early.
    admin_id: str
    # Identity whose impact submissions are accepted (all cycles).
    trusted_source: str
    # JSON beneficiary registry file.
    registry_path: str

    cycle_duration_ms: int
    auto_open_next: bool

    api_host: str
    api_port: int

    log_level: str


_ALLOWED_MODES = {"dev", "testnet", "prod"}


def validate_pool_config(cfg: PoolConfig) -> None:
    """Fail-fast validation for operator config."""

    if not isinstance(cfg.pool_id, str) or not cfg.pool_id.strip():
        raise ValueError("pool_id must be a non-empty string")

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    if not str(cfg.admin_id or "").strip():
        raise ValueError("admin_id must be a non-empty string")

    if int(cfg.cycle_duration_ms) < 1_000:
        raise ValueError(f"cycle_duration_ms must be >= 1000; got: {cfg.cycle_duration_ms}")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if mode == "prod":
        if not str(cfg.trusted_source or "").strip():
            raise ValueError("trusted_source is required in prod")
        if not str(cfg.registry_path or "").strip():
            raise ValueError("registry_path is required in prod")
        if str(cfg.db_path or "").strip() in {"", ":memory:"}:
            raise ValueError("prod requires a durable db_path")


def default_pool_config() -> PoolConfig:
    return PoolConfig(
        pool_id="impactpool-dev",
        # Production-safe default: an unconfigured process must not silently
        # run in a permissive posture.
        mode="prod",
        db_path="./data/impactpool.db",
        admin_id="admin",
        trusted_source="",
        registry_path="",
        cycle_duration_ms=DEFAULT_CYCLE_DURATION_MS,
        auto_open_next=True,
        api_host="127.0.0.1",
        api_port=8080,
        log_level="INFO",
    )


def _from_mapping(raw: Json, base: PoolConfig) -> PoolConfig:
    return PoolConfig(
        pool_id=_as_str(raw.get("pool_id"), base.pool_id),
        mode=_as_str(raw.get("mode"), base.mode).strip().lower(),
        db_path=_as_str(raw.get("db_path"), base.db_path),
        admin_id=_as_str(raw.get("admin_id"), base.admin_id),
        trusted_source=_as_str(raw.get("trusted_source"), base.trusted_source),
        registry_path=_as_str(raw.get("registry_path"), base.registry_path),
        cycle_duration_ms=_as_int(raw.get("cycle_duration_ms"), base.cycle_duration_ms),
        auto_open_next=_as_bool(raw.get("auto_open_next"), base.auto_open_next),
        api_host=_as_str(raw.get("api_host"), base.api_host),
        api_port=_as_int(raw.get("api_port"), base.api_port),
        log_level=_as_str(raw.get("log_level"), base.log_level).strip().upper(),
    )


def read_pool_config_file(path: str) -> PoolConfig:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("pool config must be a JSON object")
    return _from_mapping(raw, default_pool_config())


_ENV_KEYS = {
    "pool_id": "IMPACTPOOL_POOL_ID",
    "mode": "IMPACTPOOL_MODE",
    "db_path": "IMPACTPOOL_DB_PATH",
    "admin_id": "IMPACTPOOL_ADMIN_ID",
    "trusted_source": "IMPACTPOOL_TRUSTED_SOURCE",
    "registry_path": "IMPACTPOOL_REGISTRY_PATH",
    "cycle_duration_ms": "IMPACTPOOL_CYCLE_DURATION_MS",
    "auto_open_next": "IMPACTPOOL_AUTO_OPEN_NEXT",
    "api_host": "IMPACTPOOL_API_HOST",
    "api_port": "IMPACTPOOL_API_PORT",
    "log_level": "IMPACTPOOL_LOG_LEVEL",
}


def _env_overrides() -> Json:
    out: Json = {}
    for key, env_name in _ENV_KEYS.items():
        v = os.environ.get(env_name)
        if v is not None and v.strip():
            out[key] = v.strip()
    return out


def load_pool_config(*, config_path: Optional[str] = None) -> PoolConfig:
    """Defaults <- JSON file (IMPACTPOOL_CONFIG_PATH) <- IMPACTPOOL_* env vars."""
    p = config_path or os.environ.get("IMPACTPOOL_CONFIG_PATH")
    cfg = read_pool_config_file(p) if p else default_pool_config()

    overrides = _env_overrides()
    if overrides:
        cfg = _from_mapping(overrides, cfg)

    validate_pool_config(cfg)
    return cfg


def with_overrides(cfg: PoolConfig, **changes: Any) -> PoolConfig:
    out = replace(cfg, **changes)
    validate_pool_config(out)
    return out
