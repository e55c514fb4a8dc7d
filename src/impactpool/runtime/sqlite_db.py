# src/impactpool/runtime/sqlite_db.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from impactpool.ledger.audit import canon_json

Json = Dict[str, Any]

# A ledger mutation returns (result, audit_events).
Mutation = Callable[[Json], Tuple[Any, Sequence[Json]]]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _env_int(name: str, default: int) -> int:
    try:
        raw = str(os.environ.get(name, "")).strip()
        return int(raw) if raw else int(default)
    except Exception:
        return int(default)


class SqliteDB:
    """SQLite manager for the pool ledger.

    Design goals:
      - one durable DB file holding the ledger snapshot and the audit log
      - cross-process safe (SQLite locks)
      - cross-thread safe by never sharing connections

    SQLite allows one writer at a time. BEGIN IMMEDIATE can transiently fail
    with "database is locked" under multi-process load, so write_tx() retries
    lock acquisition until a bounded deadline and then fails closed.
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    @staticmethod
    def _sqlite_synchronous_pragma() -> str:
        """PRAGMA synchronous value.

        Defaults: FULL in prod, NORMAL in dev/testnet.
        Override with IMPACTPOOL_SQLITE_SYNCHRONOUS in {OFF,NORMAL,FULL,EXTRA}.
        """
        mode = (os.environ.get("IMPACTPOOL_MODE") or "prod").strip().lower()
        default = "FULL" if mode == "prod" else "NORMAL"
        raw = (os.environ.get("IMPACTPOOL_SQLITE_SYNCHRONOUS") or default).strip().upper()
        if raw not in {"OFF", "NORMAL", "FULL", "EXTRA"}:
            raw = default
        return raw

    def ensure_parent_dir(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        self.ensure_parent_dir()

        connect_timeout_s = float(_env_int("IMPACTPOOL_SQLITE_CONNECT_TIMEOUT_MS", 30_000)) / 1000.0
        con = sqlite3.connect(
            self.path,
            timeout=connect_timeout_s,
            isolation_level=None,  # BEGIN/COMMIT are explicit
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        # WAL is required unless explicitly waived.
        allow_non_wal = (os.environ.get("IMPACTPOOL_SQLITE_ALLOW_NON_WAL") or "").strip().lower() in {"1", "true"}
        row = con.execute("PRAGMA journal_mode=WAL;").fetchone()
        mode = str(row[0]).strip().lower() if row is not None else ""
        if mode and mode != "wal" and not allow_non_wal:
            con.close()
            raise RuntimeError(f"sqlite journal_mode is '{mode}', expected 'wal'")

        con.execute(f"PRAGMA synchronous={self._sqlite_synchronous_pragma()};")
        con.execute("PRAGMA foreign_keys=ON;")
        con.execute("PRAGMA temp_store=MEMORY;")
        con.execute(f"PRAGMA wal_autocheckpoint={max(1, _env_int('IMPACTPOOL_SQLITE_WAL_AUTOCHECKPOINT', 1000))};")
        con.execute(
            f"PRAGMA journal_size_limit={max(0, _env_int('IMPACTPOOL_SQLITE_JOURNAL_SIZE_LIMIT', 64 * 1024 * 1024))};"
        )
        # Negative cache_size means KiB.
        con.execute(f"PRAGMA cache_size={-max(0, _env_int('IMPACTPOOL_SQLITE_CACHE_SIZE_KIB', 16 * 1024))};")
        busy_ms = _env_int("IMPACTPOOL_SQLITE_BUSY_TIMEOUT_MS", int(connect_timeout_s * 1000))
        con.execute(f"PRAGMA busy_timeout={max(0, busy_ms)};")
        return con

    def init_schema(self) -> None:
        with self.write_tx() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS meta (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS ledger_state (
                  id INTEGER PRIMARY KEY CHECK (id = 1),
                  current_cycle_id INTEGER NOT NULL,
                  audit_head TEXT NOT NULL,
                  state_json TEXT NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS audit_log (
                  seq INTEGER PRIMARY KEY,
                  cycle_id INTEGER NOT NULL,
                  kind TEXT NOT NULL,
                  hash TEXT NOT NULL UNIQUE,
                  event_json TEXT NOT NULL,
                  created_ts_ms INTEGER NOT NULL
                );
                """
            )
            con.execute("CREATE INDEX IF NOT EXISTS idx_audit_cycle ON audit_log(cycle_id, seq);")

            row = con.execute("SELECT value FROM meta WHERE key='schema_version' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
            else:
                try:
                    v = int(str(row["value"]))
                except ValueError:
                    v = 0
                if v != self.SCHEMA_VERSION:
                    raise RuntimeError(
                        f"sqlite schema_version mismatch: have={v} want={self.SCHEMA_VERSION}. "
                        "Refuse to start to avoid corrupting data."
                    )

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            yield con
        finally:
            con.close()

    @staticmethod
    def _is_locked_error(e: Exception) -> bool:
        msg = str(e).lower()
        return "database is locked" in msg or "database is busy" in msg

    def _sleep_backoff(self, attempt: int) -> None:
        base_s = max(0.001, _env_int("IMPACTPOOL_SQLITE_WRITE_BACKOFF_BASE_MS", 5) / 1000.0)
        max_s = max(base_s, _env_int("IMPACTPOOL_SQLITE_WRITE_BACKOFF_MAX_MS", 250) / 1000.0)
        sleep_s = min(max_s, base_s * (2.0 ** min(attempt, 8)))
        time.sleep(sleep_s * (0.5 + random.random()))

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """Open a write transaction.

        Lock acquisition (BEGIN IMMEDIATE) and COMMIT are retried with
        jittered exponential backoff until IMPACTPOOL_SQLITE_WRITE_DEADLINE_MS;
        past the deadline the OperationalError propagates. Any exception from
        the body rolls the transaction back.
        """
        deadline_ts = _now_ms() + max(250, _env_int("IMPACTPOOL_SQLITE_WRITE_DEADLINE_MS", 30_000))

        with self.connection() as con:
            attempt = 0
            while True:
                try:
                    con.execute("BEGIN IMMEDIATE;")
                    break
                except sqlite3.OperationalError as e:
                    if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                        raise
                    self._sleep_backoff(attempt)
                    attempt += 1

            try:
                yield con
                attempt = 0
                while True:
                    try:
                        con.execute("COMMIT;")
                        break
                    except sqlite3.OperationalError as e:
                        if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                            raise
                        self._sleep_backoff(attempt)
                        attempt += 1
            except BaseException:
                if con.in_transaction:
                    con.execute("ROLLBACK;")
                raise


def _decode_state(row: Optional[sqlite3.Row]) -> Json:
    if row is None:
        raise FileNotFoundError("sqlite ledger_state is missing")
    st = json.loads(str(row["state_json"]))
    if not isinstance(st, dict):
        raise ValueError("ledger_state is not a JSON object")
    return st


class SqliteLedgerStore:
    """Ledger snapshot + audit log persisted in SQLite.

    This provides:
      - read(): load the latest snapshot
      - write(st): overwrite the snapshot (bootstrap only)
      - update(mut): read-modify-write inside one write transaction; the
        audit events returned by `mut` are appended in the same transaction
      - read_audit(): ordered audit events, optionally for one cycle

    The authoritative snapshot is a single row, so one write transaction
    serializes every mutation against every other.
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    def exists(self) -> bool:
        with self._db.connection() as con:
            return con.execute("SELECT 1 FROM ledger_state WHERE id=1;").fetchone() is not None

    def read(self) -> Json:
        with self._db.connection() as con:
            return _decode_state(con.execute("SELECT state_json FROM ledger_state WHERE id=1;").fetchone())

    @staticmethod
    def _upsert(con: sqlite3.Connection, st: Json) -> None:
        audit = st.get("audit") if isinstance(st.get("audit"), dict) else {}
        con.execute(
            """
            INSERT INTO ledger_state(id, current_cycle_id, audit_head, state_json, updated_ts_ms)
            VALUES(1, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
              current_cycle_id=excluded.current_cycle_id,
              audit_head=excluded.audit_head,
              state_json=excluded.state_json,
              updated_ts_ms=excluded.updated_ts_ms;
            """,
            (
                int(st.get("current_cycle_id", 0) or 0),
                str(audit.get("head") or ""),
                canon_json(st),
                _now_ms(),
            ),
        )

    def write(self, st: Json) -> None:
        if not isinstance(st, dict):
            raise ValueError("ledger write expects dict")
        with self._db.write_tx() as con:
            self._upsert(con, st)

    def update(self, mut: Mutation) -> Any:
        with self._db.write_tx() as con:
            st = _decode_state(con.execute("SELECT state_json FROM ledger_state WHERE id=1;").fetchone())
            result, events = mut(st)
            for ev in events:
                con.execute(
                    "INSERT INTO audit_log(seq, cycle_id, kind, hash, event_json, created_ts_ms) VALUES(?, ?, ?, ?, ?, ?);",
                    (int(ev["seq"]), int(ev["cycle_id"]), str(ev["kind"]), str(ev["hash"]), canon_json(ev), _now_ms()),
                )
            self._upsert(con, st)
            return result

    def read_audit(self, *, cycle_id: Optional[int] = None, after_seq: int = 0, limit: int = 1000) -> List[Json]:
        q = "SELECT event_json FROM audit_log WHERE seq > ?"
        args: List[Any] = [int(after_seq)]
        if cycle_id is not None:
            q += " AND cycle_id = ?"
            args.append(int(cycle_id))
        q += " ORDER BY seq ASC LIMIT ?;"
        args.append(max(1, int(limit)))
        with self._db.connection() as con:
            return [json.loads(str(r["event_json"])) for r in con.execute(q, args).fetchall()]
