from __future__ import annotations

import multiprocessing as mp
from pathlib import Path

import pytest

from impactpool.runtime.sqlite_db import SqliteDB, SqliteLedgerStore


def _worker(db_path: str, n: int) -> None:
    db = SqliteDB(path=db_path)
    db.init_schema()
    store = SqliteLedgerStore(db=db)

    def bump(st: dict):
        v = st.get("value")
        try:
            iv = int(v)
        except Exception:
            iv = 0
        st["value"] = iv + 1
        return None, []

    for _ in range(int(n)):
        store.update(bump)


def test_sqlite_ledger_store_update_is_cross_process_safe(tmp_path: Path) -> None:
    """Prove SqliteLedgerStore.update() provides a correct cross-process RMW.

    Multiple processes increment a shared counter stored inside SQLite.
    The final value must match exactly.
    """
    db_path = str(tmp_path / "impactpool_test.db")
    db = SqliteDB(path=db_path)
    db.init_schema()
    store = SqliteLedgerStore(db=db)

    store.write({"value": 0, "current_cycle_id": 0})

    procs: list[mp.Process] = []
    workers = 4
    per = 100

    for _ in range(workers):
        pr = mp.Process(target=_worker, args=(db_path, per))
        pr.start()
        procs.append(pr)

    for pr in procs:
        pr.join(60)
        assert pr.exitcode == 0

    final = store.read()
    assert int(final.get("value", -1)) == workers * per


def test_failed_mutation_rolls_back_state_and_events(tmp_path: Path) -> None:
    store = SqliteLedgerStore(db=SqliteDB(path=str(tmp_path / "rb.db")))
    store.write({"value": 1, "current_cycle_id": 0})

    def boom(st: dict):
        st["value"] = 99
        return None, [{"seq": 1, "cycle_id": 0, "kind": "x", "hash": "h1"}]

    def fail_after_write(st: dict):
        boom(st)
        raise RuntimeError("abort")

    with pytest.raises(RuntimeError):
        store.update(fail_after_write)

    assert store.read()["value"] == 1
    assert store.read_audit() == []


def test_events_commit_with_snapshot(tmp_path: Path) -> None:
    store = SqliteLedgerStore(db=SqliteDB(path=str(tmp_path / "ok.db")))
    store.write({"value": 1, "current_cycle_id": 3})

    def bump(st: dict):
        st["value"] = 2
        st["audit"] = {"seq": 1, "head": "h1"}
        return "done", [{"seq": 1, "cycle_id": 3, "kind": "x", "hash": "h1"}]

    assert store.update(bump) == "done"
    assert store.read()["value"] == 2
    assert [e["hash"] for e in store.read_audit(cycle_id=3)] == ["h1"]
    assert store.read_audit(cycle_id=4) == []

    # Duplicate audit hash violates the UNIQUE constraint and aborts the write.
    def dup(st: dict):
        st["value"] = 3
        return None, [{"seq": 2, "cycle_id": 3, "kind": "x", "hash": "h1"}]

    with pytest.raises(Exception):
        store.update(dup)
    assert store.read()["value"] == 2
