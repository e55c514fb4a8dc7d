from __future__ import annotations

import json
import os
from pathlib import Path

from impactpool.runtime.collaborators import JsonFileRegistry, MemoryRewardLedger, StaticRegistry, StaticTrustedSource


def _write(p: Path, obj: object, mtime: float) -> None:
    p.write_text(json.dumps(obj), encoding="utf-8")
    os.utime(p, (mtime, mtime))


def test_json_registry_requires_registered_and_verified(tmp_path: Path) -> None:
    p = tmp_path / "registry.json"
    _write(
        p,
        {
            "beneficiaries": {
                "ok": {"registered": True, "verified": True},
                "unverified": {"registered": True, "verified": False},
                "bad": "not-a-record",
            }
        },
        1_000_000,
    )
    reg = JsonFileRegistry(str(p))
    assert reg.is_registered_and_verified("ok") is True
    assert reg.is_registered_and_verified("unverified") is False
    assert reg.is_registered_and_verified("bad") is False
    assert reg.is_registered_and_verified("missing") is False


def test_json_registry_reloads_on_change(tmp_path: Path) -> None:
    p = tmp_path / "registry.json"
    _write(p, {"beneficiaries": {}}, 1_000_000)
    reg = JsonFileRegistry(str(p))
    assert reg.is_registered_and_verified("late") is False

    _write(p, {"beneficiaries": {"late": {"registered": True, "verified": True}}}, 1_000_100)
    assert reg.is_registered_and_verified("late") is True


def test_json_registry_fails_closed(tmp_path: Path) -> None:
    missing = JsonFileRegistry(str(tmp_path / "nope.json"))
    assert missing.is_registered_and_verified("ok") is False

    p = tmp_path / "broken.json"
    p.write_text("{not json", encoding="utf-8")
    assert JsonFileRegistry(str(p)).is_registered_and_verified("ok") is False


def test_static_collaborators() -> None:
    reg = StaticRegistry(["a"], registered_only=["b"])
    assert reg.is_registered_and_verified("a")
    assert not reg.is_registered_and_verified("b")

    ts = StaticTrustedSource("oracle", per_cycle={3: "other"})
    assert ts.trusted_source_for(1) == "oracle"
    assert ts.trusted_source_for(3) == "other"

    sink = MemoryRewardLedger()
    sink.credit_reward("d", 5)
    sink.credit_reward("d", 0)
    assert sink.balance_of("d") == 5
