from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from _pool_helpers import ADMIN, ORACLE, make_engine
from impactpool.runtime import metrics


@pytest.fixture()
def client(monkeypatch: pytest.MonkeyPatch) -> TestClient:
    from impactpool.api import app as api_app

    monkeypatch.setenv("IMPACTPOOL_MODE", "dev")
    eng = make_engine()
    monkeypatch.setattr(api_app, "build_engine", lambda: eng)
    return TestClient(api_app.create_app(boot_runtime=True))


def _as(caller: str) -> dict:
    return {"X-Caller-Id": caller}


def test_full_cycle_over_http(client: TestClient) -> None:
    r = client.post("/v1/cycles/open", headers=_as(ADMIN))
    assert r.status_code == 200, r.text
    assert r.json()["cycle_id"] == 1

    assert client.post("/v1/contributions", json={"amount": 100}, headers=_as("A")).json()["power_granted"] == 100
    assert client.post("/v1/contributions", json={"amount": 400}, headers=_as("B")).status_code == 200
    assert client.post("/v1/votes", json={"beneficiary": "X", "power": 100}, headers=_as("A")).status_code == 200
    r = client.post("/v1/votes", json={"beneficiary": "X", "power": 400}, headers=_as("B"))
    assert r.json()["tally"] == 30

    for b, s in (("X", 0), ("Y", 100)):
        r = client.post("/v1/impact", json={"beneficiary": b, "score": s, "cycle_id": 1}, headers=_as(ORACLE))
        assert r.status_code == 200, r.text

    assert client.get("/v1/tallies/X").json()["tally"] == 30
    assert client.get("/v1/donors/A/power").json()["power"] == 0

    r = client.post("/v1/cycles/close", headers=_as(ADMIN))
    assert r.json()["phase"] == "closed"
    assert r.json()["total_pool"] == 500

    r = client.post("/v1/cycles/1/distribute", headers=_as("anyone"))
    assert r.status_code == 200, r.text
    assert r.json()["transfers"] == [{"beneficiary": "X", "amount": 350}, {"beneficiary": "Y", "amount": 150}]

    assert client.get("/v1/payouts/1/X").json()["amount"] == 350
    assert client.get("/v1/payouts/1/Y").json()["amount"] == 150

    cur = client.get("/v1/cycle").json()
    assert cur["cycle_id"] == 1
    assert cur["phase"] == "distributed"

    audit = client.get("/v1/audit", params={"verify": "1"}).json()
    assert audit["verify"]["ok"] is True
    assert len(audit["events"]) == 9
    assert audit["next_after_seq"] == 9


def test_pool_errors_map_to_http(client: TestClient) -> None:
    r = client.post("/v1/contributions", json={"amount": 5}, headers=_as("A"))
    assert r.status_code == 409
    assert r.json() == {
        "ok": False,
        "error": {"code": "phase_closed", "message": "no_cycle", "details": {}},
    }

    assert client.post("/v1/cycles/open", headers=_as("mallory")).status_code == 403
    client.post("/v1/cycles/open", headers=_as(ADMIN))

    r = client.post("/v1/votes", json={"beneficiary": "X", "power": 5}, headers=_as("A"))
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "insufficient_power"

    r = client.post("/v1/contributions", json={"amount": -5}, headers=_as("A"))
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "invalid_amount"

    client.post("/v1/contributions", json={"amount": 5}, headers=_as("A"))
    r = client.post("/v1/votes", json={"beneficiary": "ghost", "power": 1}, headers=_as("A"))
    assert r.status_code == 404

    r = client.post("/v1/impact", json={"beneficiary": "X", "score": 1, "cycle_id": 1}, headers=_as("A"))
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "untrusted_source"

    assert client.post("/v1/cycles/1/distribute", headers=_as("A")).status_code == 409
    assert client.get("/v1/cycles/42").status_code == 404


def test_missing_caller_header_is_401(client: TestClient) -> None:
    r = client.post("/v1/contributions", json={"amount": 5})
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "missing_caller"


def test_open_with_duration_body(client: TestClient) -> None:
    r = client.post("/v1/cycles/open", json={"duration_ms": 5000}, headers=_as(ADMIN))
    assert r.status_code == 200
    detail = client.get("/v1/cycles/1").json()["cycle"]
    assert detail["ends_at_ms"] - detail["opened_at_ms"] == 5000


def test_health_reports_phase(client: TestClient) -> None:
    j = client.get("/v1/health").json()
    assert j["ready"] is True
    assert j["pool_id"] == "pool-test"
    assert j["phase"] == "none"


def test_metrics_endpoint(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("IMPACTPOOL_METRICS_ENABLED", raising=False)
    assert client.get("/v1/metrics").status_code == 404

    metrics.reset()
    monkeypatch.setenv("IMPACTPOOL_METRICS_ENABLED", "1")
    client.post("/v1/cycles/open", headers=_as(ADMIN))
    r = client.get("/v1/metrics")
    assert r.status_code == 200
    assert "impactpool_applied_cycle_open_total 1" in r.text


def test_metrics_export_current_cycle_gauges(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("IMPACTPOOL_METRICS_ENABLED", "1")
    client.post("/v1/cycles/open", headers=_as(ADMIN))
    client.post("/v1/contributions", json={"amount": 12}, headers=_as("A"))
    client.post("/v1/contributions", json={"amount": 100}, headers=_as("B"))
    client.post("/v1/votes", json={"beneficiary": "X", "power": 100}, headers=_as("B"))

    lines = client.get("/v1/metrics").text.splitlines()
    assert "impactpool_cycle_contributed_total 112" in lines
    assert "impactpool_cycle_total_tally 10" in lines
    assert "impactpool_current_cycle_id 1" in lines
