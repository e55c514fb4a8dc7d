from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient


class _FakeEngine(SimpleNamespace):
    """Minimal engine stub for API lifecycle tests."""


def test_create_app_boot_runtime_false_does_not_attach_engine() -> None:
    from impactpool.api.app import create_app

    app = create_app(boot_runtime=False)
    assert getattr(app.state, "engine", None) is None

    # App should still be startable for route/middleware tests.
    with TestClient(app) as client:
        r = client.get("/v1/health")
        assert r.status_code == 200
        assert r.json()["ready"] is False

        r = client.get("/v1/cycle")
        assert r.status_code == 500
        assert r.json()["error"]["code"] == "not_ready"


def test_create_app_boot_runtime_true_attaches_engine(monkeypatch: pytest.MonkeyPatch) -> None:
    from impactpool.api import app as api_app

    def _fake_build_engine():
        return _FakeEngine(pool_id="pool-test")

    monkeypatch.setattr(api_app, "build_engine", _fake_build_engine)

    app = api_app.create_app(boot_runtime=True)
    assert getattr(app.state, "engine", None) is not None
    assert getattr(app.state.engine, "pool_id", "") == "pool-test"

    with TestClient(app) as _client:
        pass


def test_docs_disabled_in_prod(monkeypatch: pytest.MonkeyPatch) -> None:
    from impactpool.api.app import create_app

    monkeypatch.setenv("IMPACTPOOL_MODE", "prod")
    assert TestClient(create_app(boot_runtime=False)).get("/openapi.json").status_code == 404

    monkeypatch.setenv("IMPACTPOOL_MODE", "dev")
    assert TestClient(create_app(boot_runtime=False)).get("/openapi.json").status_code == 200


def test_log_level_argument_reaches_json_logs(monkeypatch: pytest.MonkeyPatch) -> None:
    import logging

    from impactpool.api.app import create_app

    monkeypatch.delenv("IMPACTPOOL_LOG_LEVEL", raising=False)
    root = logging.getLogger()
    try:
        create_app(boot_runtime=False, log_level="DEBUG")
        assert root.level == logging.DEBUG
        ours = [h for h in root.handlers if getattr(h, "_impactpool_handler", False)]
        assert all(h.level == logging.DEBUG for h in ours)

        create_app(boot_runtime=False)
        assert root.level == logging.INFO
    finally:
        create_app(boot_runtime=False)
