from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request, Response

from impactpool import __version__
from impactpool.runtime.metrics import format_prometheus, metrics_enabled, set_gauge

router = APIRouter()

Json = Dict[str, Any]

# Current-cycle aggregates exported as gauges on each scrape.
_CYCLE_GAUGES = ("carry_in", "contributed_total", "total_tally", "total_score")


@router.get("/health")
def health(request: Request) -> Json:
    """Liveness plus a cheap readiness signal.

    Never raises: a missing or failing engine reports ready=false.
    """
    eng = getattr(request.app.state, "engine", None)
    out: Json = {"ok": True, "version": __version__, "ready": False}
    if eng is None:
        return out
    try:
        view = eng.view()
    except Exception as e:
        out["error"] = repr(e)
        return out
    out["ready"] = True
    out["pool_id"] = eng.pool_id
    out["cycle_id"] = view.current_cycle_id
    out["phase"] = view.get_cycle_phase()
    return out


@router.get("/metrics")
def metrics(request: Request) -> Response:
    """Prometheus-style metrics, including gauges for the current cycle.

    Disabled unless IMPACTPOOL_METRICS_ENABLED=1.
    """
    if not metrics_enabled():
        return Response(status_code=404, content="not_found\n", media_type="text/plain")

    eng = getattr(request.app.state, "engine", None)
    if eng is not None:
        cyc = eng.view().get_cycle()
        if cyc:
            set_gauge("current_cycle_id", int(cyc.get("id") or 0))
            for key in _CYCLE_GAUGES:
                set_gauge(f"cycle_{key}", int(cyc.get(key) or 0))
    return Response(content=format_prometheus(), media_type="text/plain")
