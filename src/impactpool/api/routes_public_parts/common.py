from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Request

from impactpool.api.errors import ApiError

Json = Dict[str, Any]

CALLER_HEADER = "x-caller-id"


def _engine(request: Request):
    eng = getattr(request.app.state, "engine", None)
    if eng is None:
        raise ApiError.internal("not_ready", "engine not attached to app.state", {})
    return eng


def _caller(request: Request) -> str:
    """Authenticated caller identity.

    Identity is established upstream (gateway / auth proxy) and forwarded in
    the X-Caller-Id header. Requests without it are rejected before they reach
    the ledger.
    """
    c = str(request.headers.get(CALLER_HEADER) or "").strip()
    if not c:
        raise ApiError.unauthenticated("missing_caller", "X-Caller-Id header is required", {})
    return c


def _int_param(v: Any, default: int) -> int:
    """Parse an int-ish query param safely."""
    if v is None:
        return int(default)
    try:
        s = str(v).strip()
        if s == "":
            return int(default)
        return int(s)
    except Exception:
        return int(default)


def _opt_int_param(v: Any) -> Optional[int]:
    if v is None or str(v).strip() == "":
        return None
    try:
        return int(str(v).strip())
    except ValueError:
        raise ApiError.bad_request("bad_param", "expected an integer", {"value": str(v)})
