from __future__ import annotations

import logging
import os
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from impactpool.api.errors import ApiError
from impactpool.api.routes_public import public_router
from impactpool.api.security import RequestSizeLimitMiddleware
from impactpool.api.structured_logging import RequestLogMiddleware, configure_structured_logging
from impactpool.runtime.engine_boot import build_engine as _build_engine
from impactpool.runtime.errors import PoolError
from impactpool.runtime.runtime_logging import log_event

log = logging.getLogger("impactpool.api")


def build_engine():
    """Build a PoolEngine for API runtime.

    This wrapper exists so tests can monkeypatch `impactpool.api.app.build_engine`
    without reaching into runtime modules.
    """
    return _build_engine()


def create_app(*, boot_runtime: bool = True, log_level: Optional[str] = None) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load pool config + attach engine
      - False: keep lightweight for unit tests / import-time validation

    log_level overrides IMPACTPOOL_LOG_LEVEL for the JSON logs.
    """
    mode = os.environ.get("IMPACTPOOL_MODE", "prod").strip().lower()
    configure_structured_logging(log_level)

    # Disable docs in production.
    if mode == "prod":
        app = FastAPI(title="ImpactPool API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="ImpactPool API")

    app.state.engine = build_engine() if boot_runtime else None

    @app.exception_handler(ApiError)
    async def _api_error(request: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_json())

    @app.exception_handler(PoolError)
    async def _pool_error(request: Request, exc: PoolError) -> JSONResponse:
        err = ApiError.from_pool_error(exc)
        if err.status_code >= 500:
            log_event(log, "pool_error", level=logging.ERROR, path=str(request.url.path), code=exc.code, reason=exc.reason)
        return JSONResponse(status_code=err.status_code, content=err.to_json())

    # --- Middleware ---
    # Added last runs first: request logging wraps the size limiter.
    app.add_middleware(RequestSizeLimitMiddleware)
    app.add_middleware(RequestLogMiddleware)

    # --- Routers ---
    app.include_router(public_router)

    return app
