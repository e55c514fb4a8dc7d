# src/impactpool/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from impactpool.api.routes_public_parts.contributions import router as contributions_router
from impactpool.api.routes_public_parts.cycles import router as cycles_router
from impactpool.api.routes_public_parts.health import router as health_router
from impactpool.api.routes_public_parts.queries import router as queries_router

public_router = APIRouter()

# Versioned API surface
public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(cycles_router, prefix="/v1", tags=["cycles"])
public_router.include_router(contributions_router, prefix="/v1", tags=["ledger"])
public_router.include_router(queries_router, prefix="/v1", tags=["queries"])
