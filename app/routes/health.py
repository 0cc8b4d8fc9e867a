# app/routes/health.py
"""
Health check endpoints.
"""

import time

from fastapi import APIRouter

from app.config import settings
from app.services.redis_client import redis_client

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "prospect-crm-companion"}


@router.get("/readyz")
async def readyz():
    """
    Readiness check: CRM credentials, summarizer, and the cache backend.
    A missing summarizer key is reported but doesn't fail readiness.
    """
    checks = {}
    overall_ok = True

    # 1) HubSpot configuration
    hubspot_ok = settings.hubspot_configured()
    checks["hubspot"] = {
        "ok": hubspot_ok,
        "error": None if hubspot_ok else "HUBSPOT_ACCESS_TOKEN not set",
    }
    overall_ok = overall_ok and hubspot_ok

    # 2) Summarizer configuration
    checks["summarizer"] = {
        "ok": True,
        "enabled": settings.summarizer_configured(),
        "model": settings.OPENAI_MODEL,
    }

    # 3) Cache backend
    backend = settings.ENGAGEMENT_CACHE_BACKEND
    if backend == "redis":
        t0 = time.time()
        try:
            redis_ok = await redis_client.ping()
            checks["cache"] = {
                "ok": bool(redis_ok),
                "backend": backend,
                "latency_ms": round((time.time() - t0) * 1000, 1),
            }
            overall_ok = overall_ok and bool(redis_ok)
        except Exception as e:
            checks["cache"] = {"ok": False, "backend": backend, "error": f"{type(e).__name__}: {e}"}
            overall_ok = False
    else:
        checks["cache"] = {"ok": True, "backend": backend}

    checks["configuration"] = {
        "environment": settings.environment,
        "engagements_limit": settings.HUBSPOT_ENGAGEMENTS_LIMIT,
        "cache_ttl_seconds": settings.ENGAGEMENT_CACHE_TTL_SECONDS,
    }

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
