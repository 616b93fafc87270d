# app/routes/health.py
"""
Health check endpoints with database pool monitoring.
"""

import time

from fastapi import APIRouter, Depends

from app.config import settings
from app.db.pool import db_health_check
from app.dependencies import get_config_resolver
from app.services.scheduling.config_resolver import ConfigResolver

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "lead-scheduler"}


@router.get("/readyz")
async def readyz(resolver: ConfigResolver = Depends(get_config_resolver)):
    """
    Readiness check: database pool plus the configuration a live booking needs.
    """
    checks = {}
    overall_ok = True

    # 1) Database pool
    t0 = time.time()
    db_health = await db_health_check()
    is_healthy = db_health.get("healthy", False)
    checks["database"] = {
        "ok": is_healthy,
        "latency_ms": round((time.time() - t0) * 1000, 1),
    }
    if "pool_stats" in db_health:
        checks["database"].update(db_health["pool_stats"])
    if not is_healthy:
        checks["database"]["error"] = db_health.get("error", "Database unhealthy")
    overall_ok = overall_ok and is_healthy

    # 2) Calendar and booking configuration
    config = await resolver.resolve()
    config_issues = []

    if not config.test_mode:
        if not settings.calendar_configured():
            config_issues.append("GOOGLE_SERVICE_ACCOUNT not set")
        if not config.host_email:
            config_issues.append("host_email not set")

    if not settings.MANAGE_SESSION_SECRET:
        config_issues.append("MANAGE_SESSION_SECRET not set")

    checks["configuration"] = {
        "ok": not config_issues,
        "issues": config_issues or None,
        "environment": settings.environment,
        "test_mode": config.test_mode,
        "crm_enabled": bool(settings.HUBSPOT_ACCESS_TOKEN),
        "email_enabled": bool(settings.RESEND_API_KEY),
    }
    overall_ok = overall_ok and not config_issues

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
