"""
Health check endpoints.
"""

from datetime import UTC, datetime

from fastapi import APIRouter

from app.config import settings
from app.jobs.background_tasks import background_runner
from app.services.signing_service import is_signing_available

router = APIRouter(tags=["health"])

SERVICE_NAME = "adhoc-distribution-backend"
SERVICE_VERSION = "0.1.0"


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": SERVICE_NAME}


@router.get("/health")
async def health():
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat(),
        "version": SERVICE_VERSION,
    }


@router.get("/readyz")
async def readyz():
    """
    Configuration readiness.

    Reports which integrations are configured; always 200 so the process is
    not restarted for missing credentials, `overall_ok` tells the story.
    """
    missing = settings.missing_required()
    checks = {
        "app_store_connect": {
            "ok": not any(name.startswith("ASC_") for name in missing),
        },
        "pipeline": {
            "ok": not any(name.startswith("GITHUB_") for name in missing),
            "workflow": settings.GITHUB_WORKFLOW_ID,
            "ref": settings.GITHUB_REF,
        },
        "email": {"ok": settings.smtp_configured()},
        "profile_signing": {"ok": True, "signed": is_signing_available()},
        "background_tasks": {"ok": True, "pending": background_runner.pending_count},
    }
    overall_ok = all(check["ok"] for check in checks.values())

    return {
        "overall_ok": overall_ok,
        "missing_settings": missing,
        "checks": checks,
    }
