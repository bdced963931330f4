import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from mathkids.api.deps import get_services
from mathkids.db import StoreUnavailableError
from mathkids.services.container import AuthServices

router = APIRouter(tags=["health"])


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health")
def health_check():
    return {"status": "ok", "timestamp": _timestamp(), "service": "MathKids API"}


@router.get("/health/database")
def database_health(services: AuthServices = Depends(get_services)):
    start = time.monotonic()
    try:
        services.database.ping()
    except StoreUnavailableError:
        return JSONResponse(
            status_code=503,
            content={
                "status": "error",
                "database": "disconnected",
                "timestamp": _timestamp(),
            },
        )
    return {
        "status": "ok",
        "database": "connected",
        "query_time_ms": round((time.monotonic() - start) * 1000, 2),
        "timestamp": _timestamp(),
    }


@router.get("/health/email")
def email_health(services: AuthServices = Depends(get_services)):
    dispatcher = services.dispatcher
    healthy = dispatcher.is_healthy()
    content = {
        "status": "ok" if healthy else "error",
        "provider": dispatcher.provider,
        "details": dispatcher.provider_info(),
        "timestamp": _timestamp(),
    }
    if not healthy:
        return JSONResponse(status_code=503, content=content)
    return content


@router.get("/api/status")
def api_status(services: AuthServices = Depends(get_services)):
    return {
        "api": "MathKids API",
        "status": "online",
        "mode": "normal" if services.database.is_configured else "admin_only",
        "email_service": services.dispatcher.provider_info(),
        "endpoints": {
            "register": "/api/register",
            "login": "/api/login",
            "verify_token": "/api/verify-token",
            "logout": "/api/logout",
            "forgot_password": "/api/forgot-password",
            "reset_password": "/api/reset-password",
            "health": "/health",
            "email_health": "/health/email",
        },
        "timestamp": _timestamp(),
    }


@router.get("/metrics")
def metrics():
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
