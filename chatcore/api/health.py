from datetime import datetime

from fastapi import APIRouter, HTTPException, Request

from chatcore.core.config import settings
from chatcore.database import check_database_health

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(request: Request):
    """Application health check endpoint"""
    container = getattr(request.app.state, "container", None)
    db_health = await check_database_health(
        container.store if container else None, settings.store_timeout_seconds
    )

    return {
        "status": "healthy" if db_health["overall"] else "unhealthy",
        "timestamp": datetime.utcnow(),
        "databases": {
            "mongodb": "connected" if db_health["mongodb"] else "disconnected"
        },
        "connections": container.manager.get_connection_count() if container else 0,
        "online_users": len(container.presence.online_user_ids()) if container else 0,
        "service": settings.app_name
    }


@router.get("/health/ready")
async def readiness_check(request: Request):
    """Kubernetes readiness check endpoint"""
    container = getattr(request.app.state, "container", None)
    db_health = await check_database_health(
        container.store if container else None, settings.store_timeout_seconds
    )

    if not db_health["overall"]:
        raise HTTPException(
            status_code=503,
            detail="Service not ready - database connection failed"
        )

    return {"status": "ready"}


@router.get("/health/live")
async def liveness_check():
    """Kubernetes liveness check endpoint"""
    return {"status": "alive", "timestamp": datetime.utcnow()}
