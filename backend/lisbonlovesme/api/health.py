"""
Health check routes.
Probes for load-balancer readiness and liveness.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from sqlalchemy import func
from datetime import datetime
import time
import logging

from lisbonlovesme.db.database import get_db
from lisbonlovesme.db.models import OutboxMessage, Tour
from lisbonlovesme.core.rate_limiting import limiter, HEALTH_LIMIT
from lisbonlovesme.services.notifications import hub

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

# Track startup time for uptime reporting
_STARTUP_TIME = time.time()


@router.get("/")
@limiter.limit(HEALTH_LIMIT)
async def health_check(request: Request, db: Session = Depends(get_db)):
    """
    Database connectivity, tour count, outbox backlog, live admin connections.
    """
    health = {
        "status": "healthy",
        "database": "unavailable",
        "tours": 0,
        "pendingOutbox": 0,
        "liveConnections": hub.connection_count,
        "uptime_seconds": int(time.time() - _STARTUP_TIME),
        "timestamp": datetime.utcnow().isoformat(),
    }

    try:
        health["tours"] = db.query(func.count(Tour.id)).scalar() or 0
        health["pendingOutbox"] = (
            db.query(func.count(OutboxMessage.id)).filter(OutboxMessage.status == "pending").scalar() or 0
        )
        health["database"] = "available"
    except Exception as e:
        logger.error(f"Database health check failed: {str(e)}")
        health["status"] = "degraded"

    return health


@router.get("/ready")
@limiter.limit(HEALTH_LIMIT)
async def readiness_check(request: Request, db: Session = Depends(get_db)):
    """Reports ready only when the database answers."""
    try:
        db.query(func.count(Tour.id)).scalar()
        return {"ready": True, "timestamp": datetime.utcnow().isoformat()}
    except Exception as e:
        logger.error(f"Readiness check failed: {str(e)}")
        return {"ready": False, "error": str(e)}


@router.get("/live")
async def liveness_check():
    """Liveness probe. Returns 200 if service is running."""
    return {"alive": True, "uptime_seconds": int(time.time() - _STARTUP_TIME), "timestamp": datetime.utcnow().isoformat()}
