"""Health-check router."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from folio import __version__

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/")
async def root():
    """Health check"""
    return {"status": "ok", "message": "Folio API is running"}


@router.get("/api/health")
async def health_check(request: Request):
    """Detailed health check reporting which backing services are configured."""
    state = request.app.state

    capabilities = ["pdf_codec"]
    degraded = []

    if state.session_factory is not None:
        capabilities.append("database")
    else:
        degraded.append("database")

    if state.object_store is not None:
        capabilities.append("object_store")
    else:
        degraded.append("object_store")

    return {
        "status": "healthy" if not degraded else "degraded",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": state.settings.environment,
        "capabilities": capabilities,
        "degraded": degraded if degraded else None,
        "mode": "full" if not degraded else "degraded",
    }
