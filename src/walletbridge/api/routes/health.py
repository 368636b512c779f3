"""Health check endpoints."""

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Basic health check endpoint."""
    bridge = request.app.state.bridge
    return {
        "status": "healthy",
        "service": "walletbridge",
        "polling": bridge.loop.running,
    }


@router.get("/health/detailed")
async def detailed_health(request: Request):
    """Detailed health check with configuration info."""
    bridge = request.app.state.bridge
    return {
        "status": "healthy",
        "service": "walletbridge",
        "version": "0.1.0",
        "config": bridge.settings.get_safe_dict(),
    }
