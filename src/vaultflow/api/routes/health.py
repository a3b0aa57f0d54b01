"""Health check endpoints."""

from fastapi import APIRouter, Request

from vaultflow.config import get_settings

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Service liveness plus reachability of the attestation oracle."""
    session = getattr(request.app.state, "session", None)
    oracle = await session.oracle_healthy() if session is not None else None
    return {
        "status": "healthy",
        "service": "vaultflow",
        "session_ready": session is not None,
        "oracle_healthy": oracle,
    }


@router.get("/health/detailed")
async def detailed_health(request: Request):
    """Health check with (redacted) configuration."""
    settings = get_settings()
    return {
        "status": "healthy",
        "service": "vaultflow",
        "version": "0.1.0",
        "session_error": getattr(request.app.state, "session_error", None),
        "config": settings.get_safe_dict(),
    }
