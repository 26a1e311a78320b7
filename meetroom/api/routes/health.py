# meetroom/api/routes/health.py

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from meetroom.core.state import AppState
from meetroom.api.routes.utils import get_app_state

router = APIRouter()

@router.get("/health")
async def health(state: AppState = Depends(get_app_state)):
    """
    Health check endpoint.

    Returns current status plus counts read from the membership index.
    Used by container health probes and monitoring.

    Returns:
        dict: status, live connections, distinct users, meetings with subscribers
    """
    stats = state.connections.stats()
    return {
        "status": "healthy",
        "success": True,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime_seconds": round((datetime.now(timezone.utc) - state.started_at).total_seconds(), 1),
        "store_backend": state.settings.STORE_BACKEND,
        "connections": stats["connections"],
        "users": stats["users"],
        "active_meeting_groups": stats["active_meeting_groups"],
    }
