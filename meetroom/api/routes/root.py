# meetroom/api/routes/root.py

from fastapi import APIRouter

router = APIRouter()


@router.get("/")
async def root():
    """Service name, version and where to find the real-time and REST entry points."""
    return {
        "message": "Meetroom - real-time meeting coordinator",
        "version": "1.0",
        "features": ["meetings", "chat", "webrtc_signaling", "presence"],
        "endpoints": {
            "websocket": "/ws",
            "meetings": "/api/meetings",
            "chat": "/api/chat/{meetingId}",
            "health": "/health",
        },
    }
