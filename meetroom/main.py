# meetroom/main.py

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from meetroom.core.config import Settings, settings as default_settings
from meetroom.core.errors import AppError, ErrorKind
from meetroom.core.logging import setup_logging, get_logger
from meetroom.core.state import AppState
from meetroom.api.routes import root, health, meetings, chat
from meetroom.api import websocket as websocket_module

# Configure logging first
setup_logging(default_settings.LOG_LEVEL)
logger = get_logger(__name__)


def _error_body(kind: ErrorKind, message: str) -> dict:
    return {"success": False, "error": {"message": message, "code": kind.value}}


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("🚀 Application starting - store backend: %s", settings.STORE_BACKEND)
        state = await AppState.create(settings)
        app.state.meetroom = state
        try:
            yield
        finally:
            await state.shutdown()

    app = FastAPI(title="Meetroom - Meeting Coordinator", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # REST routes
    app.include_router(root.router)
    app.include_router(health.router)
    app.include_router(meetings.router)
    app.include_router(chat.router)

    # WebSocket routes
    app.include_router(websocket_module.router)

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.kind == ErrorKind.UNAVAILABLE:
            logger.warning("Error in %s %s: %s", request.method, request.url.path, exc.message)
        else:
            logger.info("Error in %s %s: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.kind, exc.message))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = f"{location}: {first.get('msg', 'invalid value')}" if location else "Invalid request"
        return JSONResponse(status_code=400, content=_error_body(ErrorKind.INVALID_ARGUMENT, message))

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("meetroom.main:app", host="0.0.0.0", port=8000)
