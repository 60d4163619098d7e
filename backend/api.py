"""FastAPI backend exposing live detection sessions to the peer connection layer."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from redis.exceptions import RedisError
from starlette.websockets import WebSocketDisconnect

from common.config import (
    CORS_ORIGINS,
    MAX_SESSIONS,
    WORKING_HEIGHT,
    WORKING_WIDTH,
    SchedulerSettings,
    create_async_redis_client,
    telemetry_channel,
)
from common.config.logging_config import configure_logging
from cv.scheduler import FrameScheduler
from session import (
    SESSION_ID_PATTERN,
    DetectionSession,
    ResourceLimitExceededError,
    SessionAlreadyExistsError,
    SessionClosedError,
    SessionConfig,
    SessionEvent,
    SessionNotFoundError,
    SessionRegistry,
)

logger = logging.getLogger(__name__)

registry: SessionRegistry | None = None


class SessionEventRequest(BaseModel):
    event: SessionEvent


def build_session(config: SessionConfig) -> DetectionSession:
    """Wire a capture source, detector and Redis publisher into a session.

    Opens the capture and loads the model, so the registry calls it off the loop.
    """
    from cv.detectors import get_detector
    from cv.frame_source import CaptureSource
    from cv.publisher import TelemetryPublisher

    source = CaptureSource(config.source_url, loop=config.loop)
    publisher = TelemetryPublisher()
    settings = SchedulerSettings(target_fps=config.target_fps) if config.target_fps else SchedulerSettings()
    scheduler = FrameScheduler(
        source=source,
        detector=get_detector(),
        working_size=(WORKING_WIDTH, WORKING_HEIGHT),
        settings=settings,
        renderer=publisher.renderer_for(config.session_id),
        telemetry=publisher,
        session_id=config.session_id,
    )

    source.start()
    return DetectionSession(
        scheduler,
        session_id=config.session_id,
        on_close=lambda: release_session_resources(source, publisher),
    )


async def release_session_resources(source, publisher) -> None:
    """Stop capture and flush telemetry without blocking the event loop."""
    # Joining the reader thread can take seconds on a stalled stream.
    await asyncio.to_thread(source.close)
    await publisher.aclose()


def _registry() -> SessionRegistry:
    if registry is None:
        raise HTTPException(status_code=503, detail="Session registry unavailable")
    return registry


@asynccontextmanager
async def lifespan(_: FastAPI):
    global registry

    configure_logging()
    # Resolve the factory at startup so tests can monkeypatch api.build_session.
    registry = SessionRegistry(factory=lambda cfg: build_session(cfg), max_sessions=MAX_SESSIONS)
    yield

    await registry.shutdown()
    registry = None


app = FastAPI(
    title="Live Detection Session API",
    description="Adaptive object detection over peer video streams",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(CORS_ORIGINS),
    allow_origin_regex=r"^https?://(10\.\d+\.\d+\.\d+|192\.168\.\d+\.\d+|172\.(1[6-9]|2\d|3[0-1])\.\d+\.\d+)(:\d+)?$",
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type"],
)


@app.get("/")
def read_root():
    return {
        "status": "ok",
        "message": "Live detection backend is running",
        "endpoints": {
            "sessions": "/api/sessions",
            "session_events": "/api/sessions/{session_id}/events",
            "telemetry_ws": "/api/telemetry/ws/{session_id}",
            "health": "/health",
        },
    }


@app.get("/health")
def health_check():
    return {"status": "healthy", "sessions": len(_registry())}


@app.get("/api/sessions")
def list_sessions():
    return {"sessions": _registry().list_sessions()}


@app.post("/api/sessions", status_code=201)
async def create_session(config: SessionConfig):
    try:
        session = await _registry().create_session(config)
    except SessionAlreadyExistsError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except ResourceLimitExceededError as exc:
        raise HTTPException(status_code=429, detail=str(exc))
    return session.to_dict()


@app.get("/api/sessions/{session_id}")
def get_session(session_id: str):
    try:
        return _registry().get_session(session_id).to_dict()
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@app.post("/api/sessions/{session_id}/events", status_code=202)
async def post_session_event(session_id: str, body: SessionEventRequest):
    try:
        session = _registry().get_session(session_id)
        state = await session.dispatch(body.event)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except SessionClosedError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return {"session_id": session_id, "state": state.value}


@app.delete("/api/sessions/{session_id}")
async def close_session(session_id: str):
    try:
        await _registry().close_session(session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return {"session_id": session_id, "state": "closed"}


@app.websocket("/api/telemetry/ws/{session_id}")
async def telemetry_ws(websocket: WebSocket, session_id: str):
    if not SESSION_ID_PATTERN.fullmatch(session_id):
        await websocket.close(code=1008)
        return

    await websocket.accept()
    try:
        _registry().get_session(session_id)
    except (SessionNotFoundError, HTTPException):
        await websocket.send_json({"type": "error", "message": f"Session '{session_id}' not found"})
        await websocket.close(code=1008)
        return

    # Idle subscriptions are polled below; no read timeout on the socket.
    redis_client = create_async_redis_client(socket_timeout=None)
    pubsub = redis_client.pubsub()
    try:
        await pubsub.subscribe(telemetry_channel(session_id))
        while True:
            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            if message is None:
                try:
                    if _registry().get_session(session_id).is_closed:
                        break
                except SessionNotFoundError:
                    break
                await asyncio.sleep(0)
                continue
            await websocket.send_text(message["data"])
    except WebSocketDisconnect:
        pass
    except RedisError as exc:
        logger.warning("[%s] Telemetry subscription failed: %s", session_id, exc)
        await websocket.send_json({"type": "error", "message": "Telemetry unavailable"})
    finally:
        await pubsub.aclose()
        await redis_client.aclose()
