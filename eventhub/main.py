import asyncio
import json
import uuid
from contextlib import asynccontextmanager, suppress
from typing import Optional
from fastapi import FastAPI, WebSocket, WebSocketDisconnect, Request, Query, status, APIRouter
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from eventhub.api.v1.routes import events as events_router, rsvps as rsvps_router, notifications as notifications_router, health as health_router
from eventhub.cache.redis_client import cache
from eventhub.core.config import settings
from eventhub.core.errors import EventHubError, NotAuthenticatedError
from eventhub.core.logging import logger
from eventhub.core.rate_limit import limiter
from eventhub.core.security import decode_token
from eventhub.db.session import engine, Base
from eventhub.events.consumer import run_worker
from eventhub.events.publisher import close_publisher
from eventhub.middleware.security_headers import SecurityHeadersMiddleware
from eventhub.services.notification_trigger import NotificationTrigger
from eventhub.services.rsvp_service import RSVP_UPDATED
from eventhub.websocket.broadcaster import RoomBroadcaster


@asynccontextmanager
async def lifespan(app: FastAPI):
    # create tables (migrations own the schema in deployed environments)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    worker: Optional[asyncio.Task] = None
    if settings.NOTIFICATIONS_ENABLED and settings.RUN_WORKER_IN_APP:
        worker = asyncio.create_task(run_worker(app.state.broadcaster))
    yield
    if worker is not None:
        worker.cancel()
        with suppress(asyncio.CancelledError):
            await worker
    await close_publisher()
    await cache.close()


async def eventhub_error_handler(request: Request, exc: EventHubError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, NotAuthenticatedError) else None
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=headers)


def create_app() -> FastAPI:
    app = FastAPI(title="EventHub", lifespan=lifespan)

    # realtime and notification collaborators are per-app, reached through dependencies
    app.state.broadcaster = RoomBroadcaster()
    app.state.notification_trigger = NotificationTrigger()

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(EventHubError, eventhub_error_handler)

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    api_router = APIRouter(prefix="/api/v1")
    api_router.include_router(events_router.router)
    api_router.include_router(rsvps_router.router)
    api_router.include_router(notifications_router.router)
    api_router.include_router(health_router.router)
    app.include_router(api_router)

    app.add_api_websocket_route("/ws/events", event_rooms_endpoint)
    app.add_api_websocket_route("/ws/notifications/{user_id}", notifications_endpoint)
    return app


def _user_id_from_token(token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    payload = decode_token(token)
    if payload.get("type") != "access":
        raise ValueError("Invalid token type")
    return str(payload.get("sub"))


async def event_rooms_endpoint(websocket: WebSocket, token: Optional[str] = Query(None)):
    """
    Live updates for event pages.

    Client messages (JSON):
        {"type": "joinEvent", "eventId": "..."}
        {"type": "leaveEvent", "eventId": "..."}
        {"type": "rsvpUpdate", "eventId": "..."}  (asks the room to re-fetch)

    Server messages:
        {"type": "rsvpUpdated", "eventId": "..."}

    Anonymous viewers are allowed; a valid access token additionally routes
    personal notifications to this connection.
    """
    broadcaster: RoomBroadcaster = websocket.app.state.broadcaster
    try:
        user_id = _user_id_from_token(token)
    except ValueError as e:
        logger.warning(f"Event room connection rejected: {str(e)}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    connection_id = uuid.uuid4().hex
    await websocket.accept()
    await broadcaster.register(connection_id, websocket)
    if user_id:
        await broadcaster.attach_user(connection_id, user_id)
    logger.info(f"Realtime connection {connection_id} opened")

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
                kind = data["type"]
                event_id = str(data["eventId"])
            except (ValueError, KeyError, TypeError):
                await websocket.send_json({"type": "error", "detail": "Expected {\"type\", \"eventId\"}"})
                continue

            if kind == "joinEvent":
                await broadcaster.subscribe(connection_id, event_id)
                await websocket.send_json({"type": "joinedEvent", "eventId": event_id})
            elif kind == "leaveEvent":
                await broadcaster.unsubscribe(connection_id, event_id)
                await websocket.send_json({"type": "leftEvent", "eventId": event_id})
            elif kind == "rsvpUpdate":
                await broadcaster.publish(event_id, {"type": RSVP_UPDATED, "eventId": event_id})
            else:
                await websocket.send_json({"type": "error", "detail": f"Unknown message type {kind!r}"})
    except WebSocketDisconnect:
        logger.info(f"Realtime connection {connection_id} closed")
    except Exception as e:
        logger.error(f"Realtime connection {connection_id} error: {str(e)}")
    finally:
        await broadcaster.disconnect(connection_id)


async def notifications_endpoint(websocket: WebSocket, user_id: str, token: str = Query(...)):
    """
    Personal notification channel.
    Example: ws://localhost:8000/ws/notifications/{user_id}?token=your_jwt_token
    """
    broadcaster: RoomBroadcaster = websocket.app.state.broadcaster
    try:
        token_user_id = _user_id_from_token(token)
    except ValueError as e:
        logger.warning(f"WebSocket connection rejected for user {user_id}: {str(e)}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    if token_user_id != user_id:
        logger.warning(f"WebSocket connection attempt: token user_id {token_user_id} does not match path user_id {user_id}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    connection_id = uuid.uuid4().hex
    await websocket.accept()
    await broadcaster.register(connection_id, websocket)
    await broadcaster.attach_user(connection_id, user_id)
    logger.info(f"WebSocket connection established for user {user_id}")
    try:
        while True:
            # nothing is expected from the client; keep reading to notice disconnects
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for user {user_id}")
    finally:
        await broadcaster.disconnect(connection_id)


app = create_app()
