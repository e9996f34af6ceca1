"""Request-scoped access to the realtime and notification collaborators.

Both live on ``app.state`` (created in ``create_app``) so tests can swap them
through ``app.dependency_overrides`` instead of patching module globals.
"""
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from eventhub.db.session import get_session
from eventhub.services.notification_trigger import NotificationTrigger
from eventhub.services.rsvp_service import RSVPService
from eventhub.websocket.broadcaster import RoomBroadcaster


def get_broadcaster(request: Request) -> RoomBroadcaster:
    return request.app.state.broadcaster


def get_notification_trigger(request: Request) -> NotificationTrigger:
    return request.app.state.notification_trigger


def get_rsvp_service(
    session: AsyncSession = Depends(get_session),
    broadcaster: RoomBroadcaster = Depends(get_broadcaster),
    trigger: NotificationTrigger = Depends(get_notification_trigger),
) -> RSVPService:
    return RSVPService(session, broadcaster, trigger)
