from typing import Optional
from fastapi import BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession
from eventhub.core.errors import ConflictError, NotAuthorizedError, NotFoundError
from eventhub.core.logging import logger
from eventhub.db.models.event import Event
from eventhub.db.models.user import RoleEnum, User
from eventhub.db.repositories import (
    AttendanceLedger,
    create_event as db_create_event,
    get_attendance_summary,
    get_event as db_get_event,
    update_event as db_update_event,
)
from eventhub.schemas import EventCreate, EventOut, EventUpdate
from eventhub.services.arbiter import event_locks
from eventhub.services.rsvp_service import RSVPService


class EventService:
    """
    Minimal event metadata operations: enough to create an event, read its
    capacity state and let its creator change capacity or status.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_event(self, payload: EventCreate, user: User) -> EventOut:
        event = await db_create_event(self.session, payload, user.id)
        logger.info(f"Event {event.id} created by {user.id} with capacity {event.capacity}")
        return await self.get_event_detail(event.id)

    async def get_event_detail(self, event_id) -> EventOut:
        event = await db_get_event(self.session, event_id)
        if event is None:
            raise NotFoundError("Event not found")
        summary = await get_attendance_summary(self.session, event.id)
        out = EventOut.model_validate(event)
        out.attendee_count = summary["confirmed_count"]
        out.available_spots = summary["available_spots"]
        out.is_full = summary["is_full"]
        return out

    async def update_event(
        self,
        event_id,
        payload: EventUpdate,
        user: User,
        rsvp_service: Optional[RSVPService] = None,
        background_tasks: Optional[BackgroundTasks] = None,
    ) -> EventOut:
        """
        Apply a creator/admin edit.

        Raises:
            NotFoundError: If the event does not exist
            NotAuthorizedError: If the user is neither the creator nor an admin
            ConflictError: If the new capacity is below the confirmed count
        """
        event: Optional[Event] = await db_get_event(self.session, event_id)
        if event is None:
            raise NotFoundError("Event not found")
        if user.role != RoleEnum.admin and event.created_by != user.id:
            raise NotAuthorizedError("Not authorized to manage this event")

        # same locks as the arbiter so a shrink cannot interleave with an admission
        async with event_locks.hold(event.id):
            ledger = AttendanceLedger(self.session)
            event = await ledger.lock_event(event.id)
            old_capacity = event.capacity
            if payload.capacity is not None and payload.capacity < old_capacity:
                confirmed = await ledger.get_confirmed_count(event.id)
                if payload.capacity < confirmed:
                    await ledger.rollback()
                    raise ConflictError(
                        f"Capacity cannot drop below the {confirmed} confirmed attendees"
                    )
            event = await db_update_event(self.session, event, payload)

        if rsvp_service is not None and event.capacity != old_capacity:
            if event.capacity > old_capacity and rsvp_service.arbiter.auto_promote:
                await rsvp_service.promote(event.id, event.created_by, background_tasks)
            else:
                await rsvp_service.broadcast_update(event.id)
        return await self.get_event_detail(event.id)
