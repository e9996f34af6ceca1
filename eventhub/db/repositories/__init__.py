"""
Repository layer for database operations.

Provides async functions for the collaborator data the RSVP core reads or
writes: users (identity and notification preferences), events (capacity and
creator) and in-app notifications. Attendance lives in ``ledger``.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from eventhub.db.models.user import User
from eventhub.db.models.event import Event
from eventhub.db.models.notification import Notification, NotificationTypeEnum
from eventhub.db.repositories.ledger import AttendanceLedger, as_uuid, get_attendance_summary, invalidate_attendance_summary
from eventhub.schemas import EventCreate, EventUpdate
from typing import Optional, List

__all__ = [
    "AttendanceLedger",
    "as_uuid",
    "get_attendance_summary",
    "invalidate_attendance_summary",
    "get_user",
    "create_event",
    "get_event",
    "update_event",
    "create_notification",
    "list_notifications",
    "get_notification",
]


async def get_user(db: AsyncSession, user_id) -> Optional[User]:
    """
    Retrieve user by ID.

    Args:
        db: Database session
        user_id: User's UUID

    Returns:
        User object if found, None otherwise
    """
    q = select(User).where(User.id == as_uuid(user_id, "User"))
    res = await db.execute(q)
    return res.scalars().first()


async def create_event(db: AsyncSession, payload: EventCreate, creator_id) -> Event:
    """
    Create a new event owned by ``creator_id``.

    Args:
        db: Database session
        payload: Event creation data
        creator_id: UUID of user creating the event

    Returns:
        Created Event object
    """
    ev = Event(**payload.model_dump(), created_by=as_uuid(creator_id, "User"))
    db.add(ev)
    await db.commit()
    await db.refresh(ev)
    return ev


async def get_event(db: AsyncSession, event_id) -> Optional[Event]:
    q = select(Event).where(Event.id == as_uuid(event_id))
    res = await db.execute(q)
    return res.scalars().first()


async def update_event(db: AsyncSession, event: Event, payload: EventUpdate) -> Event:
    """Apply the fields that were explicitly set on ``payload``."""
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(event, field, value)
    await db.commit()
    await db.refresh(event)
    await invalidate_attendance_summary(event.id)
    return event


async def create_notification(
    db: AsyncSession,
    user_id,
    event_id,
    type: NotificationTypeEnum,
    title: str,
    message: str,
) -> Notification:
    n = Notification(
        user_id=as_uuid(user_id, "User"),
        event_id=as_uuid(event_id) if event_id else None,
        type=type,
        title=title,
        message=message,
    )
    db.add(n)
    await db.commit()
    await db.refresh(n)
    return n


async def list_notifications(
    db: AsyncSession,
    user_id,
    unread_only: bool = False,
    limit: int = 50,
) -> List[Notification]:
    """Newest first."""
    q = select(Notification).where(Notification.user_id == as_uuid(user_id, "User"))
    if unread_only:
        q = q.where(Notification.is_read.is_(False))
    q = q.order_by(Notification.created_at.desc()).limit(limit)
    res = await db.execute(q)
    return list(res.scalars().all())


async def get_notification(db: AsyncSession, notification_id) -> Optional[Notification]:
    q = select(Notification).where(Notification.id == as_uuid(notification_id, "Notification"))
    res = await db.execute(q)
    return res.scalars().first()
