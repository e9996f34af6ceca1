"""
Attendance ledger.

The ``attendances`` table is the single source of truth for who is attending
which event. Capacity accounting counts ``confirmed`` rows only; the cached
attendance summary below is a read-side view and is never used to admit
anyone.
"""
from datetime import datetime, timezone
from functools import wraps
from typing import Callable, List, Optional, Sequence
import uuid

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.cache.cache_decorators import cache_key, cached
from eventhub.cache.redis_client import cache
from eventhub.core.config import settings
from eventhub.core.errors import NotFoundError, TransientIOError
from eventhub.core.logging import logger
from eventhub.db.models.attendance import Attendance, AttendanceStatusEnum
from eventhub.db.models.event import Event

SUMMARY_CACHE_PREFIX = "attendance:summary"
SUMMARY_VERSION_PREFIX = "attendance:summary-version"


def as_uuid(value, what: str = "Event") -> uuid.UUID:
    """Coerce a path/body identifier to UUID; malformed ids cannot exist."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise NotFoundError(f"{what} not found")


def _storage_errors(func: Callable) -> Callable:
    """Roll back and translate SQLAlchemy failures into TransientIOError."""
    @wraps(func)
    async def wrapper(self: "AttendanceLedger", *args, **kwargs):
        try:
            return await func(self, *args, **kwargs)
        except SQLAlchemyError as e:
            logger.error(f"Attendance ledger {func.__name__} failed: {e}")
            await self.session.rollback()
            raise TransientIOError("Attendance storage unavailable") from e
    return wrapper


class AttendanceLedger:
    """
    Session-bound access to attendance records.

    Writes are flushed but not committed; the caller (the capacity arbiter)
    owns the transaction so that a read-decide-write sequence commits as one
    unit or not at all.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    @_storage_errors
    async def get_event(self, event_id, for_update: bool = False) -> Event:
        """
        Load an event, optionally taking a row lock for the rest of the
        transaction (``SELECT ... FOR UPDATE``; ignored by SQLite).

        Raises:
            NotFoundError: If the event does not exist
        """
        q = select(Event).where(Event.id == as_uuid(event_id))
        if for_update:
            q = q.with_for_update().execution_options(populate_existing=True)
        res = await self.session.execute(q)
        event = res.scalars().first()
        if event is None:
            raise NotFoundError("Event not found")
        return event

    async def lock_event(self, event_id) -> Event:
        return await self.get_event(event_id, for_update=True)

    @_storage_errors
    async def get_attendance(self, event_id, user_id) -> Optional[Attendance]:
        q = select(Attendance).where(
            Attendance.event_id == as_uuid(event_id),
            Attendance.user_id == as_uuid(user_id, "User"),
        )
        res = await self.session.execute(q)
        return res.scalars().first()

    async def _require_event(self, event_id) -> uuid.UUID:
        event_uuid = as_uuid(event_id)
        if await self.session.get(Event, event_uuid) is None:
            raise NotFoundError("Event not found")
        return event_uuid

    @_storage_errors
    async def count_by_status(self, event_id, status: AttendanceStatusEnum) -> int:
        """
        Raises:
            NotFoundError: If the event does not exist
        """
        event_uuid = await self._require_event(event_id)
        q = select(func.count(Attendance.id)).where(
            Attendance.event_id == event_uuid,
            Attendance.status == status,
        )
        res = await self.session.execute(q)
        return res.scalar() or 0

    async def get_confirmed_count(self, event_id) -> int:
        """Number of attendees counted against the event's capacity."""
        return await self.count_by_status(event_id, AttendanceStatusEnum.confirmed)

    async def get_waitlist_count(self, event_id) -> int:
        return await self.count_by_status(event_id, AttendanceStatusEnum.waitlist)

    @_storage_errors
    async def upsert_attendance(self, event_id, user_id, status: AttendanceStatusEnum) -> Attendance:
        """
        Set the (event, user) record to ``status``, creating it if needed.

        Re-entering from ``cancelled`` restarts ``joined_at`` so the waitlist
        is ordered by the time the user (re)joined.

        Raises:
            NotFoundError: If the event does not exist
        """
        event_uuid = await self._require_event(event_id)

        now = datetime.now(timezone.utc)
        record = await self.get_attendance(event_uuid, user_id)
        if record is None:
            record = Attendance(
                event_id=event_uuid,
                user_id=as_uuid(user_id, "User"),
                status=status,
                joined_at=now,
                updated_at=now,
            )
            self.session.add(record)
        else:
            if not record.status.is_active and status.is_active:
                record.joined_at = now
            record.status = status
            record.updated_at = now
        await self.session.flush()
        return record

    @_storage_errors
    async def cancel_attendance(self, event_id, user_id) -> Optional[Attendance]:
        """
        Mark the record cancelled. Returns ``None`` when the user never RSVP'd.

        Raises:
            NotFoundError: If the event does not exist
        """
        event_uuid = await self._require_event(event_id)

        record = await self.get_attendance(event_uuid, user_id)
        if record is None:
            return None
        if record.status is not AttendanceStatusEnum.cancelled:
            record.status = AttendanceStatusEnum.cancelled
            record.updated_at = datetime.now(timezone.utc)
            await self.session.flush()
        return record

    @_storage_errors
    async def next_waitlisted(self, event_id) -> Optional[Attendance]:
        """Earliest-joined waitlist record, if any."""
        q = (
            select(Attendance)
            .where(
                Attendance.event_id == as_uuid(event_id),
                Attendance.status == AttendanceStatusEnum.waitlist,
            )
            .order_by(Attendance.joined_at.asc())
            .limit(1)
        )
        res = await self.session.execute(q)
        return res.scalars().first()

    @_storage_errors
    async def list_attendance(
        self,
        event_id,
        statuses: Optional[Sequence[AttendanceStatusEnum]] = None,
    ) -> List[Attendance]:
        q = select(Attendance).where(Attendance.event_id == as_uuid(event_id))
        if statuses:
            q = q.where(Attendance.status.in_(list(statuses)))
        q = q.order_by(Attendance.joined_at.asc())
        res = await self.session.execute(q)
        return list(res.scalars().all())

    @_storage_errors
    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()


async def summary_cache_key(db: AsyncSession, event_id) -> str:
    """
    Key of the current summary entry for an event.

    The event's version counter is part of the key, so a summary computed
    before a change and stored after the invalidation lands on a key that
    is never read again.
    """
    version = await cache.get(cache_key(SUMMARY_VERSION_PREFIX, event_id)) or 0
    return cache_key(SUMMARY_CACHE_PREFIX, event_id, f"v{version}")


@cached(SUMMARY_CACHE_PREFIX, expire=settings.ATTENDANCE_CACHE_TTL, key_func=summary_cache_key)
async def get_attendance_summary(db: AsyncSession, event_id) -> dict:
    """
    Confirmed/waitlist counts and the ordered list of active attendees.

    Returned as a plain dict for caching compatibility.

    Raises:
        NotFoundError: If the event does not exist
    """
    ledger = AttendanceLedger(db)
    event = await ledger.get_event(event_id)
    records = await ledger.list_attendance(
        event.id,
        statuses=[AttendanceStatusEnum.confirmed, AttendanceStatusEnum.waitlist],
    )
    confirmed = sum(1 for r in records if r.status is AttendanceStatusEnum.confirmed)
    waitlisted = len(records) - confirmed
    return {
        'event_id': str(event.id),
        'capacity': event.capacity,
        'confirmed_count': confirmed,
        'waitlist_count': waitlisted,
        'available_spots': max(0, event.capacity - confirmed),
        'is_full': confirmed >= event.capacity,
        'attendees': [
            {
                'user_id': str(r.user_id),
                'status': r.status.value,
                'joined_at': r.joined_at.isoformat(),
            }
            for r in records
        ],
    }


async def invalidate_attendance_summary(event_id) -> None:
    await cache.incr(cache_key(SUMMARY_VERSION_PREFIX, event_id))
