"""
Capacity arbiter.

Decides whether an RSVP is admitted as ``confirmed`` or placed on the
``waitlist`` and, when enabled, promotes waitlisted users into freed slots.

The read-count / decide / write sequence for an event is serialized twice:
by an in-process lock keyed on the event id, and by a row lock on the event
taken inside the same database transaction, which covers several app
processes sharing one Postgres database. Over-capacity requests are never
rejected; they go to the waitlist.
"""
import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.core.config import settings
from eventhub.core.errors import NotAuthenticatedError
from eventhub.core.logging import logger
from eventhub.db.models.attendance import Attendance, AttendanceStatusEnum
from eventhub.db.models.event import Event
from eventhub.db.repositories.ledger import AttendanceLedger, as_uuid


class KeyedLock:
    """asyncio locks created on demand per key and dropped once idle."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key) -> AsyncIterator[None]:
        key = str(key)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


@dataclass
class AttendanceDecision:
    status: AttendanceStatusEnum
    previous_status: Optional[AttendanceStatusEnum]
    event: Event
    attendance: Attendance

    @property
    def changed(self) -> bool:
        return self.previous_status is not self.status


@dataclass
class CancellationResult:
    event: Event
    cancelled: Optional[Attendance]
    previous_status: Optional[AttendanceStatusEnum]
    promoted: List[UUID] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.previous_status is not None and self.previous_status.is_active

    @property
    def promoted_user_id(self) -> Optional[UUID]:
        return self.promoted[0] if self.promoted else None


# Shared by every arbiter in the process so all requests for an event queue on one lock.
event_locks = KeyedLock()


class CapacityArbiter:
    def __init__(
        self,
        session: AsyncSession,
        auto_promote: Optional[bool] = None,
        locks: Optional[KeyedLock] = None,
    ):
        self.ledger = AttendanceLedger(session)
        self.auto_promote = settings.WAITLIST_AUTO_PROMOTE if auto_promote is None else auto_promote
        self.locks = locks if locks is not None else event_locks

    @asynccontextmanager
    async def _serialized(self, event_id) -> AsyncIterator[Event]:
        """
        Hold the per-event lock and an open transaction with the event row
        locked. Commits on success; any exception, including task
        cancellation, rolls everything back.
        """
        async with self.locks.hold(event_id):
            try:
                event = await self.ledger.lock_event(event_id)
                yield event
                await self.ledger.commit()
            except BaseException:
                await self.ledger.rollback()
                raise

    async def request_attendance(self, event_id, user_id) -> AttendanceDecision:
        """
        Admit ``user_id`` to the event as confirmed if a slot is free,
        otherwise waitlist them. A confirmed user keeps their slot without a
        recount; a waitlisted user is re-evaluated and takes a slot that has
        freed up since they joined.

        Raises:
            NotAuthenticatedError: If no user id is given
            NotFoundError: If the event does not exist
            TransientIOError: If the ledger cannot be read or written
        """
        if not user_id:
            raise NotAuthenticatedError("Authentication required to RSVP")
        event_id = as_uuid(event_id)
        user_id = as_uuid(user_id, "User")

        async with self._serialized(event_id) as event:
            existing = await self.ledger.get_attendance(event_id, user_id)
            previous = existing.status if existing is not None else None
            if previous is AttendanceStatusEnum.confirmed:
                record = existing
                status = previous
            else:
                confirmed = await self.ledger.get_confirmed_count(event_id)
                if confirmed < event.capacity:
                    status = AttendanceStatusEnum.confirmed
                else:
                    status = AttendanceStatusEnum.waitlist
                if previous is status:
                    record = existing
                else:
                    record = await self.ledger.upsert_attendance(event_id, user_id, status)

        if previous is not status:
            logger.info(
                f"User {user_id} RSVP to event {event_id}: "
                f"{previous.value if previous else 'none'} -> {status.value}"
            )
        return AttendanceDecision(status=status, previous_status=previous, event=event, attendance=record)

    async def cancel_attendance(self, event_id, user_id) -> CancellationResult:
        """
        Cancel the user's RSVP. Succeeds even if the user never RSVP'd.

        With auto-promotion enabled, cancelling a confirmed attendee moves the
        earliest waitlisted users into the freed capacity.

        Raises:
            NotAuthenticatedError: If no user id is given
            NotFoundError: If the event does not exist
            TransientIOError: If the ledger cannot be read or written
        """
        if not user_id:
            raise NotAuthenticatedError("Authentication required to cancel an RSVP")
        event_id = as_uuid(event_id)
        user_id = as_uuid(user_id, "User")

        promoted: List[UUID] = []
        async with self._serialized(event_id) as event:
            existing = await self.ledger.get_attendance(event_id, user_id)
            previous = existing.status if existing is not None else None
            record = await self.ledger.cancel_attendance(event_id, user_id)
            if self.auto_promote and previous is AttendanceStatusEnum.confirmed:
                promoted = await self._promote(event)

        if previous is not None and previous.is_active:
            logger.info(f"User {user_id} cancelled RSVP to event {event_id} (was {previous.value})")
        for promoted_id in promoted:
            logger.info(f"User {promoted_id} promoted from waitlist for event {event_id}")
        return CancellationResult(event=event, cancelled=record, previous_status=previous, promoted=promoted)

    async def promote_waitlisted(self, event_id) -> List[UUID]:
        """Fill any free capacity from the waitlist, e.g. after a capacity increase."""
        async with self._serialized(event_id) as event:
            promoted = await self._promote(event)
        for promoted_id in promoted:
            logger.info(f"User {promoted_id} promoted from waitlist for event {event_id}")
        return promoted

    async def _promote(self, event: Event) -> List[UUID]:
        promoted: List[UUID] = []
        confirmed = await self.ledger.get_confirmed_count(event.id)
        while confirmed < event.capacity:
            candidate = await self.ledger.next_waitlisted(event.id)
            if candidate is None:
                break
            await self.ledger.upsert_attendance(event.id, candidate.user_id, AttendanceStatusEnum.confirmed)
            promoted.append(candidate.user_id)
            confirmed += 1
        return promoted
