from typing import List, Optional
from fastapi import BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession
from eventhub.core.logging import logger
from eventhub.db.models.attendance import AttendanceStatusEnum
from eventhub.db.repositories import AttendanceLedger, as_uuid, get_attendance_summary, invalidate_attendance_summary
from eventhub.services.arbiter import AttendanceDecision, CancellationResult, CapacityArbiter
from eventhub.services.notification_trigger import AttendanceChange, ChangeKind, NotificationTrigger
from eventhub.websocket.broadcaster import RoomBroadcaster

RSVP_UPDATED = "rsvpUpdated"


class RSVPService:
    """
    Runs an RSVP or cancellation through the arbiter, then fans the change
    out to the event room and hands notifications to the trigger.

    Broadcasting and notifying happen only after the ledger commit and only
    when the stored status actually changed.
    """

    def __init__(
        self,
        session: AsyncSession,
        broadcaster: RoomBroadcaster,
        trigger: NotificationTrigger,
        arbiter: Optional[CapacityArbiter] = None,
    ):
        self.session = session
        self.broadcaster = broadcaster
        self.trigger = trigger
        self.arbiter = arbiter or CapacityArbiter(session)

    async def rsvp(self, event_id, user_id, background_tasks: Optional[BackgroundTasks] = None) -> AttendanceDecision:
        decision = await self.arbiter.request_attendance(event_id, user_id)
        if decision.changed:
            kind = ChangeKind.confirmed if decision.status is AttendanceStatusEnum.confirmed else ChangeKind.waitlisted
            await self._after_commit(decision.event.id, [
                AttendanceChange(event_id=decision.event.id, user_id=decision.attendance.user_id,
                                 kind=kind, creator_id=decision.event.created_by),
            ], background_tasks)
        return decision

    async def cancel(self, event_id, user_id, background_tasks: Optional[BackgroundTasks] = None) -> CancellationResult:
        result = await self.arbiter.cancel_attendance(event_id, user_id)
        changes: List[AttendanceChange] = []
        if result.changed:
            changes.append(AttendanceChange(event_id=result.event.id, user_id=as_uuid(user_id, "User"),
                                            kind=ChangeKind.cancelled, creator_id=result.event.created_by))
        for promoted_id in result.promoted:
            changes.append(AttendanceChange(event_id=result.event.id, user_id=promoted_id,
                                            kind=ChangeKind.promoted, creator_id=result.event.created_by))
        if changes:
            await self._after_commit(result.event.id, changes, background_tasks)
        return result

    async def promote(self, event_id, creator_id, background_tasks: Optional[BackgroundTasks] = None) -> List:
        promoted = await self.arbiter.promote_waitlisted(event_id)
        if promoted:
            await self._after_commit(event_id, [
                AttendanceChange(event_id=as_uuid(event_id), user_id=user_id,
                                 kind=ChangeKind.promoted, creator_id=creator_id)
                for user_id in promoted
            ], background_tasks)
        return promoted

    async def get_own_attendance(self, event_id, user_id):
        ledger = AttendanceLedger(self.session)
        await ledger.get_event(event_id)
        return await ledger.get_attendance(event_id, user_id)

    async def summary(self, event_id) -> dict:
        return await get_attendance_summary(self.session, as_uuid(event_id))

    async def _after_commit(self, event_id, changes: List[AttendanceChange], background_tasks: Optional[BackgroundTasks]):
        await invalidate_attendance_summary(event_id)
        await self.broadcast_update(event_id)
        if background_tasks is not None:
            background_tasks.add_task(self.trigger.dispatch_all, changes)
        else:
            await self.trigger.dispatch_all(changes)

    async def broadcast_update(self, event_id) -> int:
        try:
            return await self.broadcaster.publish(event_id, {"type": RSVP_UPDATED, "eventId": str(event_id)})
        except Exception as e:
            logger.error(f"Broadcast of {RSVP_UPDATED} for event {event_id} failed: {e}")
            return 0
