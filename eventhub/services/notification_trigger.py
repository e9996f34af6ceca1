"""
Notification trigger.

Decides who should hear about an attendance change and hands one message per
recipient to the broker. It runs after the ledger commit and is best-effort:
nothing raised here ever reaches the RSVP caller.
"""
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Awaitable, Callable, List, Optional
from uuid import UUID

from eventhub.core.config import settings
from eventhub.core.logging import logger
from eventhub.db.models.notification import NotificationTypeEnum
from eventhub.events.publisher import publish_event


class ChangeKind(str, Enum):
    confirmed = "confirmed"
    waitlisted = "waitlisted"
    cancelled = "cancelled"
    promoted = "promoted"


@dataclass(frozen=True)
class AttendanceChange:
    event_id: UUID
    user_id: UUID
    kind: ChangeKind
    creator_id: UUID


@dataclass(frozen=True)
class NotificationMessage:
    recipient_id: UUID
    event_id: UUID
    actor_id: UUID
    kind: ChangeKind
    type: NotificationTypeEnum

    @property
    def routing_key(self) -> str:
        return f"rsvp.{self.kind.value}"

    def to_payload(self) -> dict:
        payload = asdict(self)
        payload["kind"] = self.kind.value
        payload["type"] = self.type.value
        return {k: str(v) if isinstance(v, UUID) else v for k, v in payload.items()}


Publisher = Callable[[str, dict], Awaitable[None]]


class NotificationTrigger:
    def __init__(self, publisher: Optional[Publisher] = None, enabled: Optional[bool] = None):
        self.publisher = publisher or publish_event
        self.enabled = settings.NOTIFICATIONS_ENABLED if enabled is None else enabled

    def plan(self, change: AttendanceChange) -> List[NotificationMessage]:
        """Recipients for a change; preference checks happen in the worker."""
        messages: List[NotificationMessage] = []

        def add(recipient_id: UUID, type: NotificationTypeEnum) -> None:
            messages.append(NotificationMessage(
                recipient_id=recipient_id,
                event_id=change.event_id,
                actor_id=change.user_id,
                kind=change.kind,
                type=type,
            ))

        if change.kind in (ChangeKind.confirmed, ChangeKind.cancelled, ChangeKind.promoted):
            if change.creator_id != change.user_id:
                add(change.creator_id, NotificationTypeEnum.rsvp_update)
        if change.kind is ChangeKind.confirmed:
            add(change.user_id, NotificationTypeEnum.rsvp_confirmation)
        elif change.kind is ChangeKind.waitlisted:
            add(change.user_id, NotificationTypeEnum.rsvp_waitlisted)
        elif change.kind is ChangeKind.promoted:
            add(change.user_id, NotificationTypeEnum.rsvp_promoted)
        return messages

    async def dispatch(self, change: AttendanceChange) -> int:
        """
        Publish every planned message. Failures are logged and dropped.

        Returns:
            Number of messages handed to the broker
        """
        if not self.enabled:
            return 0
        sent = 0
        for message in self.plan(change):
            try:
                await self.publisher(message.routing_key, message.to_payload())
                sent += 1
            except Exception as e:
                logger.error(
                    f"Notification {message.type.value} for user {message.recipient_id} "
                    f"on event {message.event_id} not sent: {e}"
                )
        return sent

    async def dispatch_all(self, changes: List[AttendanceChange]) -> None:
        for change in changes:
            await self.dispatch(change)
