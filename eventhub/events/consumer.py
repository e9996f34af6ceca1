import asyncio, json
from aio_pika import connect_robust, ExchangeType
from sqlalchemy.ext.asyncio import async_sessionmaker
from eventhub.core.config import settings
from eventhub.core.logging import logger
from eventhub.db.models import NotificationTypeEnum
from eventhub.db.repositories import AttendanceLedger, create_notification, get_event, get_user
from eventhub.db.session import AsyncSessionLocal
from eventhub.events.publisher import EXCHANGE_NAME
from eventhub.websocket.broadcaster import RoomBroadcaster

QUEUE_NAME = "eventhub.notifications"

_ACTIONS = {
    "confirmed": "has RSVP'd to",
    "cancelled": "cancelled their RSVP for",
    "promoted": "was promoted from the waitlist for",
}


def _compose(type: NotificationTypeEnum, kind: str, event_title: str, actor_name: str, confirmed: int, capacity: int):
    if type is NotificationTypeEnum.rsvp_update:
        action = _ACTIONS.get(kind, "updated their RSVP for")
        return (
            f"RSVP Update for {event_title}",
            f"{actor_name} {action} your event \"{event_title}\". "
            f"Current attendee count: {confirmed}/{capacity}",
        )
    if type is NotificationTypeEnum.rsvp_confirmation:
        return f"You're going to {event_title}", f"Your spot at \"{event_title}\" is confirmed."
    if type is NotificationTypeEnum.rsvp_waitlisted:
        return (
            f"Waitlisted for {event_title}",
            f"\"{event_title}\" is full. You're on the waitlist and will keep your place in line.",
        )
    return f"A spot opened up at {event_title}", f"You've been moved off the waitlist and are confirmed for \"{event_title}\"."


async def handle_message(
    body: bytes,
    broadcaster: RoomBroadcaster,
    session_factory: async_sessionmaker = AsyncSessionLocal,
) -> bool:
    """
    Persist and push one notification.

    Returns:
        True if a notification was delivered, False if it was skipped
    """
    data = json.loads(body.decode())
    try:
        type = NotificationTypeEnum(data.get("type"))
    except ValueError:
        logger.warning(f"Ignoring message with unknown type {data.get('type')!r}")
        return False
    kind = data.get("kind")

    async with session_factory() as session:
        recipient = await get_user(session, data.get("recipient_id"))
        if recipient is None:
            logger.warning(f"Notification recipient {data.get('recipient_id')} no longer exists")
            return False
        if not recipient.notify_rsvp_updates:
            logger.debug(f"User {recipient.id} has RSVP notifications disabled")
            return False
        ev = await get_event(session, data.get("event_id"))
        if ev is None:
            logger.warning(f"Notification for missing event {data.get('event_id')}")
            return False
        actor = await get_user(session, data.get("actor_id"))
        actor_name = (actor.full_name or actor.email) if actor else "Someone"
        confirmed = await AttendanceLedger(session).get_confirmed_count(ev.id)

        title, message = _compose(type, kind, ev.title, actor_name, confirmed, ev.capacity)
        notification = await create_notification(session, recipient.id, ev.id, type, title, message)

    await broadcaster.send_to_user(recipient.id, {
        "type": "notification",
        "id": str(notification.id),
        "notificationType": type.value,
        "eventId": str(ev.id),
        "title": title,
        "message": message,
    })
    return True


async def run_worker(broadcaster: RoomBroadcaster, session_factory: async_sessionmaker = AsyncSessionLocal):
    max_retries = 10
    delay = 5  # seconds
    for attempt in range(1, max_retries + 1):
        try:
            connection = await connect_robust(settings.RABBITMQ_URL)
            logger.info("Notification worker connected to RabbitMQ")
            break
        except Exception as e:
            logger.error(f"RabbitMQ connection failed (attempt {attempt}/{max_retries}): {e}")
            if attempt == max_retries:
                raise
            await asyncio.sleep(delay)
    async with connection:
        channel = await connection.channel()
        await channel.set_qos(prefetch_count=10)
        exchange = await channel.declare_exchange(EXCHANGE_NAME, ExchangeType.TOPIC, durable=True)
        queue = await channel.declare_queue(QUEUE_NAME, durable=True)
        await queue.bind(exchange, routing_key="rsvp.*")
        async with queue.iterator() as queue_iter:
            async for message in queue_iter:
                async with message.process():
                    try:
                        await handle_message(message.body, broadcaster, session_factory)
                    except Exception as e:
                        logger.exception(f"Error handling message: {e}")
