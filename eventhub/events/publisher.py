import json
import asyncio
from aio_pika import connect_robust, Message, ExchangeType, DeliveryMode
from aio_pika.abc import AbstractRobustConnection, AbstractChannel
from typing import Optional, Tuple
from eventhub.core.config import settings
from eventhub.core.errors import TransientIOError
from eventhub.core.logging import logger

EXCHANGE_NAME = "eventhub.events"

_connection: Optional[AbstractRobustConnection] = None
_channel: Optional[AbstractChannel] = None
_connect_lock = asyncio.Lock()


async def get_rabbit_connection() -> Tuple[AbstractRobustConnection, AbstractChannel]:
    global _connection, _channel
    async with _connect_lock:
        if _connection and not _connection.is_closed:
            return _connection, _channel
        _connection = await connect_robust(settings.RABBITMQ_URL)
        _channel = await _connection.channel()
        logger.info("Publisher connected to RabbitMQ")
        return _connection, _channel


async def publish_event(routing_key: str, payload: dict) -> None:
    """
    Publish a JSON message on the topic exchange.

    Raises:
        TransientIOError: If the broker cannot be reached or refuses the message
    """
    try:
        _, channel = await get_rabbit_connection()
        exchange = await channel.declare_exchange(EXCHANGE_NAME, ExchangeType.TOPIC, durable=True)
        body = json.dumps(payload, default=str).encode()
        message = Message(body, content_type="application/json", delivery_mode=DeliveryMode.PERSISTENT)
        await exchange.publish(message, routing_key=routing_key)
    except Exception as e:
        raise TransientIOError(f"Could not publish {routing_key}: {e}") from e


async def close_publisher() -> None:
    global _connection, _channel
    if _connection and not _connection.is_closed:
        await _connection.close()
    _connection = None
    _channel = None
