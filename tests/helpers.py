"""Test doubles shared by unit and integration tests."""
import json
from typing import List, Tuple

from eventhub.core.errors import TransientIOError
from eventhub.core.security import create_access_token
from eventhub.db.models import User


class FakeSocket:
    """Stands in for a WebSocket; records every frame sent to it."""

    def __init__(self, fail: bool = False):
        self.sent: List[str] = []
        self.fail = fail

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)

    @property
    def messages(self) -> List[dict]:
        return [json.loads(m) for m in self.sent]


class RecordingPublisher:
    """Replaces the RabbitMQ publisher; keeps (routing_key, payload) pairs."""

    def __init__(self, fail: bool = False):
        self.published: List[Tuple[str, dict]] = []
        self.fail = fail

    async def __call__(self, routing_key: str, payload: dict) -> None:
        if self.fail:
            raise TransientIOError("broker down")
        self.published.append((routing_key, payload))

    def types_for(self, recipient_id) -> List[str]:
        return [p["type"] for _, p in self.published if p["recipient_id"] == str(recipient_id)]


def token_for(user: User) -> str:
    return create_access_token({"sub": str(user.id), "role": user.role.value})


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {token_for(user)}"}


class InMemoryRedis:
    """The handful of ``redis.asyncio`` calls the cache makes, kept in a dict."""

    def __init__(self):
        self.data = {}

    async def get(self, key: str):
        return self.data.get(key)

    async def setex(self, key: str, expire: int, value: str) -> None:
        self.data[key] = value

    async def incr(self, key: str) -> int:
        value = int(self.data.get(key, 0)) + 1
        self.data[key] = str(value)
        return value
