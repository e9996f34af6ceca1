"""
Room-scoped fan-out over live WebSocket connections.

Each connection may sit in any number of event rooms (one per event page the
client has open) and may additionally be attached to a user id for personal
notifications. Nothing is buffered: a message published to a room reaches the
connections that are members at that moment and is then forgotten.
"""
from typing import Any, Dict, Optional, Protocol, Set
import asyncio
import json

from eventhub.core.logging import logger


class Socket(Protocol):
    async def send_text(self, data: str) -> None: ...


class RoomBroadcaster:
    def __init__(self):
        self.connections: Dict[str, Socket] = {}
        # event_id -> connection ids
        self.rooms: Dict[str, Set[str]] = {}
        # connection id -> event ids, so disconnect can leave every room
        self.memberships: Dict[str, Set[str]] = {}
        # user_id -> connection ids
        self.users: Dict[str, Set[str]] = {}
        self.connection_users: Dict[str, str] = {}
        self.lock = asyncio.Lock()
        # a room lock lives while publishes hold or wait on it
        self._room_locks: Dict[str, asyncio.Lock] = {}
        self._publishers: Dict[str, int] = {}

    async def register(self, connection_id: str, socket: Socket) -> None:
        async with self.lock:
            self.connections[connection_id] = socket
            self.memberships.setdefault(connection_id, set())

    async def subscribe(self, connection_id: str, event_id) -> None:
        room = str(event_id)
        async with self.lock:
            if connection_id not in self.connections:
                raise KeyError(f"Unknown connection {connection_id}")
            self.rooms.setdefault(room, set()).add(connection_id)
            self.memberships.setdefault(connection_id, set()).add(room)
        logger.debug(f"Connection {connection_id} joined room event:{room}")

    async def unsubscribe(self, connection_id: str, event_id) -> None:
        async with self.lock:
            self._leave(connection_id, str(event_id))
        logger.debug(f"Connection {connection_id} left room event:{event_id}")

    async def attach_user(self, connection_id: str, user_id) -> None:
        async with self.lock:
            if connection_id not in self.connections:
                raise KeyError(f"Unknown connection {connection_id}")
            self.users.setdefault(str(user_id), set()).add(connection_id)
            self.connection_users[connection_id] = str(user_id)

    async def disconnect(self, connection_id: str) -> None:
        """Forget a connection and remove it from every room it joined."""
        async with self.lock:
            self._forget(connection_id)

    def _leave(self, connection_id: str, room: str) -> None:
        members = self.rooms.get(room)
        if members is not None:
            members.discard(connection_id)
            if not members:
                self.rooms.pop(room, None)
        rooms = self.memberships.get(connection_id)
        if rooms is not None:
            rooms.discard(room)

    def _forget(self, connection_id: str) -> None:
        for room in list(self.memberships.get(connection_id, ())):
            self._leave(connection_id, room)
        self.memberships.pop(connection_id, None)
        self.connections.pop(connection_id, None)
        user_id = self.connection_users.pop(connection_id, None)
        if user_id is not None:
            conns = self.users.get(user_id, set())
            conns.discard(connection_id)
            if not conns:
                self.users.pop(user_id, None)

    def members(self, event_id) -> Set[str]:
        return set(self.rooms.get(str(event_id), ()))

    def rooms_for(self, connection_id: str) -> Set[str]:
        return set(self.memberships.get(connection_id, ()))

    async def publish(self, event_id, message: Dict[str, Any]) -> int:
        """
        Deliver ``message`` to every connection currently in the event's room.

        Sends for one room go out under that room's lock, so two publishes for
        the same event reach each connection in call order.

        Returns:
            Number of connections the message was delivered to
        """
        room = str(event_id)
        async with self.lock:
            if room not in self.rooms:
                return 0
            room_lock = self._room_locks.setdefault(room, asyncio.Lock())
            self._publishers[room] = self._publishers.get(room, 0) + 1
        try:
            async with room_lock:
                async with self.lock:
                    targets = [
                        (cid, self.connections[cid])
                        for cid in self.rooms.get(room, ())
                        if cid in self.connections
                    ]
                return await self._deliver(targets, message)
        finally:
            async with self.lock:
                self._publishers[room] -= 1
                if not self._publishers[room]:
                    del self._publishers[room]
                    del self._room_locks[room]

    async def send_to_user(self, user_id, message: Dict[str, Any]) -> int:
        async with self.lock:
            targets = [
                (cid, self.connections[cid])
                for cid in self.users.get(str(user_id), ())
                if cid in self.connections
            ]
        return await self._deliver(targets, message)

    async def _deliver(self, targets, message: Dict[str, Any]) -> int:
        data = json.dumps(message, default=str)
        delivered = 0
        broken = []
        for cid, socket in targets:
            try:
                await socket.send_text(data)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping connection {cid} after failed send: {e}")
                broken.append(cid)
        if broken:
            async with self.lock:
                for cid in broken:
                    self._forget(cid)
        return delivered

    def connection_count(self, event_id: Optional[str] = None) -> int:
        if event_id is None:
            return len(self.connections)
        return len(self.rooms.get(str(event_id), ()))
