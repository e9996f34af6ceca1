"""
Unit tests for room-scoped realtime fan-out.
"""
import asyncio
import pytest

from eventhub.websocket.broadcaster import RoomBroadcaster
from tests.helpers import FakeSocket

UPDATE = {"type": "rsvpUpdated", "eventId": "event-1"}


async def _connect(broadcaster: RoomBroadcaster, connection_id: str, *rooms, fail: bool = False) -> FakeSocket:
    socket = FakeSocket(fail=fail)
    await broadcaster.register(connection_id, socket)
    for room in rooms:
        await broadcaster.subscribe(connection_id, room)
    return socket


class StalledSocket(FakeSocket):
    """Holds its first frame until ``release`` is set."""

    def __init__(self):
        super().__init__()
        self.stalled = asyncio.Event()
        self.release = asyncio.Event()

    async def send_text(self, data: str) -> None:
        if not self.stalled.is_set():
            self.stalled.set()
            await self.release.wait()
        await super().send_text(data)


@pytest.mark.unit
@pytest.mark.asyncio
class TestRoomMembership:
    """Joining and leaving event rooms."""

    async def test_subscribe_adds_member(self):
        broadcaster = RoomBroadcaster()
        await _connect(broadcaster, "c1", "event-1")

        assert broadcaster.members("event-1") == {"c1"}
        assert broadcaster.rooms_for("c1") == {"event-1"}

    async def test_subscribe_unknown_connection(self):
        with pytest.raises(KeyError):
            await RoomBroadcaster().subscribe("ghost", "event-1")

    async def test_unsubscribe_removes_member(self):
        broadcaster = RoomBroadcaster()
        await _connect(broadcaster, "c1", "event-1", "event-2")
        await broadcaster.unsubscribe("c1", "event-1")

        assert broadcaster.members("event-1") == set()
        assert broadcaster.rooms_for("c1") == {"event-2"}

    async def test_disconnect_leaves_every_room(self):
        broadcaster = RoomBroadcaster()
        await _connect(broadcaster, "c1", "event-1", "event-2")
        await broadcaster.attach_user("c1", "user-1")
        await broadcaster.disconnect("c1")

        assert broadcaster.members("event-1") == set()
        assert broadcaster.members("event-2") == set()
        assert broadcaster.connection_count() == 0
        assert await broadcaster.send_to_user("user-1", {"type": "ping"}) == 0

    async def test_uuid_and_string_ids_share_a_room(self):
        import uuid
        event_id = uuid.uuid4()
        broadcaster = RoomBroadcaster()
        await _connect(broadcaster, "c1", event_id)

        assert broadcaster.members(str(event_id)) == {"c1"}


@pytest.mark.unit
@pytest.mark.asyncio
class TestPublish:
    """Delivery of room messages."""

    async def test_only_room_members_receive(self):
        broadcaster = RoomBroadcaster()
        inside = await _connect(broadcaster, "c1", "event-1")
        elsewhere = await _connect(broadcaster, "c2", "event-2")
        lobby = await _connect(broadcaster, "c3")

        delivered = await broadcaster.publish("event-1", UPDATE)

        assert delivered == 1
        assert inside.messages == [UPDATE]
        assert elsewhere.messages == []
        assert lobby.messages == []

    async def test_empty_room_delivers_nothing(self):
        broadcaster = RoomBroadcaster()
        assert await broadcaster.publish("event-1", UPDATE) == 0

    async def test_no_replay_for_late_joiners(self):
        """Messages are not buffered for connections that join afterwards."""
        broadcaster = RoomBroadcaster()
        await _connect(broadcaster, "c1", "event-1")
        await broadcaster.publish("event-1", UPDATE)
        late = await _connect(broadcaster, "c2", "event-1")

        assert late.messages == []

    async def test_same_room_messages_keep_order(self):
        broadcaster = RoomBroadcaster()
        socket = await _connect(broadcaster, "c1", "event-1")

        await asyncio.gather(*(
            broadcaster.publish("event-1", {"type": "rsvpUpdated", "seq": n}) for n in range(5)
        ))

        assert [m["seq"] for m in socket.messages] == list(range(5))

    async def test_order_survives_room_emptying_mid_send(self):
        """A connection that leaves and rejoins while a send is stuck still gets messages in order."""
        broadcaster = RoomBroadcaster()
        socket = StalledSocket()
        await broadcaster.register("c1", socket)
        await broadcaster.subscribe("c1", "event-1")

        first = asyncio.create_task(broadcaster.publish("event-1", {"type": "rsvpUpdated", "seq": 1}))
        await socket.stalled.wait()
        await broadcaster.unsubscribe("c1", "event-1")
        await broadcaster.subscribe("c1", "event-1")
        second = asyncio.create_task(broadcaster.publish("event-1", {"type": "rsvpUpdated", "seq": 2}))
        for _ in range(5):
            await asyncio.sleep(0)
        socket.release.set()
        await asyncio.gather(first, second)

        assert [m["seq"] for m in socket.messages] == [1, 2]
        assert broadcaster._room_locks == {}

    async def test_broken_socket_is_dropped(self):
        """A failed send removes that connection without affecting others."""
        broadcaster = RoomBroadcaster()
        healthy = await _connect(broadcaster, "ok", "event-1")
        await _connect(broadcaster, "broken", "event-1", fail=True)

        delivered = await broadcaster.publish("event-1", UPDATE)

        assert delivered == 1
        assert healthy.messages == [UPDATE]
        assert broadcaster.members("event-1") == {"ok"}
        assert broadcaster.connection_count() == 1

    async def test_send_to_user_reaches_all_their_connections(self):
        broadcaster = RoomBroadcaster()
        phone = await _connect(broadcaster, "phone")
        laptop = await _connect(broadcaster, "laptop")
        other = await _connect(broadcaster, "other")
        await broadcaster.attach_user("phone", "user-1")
        await broadcaster.attach_user("laptop", "user-1")
        await broadcaster.attach_user("other", "user-2")

        assert await broadcaster.send_to_user("user-1", {"type": "notification"}) == 2
        assert phone.messages == laptop.messages == [{"type": "notification"}]
        assert other.messages == []
