"""
Integration tests for event endpoints.
"""
import uuid
import pytest

from eventhub.core.config import settings
from tests.helpers import FakeSocket, auth_headers


def _payload(**overrides) -> dict:
    data = {
        "title": "Tech Meetup",
        "description": "Monthly meetup",
        "location": "Nairobi",
        "starts_at": "2030-01-15T18:00:00Z",
        "capacity": 50,
    }
    data.update(overrides)
    return data


@pytest.mark.integration
@pytest.mark.asyncio
class TestCreateEvent:
    """POST /events"""

    async def test_create_event(self, client, test_user, user_headers):
        response = await client.post("/api/v1/events", json=_payload(), headers=user_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["title"] == "Tech Meetup"
        assert data["capacity"] == 50
        assert data["status"] == "published"
        assert data["created_by"] == str(test_user.id)
        assert data["attendee_count"] == 0
        assert data["available_spots"] == 50
        assert data["is_full"] is False

    async def test_guest_cannot_create(self, client, test_guest):
        response = await client.post("/api/v1/events", json=_payload(), headers=auth_headers(test_guest))
        assert response.status_code == 403

    async def test_admin_can_create(self, client, test_admin):
        response = await client.post("/api/v1/events", json=_payload(), headers=auth_headers(test_admin))
        assert response.status_code == 201

    async def test_create_requires_auth(self, client):
        response = await client.post("/api/v1/events", json=_payload())
        assert response.status_code == 401

    @pytest.mark.parametrize("capacity", [0, -5])
    async def test_capacity_must_be_positive(self, client, user_headers, capacity):
        response = await client.post("/api/v1/events", json=_payload(capacity=capacity), headers=user_headers)
        assert response.status_code == 422


@pytest.mark.integration
@pytest.mark.asyncio
class TestEventDetail:
    """GET /events/{id}"""

    async def test_detail_reflects_attendance(self, client, make_event, test_creator, make_user):
        event = await make_event(test_creator, capacity=1)
        for _ in range(2):
            await client.post(f"/api/v1/events/{event.id}/rsvp", headers=auth_headers(await make_user()))

        response = await client.get(f"/api/v1/events/{event.id}")

        assert response.status_code == 200
        data = response.json()
        assert data["attendee_count"] == 1
        assert data["available_spots"] == 0
        assert data["is_full"] is True

    async def test_detail_unknown_event(self, client):
        response = await client.get(f"/api/v1/events/{uuid.uuid4()}")
        assert response.status_code == 404


@pytest.mark.integration
@pytest.mark.asyncio
class TestUpdateEvent:
    """PATCH /events/{id}"""

    async def test_creator_updates(self, client, test_event, creator_headers):
        response = await client.patch(
            f"/api/v1/events/{test_event.id}", json={"title": "Renamed"}, headers=creator_headers
        )

        assert response.status_code == 200
        assert response.json()["title"] == "Renamed"
        assert response.json()["capacity"] == 2

    async def test_non_creator_forbidden(self, client, test_event, user_headers):
        response = await client.patch(
            f"/api/v1/events/{test_event.id}", json={"capacity": 10}, headers=user_headers
        )
        assert response.status_code == 403

    async def test_admin_can_update(self, client, test_event, test_admin):
        response = await client.patch(
            f"/api/v1/events/{test_event.id}", json={"capacity": 10}, headers=auth_headers(test_admin)
        )

        assert response.status_code == 200
        assert response.json()["capacity"] == 10

    async def test_update_unknown_event(self, client, creator_headers):
        response = await client.patch(f"/api/v1/events/{uuid.uuid4()}", json={"title": "x"}, headers=creator_headers)
        assert response.status_code == 404

    async def test_capacity_below_confirmed_conflicts(self, client, test_event, creator_headers, make_user):
        for _ in range(2):
            await client.post(f"/api/v1/events/{test_event.id}/rsvp", headers=auth_headers(await make_user()))

        response = await client.patch(
            f"/api/v1/events/{test_event.id}", json={"capacity": 1}, headers=creator_headers
        )

        assert response.status_code == 409
        detail = await client.get(f"/api/v1/events/{test_event.id}")
        assert detail.json()["capacity"] == 2

    async def test_capacity_increase_broadcasts(self, client, broadcaster, test_event, creator_headers):
        socket = FakeSocket()
        await broadcaster.register("viewer", socket)
        await broadcaster.subscribe("viewer", test_event.id)

        await client.patch(f"/api/v1/events/{test_event.id}", json={"capacity": 5}, headers=creator_headers)

        assert socket.messages == [{"type": "rsvpUpdated", "eventId": str(test_event.id)}]

    async def test_capacity_increase_promotes_waitlist(
        self, client, publisher, monkeypatch, make_event, test_creator, creator_headers, make_user
    ):
        monkeypatch.setattr(settings, "WAITLIST_AUTO_PROMOTE", True)
        event = await make_event(test_creator, capacity=1)
        first, second = await make_user(), await make_user()
        await client.post(f"/api/v1/events/{event.id}/rsvp", headers=auth_headers(first))
        await client.post(f"/api/v1/events/{event.id}/rsvp", headers=auth_headers(second))

        response = await client.patch(f"/api/v1/events/{event.id}", json={"capacity": 2}, headers=creator_headers)

        assert response.status_code == 200
        assert response.json()["attendee_count"] == 2
        assert publisher.types_for(second.id) == ["rsvp_waitlisted", "rsvp_promoted"]
