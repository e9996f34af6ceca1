from fastapi import APIRouter, BackgroundTasks, Depends
from eventhub.api.deps import get_rsvp_service
from eventhub.auth import get_current_user, role_required
from eventhub.db.models.user import User
from eventhub.db.session import get_session
from eventhub.schemas import EventCreate, EventOut, EventUpdate
from eventhub.services.event_service import EventService
from eventhub.services.rsvp_service import RSVPService
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/events", tags=["events"])

def get_event_service(session: AsyncSession = Depends(get_session)) -> EventService:
    return EventService(session)

@router.post("", response_model=EventOut, status_code=201)
async def create_event_endpoint(
    payload: EventCreate,
    user: User = Depends(role_required("user")),
    event_service: EventService = Depends(get_event_service)
):
    return await event_service.create_event(payload, user)

@router.get("/{event_id}", response_model=EventOut)
async def get_event_detail(
    event_id: str,
    event_service: EventService = Depends(get_event_service)
):
    return await event_service.get_event_detail(event_id)

@router.patch("/{event_id}", response_model=EventOut)
async def update_event_endpoint(
    event_id: str,
    payload: EventUpdate,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    event_service: EventService = Depends(get_event_service),
    rsvp_service: RSVPService = Depends(get_rsvp_service)
):
    """Creator or admin only. Raising capacity may promote waitlisted users."""
    return await event_service.update_event(event_id, payload, user, rsvp_service, background_tasks)
