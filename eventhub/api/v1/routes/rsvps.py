from fastapi import APIRouter, BackgroundTasks, Depends, Request
from eventhub.api.deps import get_rsvp_service
from eventhub.auth import get_current_user
from eventhub.core.config import settings
from eventhub.core.errors import NotFoundError
from eventhub.core.rate_limit import limiter
from eventhub.db.models.user import User
from eventhub.schemas import AttendanceSummary, RSVPCancelOut, RSVPOut
from eventhub.services.rsvp_service import RSVPService

router = APIRouter(prefix="/events", tags=["rsvps"])


@router.post("/{event_id}/rsvp", response_model=RSVPOut)
@limiter.limit(settings.RSVP_RATE_LIMIT)
async def rsvp_to_event(
    request: Request,
    event_id: str,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    rsvp_service: RSVPService = Depends(get_rsvp_service)
):
    """
    RSVP to an event. Open to every authenticated role, guests included.

    The caller is confirmed while the event has free capacity and waitlisted
    otherwise; a full event never rejects the request.
    """
    decision = await rsvp_service.rsvp(event_id, user.id, background_tasks)
    return decision.attendance


@router.delete("/{event_id}/rsvp", response_model=RSVPCancelOut)
@limiter.limit(settings.RSVP_RATE_LIMIT)
async def cancel_rsvp(
    request: Request,
    event_id: str,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    rsvp_service: RSVPService = Depends(get_rsvp_service)
):
    """
    Cancel the caller's RSVP. Succeeds even if there was nothing to cancel.

    ``promoted`` names the waitlisted user who took the freed slot, when
    waitlist auto-promotion is enabled.
    """
    result = await rsvp_service.cancel(event_id, user.id, background_tasks)
    return RSVPCancelOut(promoted=result.promoted_user_id)


@router.get("/{event_id}/rsvp", response_model=RSVPOut)
async def get_my_rsvp(
    event_id: str,
    user: User = Depends(get_current_user),
    rsvp_service: RSVPService = Depends(get_rsvp_service)
):
    record = await rsvp_service.get_own_attendance(event_id, user.id)
    if record is None:
        raise NotFoundError("No RSVP for this event")
    return record


@router.get("/{event_id}/attendance", response_model=AttendanceSummary)
async def get_attendance(
    event_id: str,
    rsvp_service: RSVPService = Depends(get_rsvp_service)
):
    """
    Current attendance state for an event.

    Clients call this after an ``rsvpUpdated`` message and after reconnecting,
    since realtime messages are never replayed.
    """
    return await rsvp_service.summary(event_id)
