from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from uuid import UUID
from datetime import datetime
from eventhub.db.models.attendance import AttendanceStatusEnum as AttendanceStatus
from eventhub.db.models.event import EventStatusEnum as EventStatus


class EventCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    location: Optional[str] = None
    starts_at: Optional[datetime] = None
    capacity: int = Field(gt=0)
    status: EventStatus = EventStatus.published


class EventUpdate(BaseModel):
    """Partial update; only the creator or an admin may apply it."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    location: Optional[str] = None
    starts_at: Optional[datetime] = None
    capacity: Optional[int] = Field(default=None, gt=0)
    status: Optional[EventStatus] = None


class EventOut(BaseModel):
    id: UUID
    title: str
    description: Optional[str]
    location: Optional[str]
    starts_at: Optional[datetime]
    capacity: int
    status: EventStatus
    created_by: UUID
    attendee_count: int = 0
    available_spots: int = 0
    is_full: bool = False

    model_config = ConfigDict(from_attributes=True)


class RSVPOut(BaseModel):
    event_id: UUID
    user_id: UUID
    status: AttendanceStatus
    joined_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RSVPCancelOut(BaseModel):
    message: str = "RSVP cancelled"
    promoted: Optional[UUID] = None


class AttendeeOut(BaseModel):
    user_id: UUID
    status: AttendanceStatus
    joined_at: datetime


class AttendanceSummary(BaseModel):
    """Derived view over the attendance ledger for one event."""
    event_id: UUID
    capacity: int
    confirmed_count: int
    waitlist_count: int
    available_spots: int
    is_full: bool
    attendees: List[AttendeeOut] = []


class NotificationOut(BaseModel):
    id: UUID
    event_id: Optional[UUID]
    type: str
    title: str
    message: str
    is_read: bool
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)
