from datetime import datetime, timezone
from sqlalchemy import Column, DateTime, ForeignKey, Enum, Index, UniqueConstraint, Uuid
import uuid
from sqlalchemy.orm import relationship
from eventhub.db.session import Base
import enum


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AttendanceStatusEnum(str, enum.Enum):
    confirmed = "confirmed"
    waitlist = "waitlist"
    cancelled = "cancelled"

    @property
    def is_active(self) -> bool:
        return self is not AttendanceStatusEnum.cancelled


class Attendance(Base):
    """
    One row per (event, user) pair.

    Rows are never deleted: cancelling flips the status so the same row is
    reused when the user RSVPs again.
    """
    __tablename__ = "attendances"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_id = Column(Uuid(as_uuid=True), ForeignKey("events.id"), nullable=False)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)
    status = Column(Enum(AttendanceStatusEnum), nullable=False)
    joined_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    user = relationship("User")
    event = relationship("Event", back_populates="attendances")

    __table_args__ = (
        UniqueConstraint('event_id', 'user_id', name='uq_attendance_event_user'),
        Index('idx_attendance_event_status', 'event_id', 'status'),
        Index('idx_attendance_user', 'user_id'),
    )
