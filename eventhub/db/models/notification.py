from sqlalchemy import Boolean, Column, String, Text, DateTime, ForeignKey, func, Enum, Index, Uuid
import uuid
from eventhub.db.session import Base
import enum

class NotificationTypeEnum(str, enum.Enum):
    rsvp_update = "rsvp_update"
    rsvp_confirmation = "rsvp_confirmation"
    rsvp_waitlisted = "rsvp_waitlisted"
    rsvp_promoted = "rsvp_promoted"

class Notification(Base):
    __tablename__ = "notifications"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)
    event_id = Column(Uuid(as_uuid=True), ForeignKey("events.id"), nullable=True)
    type = Column(Enum(NotificationTypeEnum), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index('idx_notification_user_created', 'user_id', 'created_at'),
        Index('idx_notification_user_read', 'user_id', 'is_read'),
    )
