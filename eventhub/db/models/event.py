from sqlalchemy import CheckConstraint, Column, Integer, String, Text, DateTime, ForeignKey, func, Enum, Index, Uuid
import uuid
from sqlalchemy.orm import relationship
from eventhub.db.session import Base
import enum

class EventStatusEnum(str, enum.Enum):
    draft = "draft"
    published = "published"
    cancelled = "cancelled"
    completed = "completed"

class Event(Base):
    __tablename__ = "events"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    starts_at = Column(DateTime(timezone=True), nullable=True)
    capacity = Column(Integer, nullable=False)
    status = Column(Enum(EventStatusEnum), default=EventStatusEnum.published, nullable=False)
    created_by = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    creator = relationship("User")
    attendances = relationship("Attendance", back_populates="event", order_by="Attendance.joined_at")

    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_event_capacity_positive"),
        Index('idx_event_date', 'starts_at'),
        Index('idx_event_organizer', 'created_by'),
    )
