from sqlalchemy import Boolean, Column, String, DateTime, func, Enum, Uuid
import uuid
from eventhub.db.session import Base
import enum

class RoleEnum(str, enum.Enum):
    user = "user"
    admin = "admin"
    guest = "guest"

class User(Base):
    __tablename__ = "users"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    role = Column(Enum(RoleEnum), default=RoleEnum.user, nullable=False)
    # read by the notification worker before delivering anything RSVP related
    notify_rsvp_updates = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
