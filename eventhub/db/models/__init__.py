"""Database models package."""
from eventhub.db.models.user import User, RoleEnum
from eventhub.db.models.event import Event, EventStatusEnum
from eventhub.db.models.attendance import Attendance, AttendanceStatusEnum
from eventhub.db.models.notification import Notification, NotificationTypeEnum

__all__ = [
    "User",
    "RoleEnum",
    "Event",
    "EventStatusEnum",
    "Attendance",
    "AttendanceStatusEnum",
    "Notification",
    "NotificationTypeEnum",
]
