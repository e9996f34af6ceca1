from typing import List
from sqlalchemy.ext.asyncio import AsyncSession
from eventhub.core.errors import NotFoundError
from eventhub.db.models.notification import Notification
from eventhub.db.repositories import get_notification, list_notifications


class NotificationService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_for_user(self, user_id, unread_only: bool = False, limit: int = 50) -> List[Notification]:
        return await list_notifications(self.session, user_id, unread_only=unread_only, limit=limit)

    async def mark_read(self, notification_id, user_id) -> Notification:
        """
        Raises:
            NotFoundError: If the notification does not exist or belongs to someone else
        """
        notification = await get_notification(self.session, notification_id)
        if notification is None or notification.user_id != user_id:
            raise NotFoundError("Notification not found")
        if not notification.is_read:
            notification.is_read = True
            await self.session.commit()
            await self.session.refresh(notification)
        return notification
