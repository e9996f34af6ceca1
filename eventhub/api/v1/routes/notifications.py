from fastapi import APIRouter, Depends, Query
from eventhub.auth import get_current_user
from eventhub.db.models.user import User
from eventhub.db.session import get_session
from eventhub.schemas import NotificationOut
from eventhub.services.notification_service import NotificationService
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

router = APIRouter(prefix="/notifications", tags=["notifications"])

def get_notification_service(session: AsyncSession = Depends(get_session)) -> NotificationService:
    return NotificationService(session)

@router.get("", response_model=List[NotificationOut])
async def list_my_notifications(
    unread_only: bool = Query(False, description="Only return unread notifications"),
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user),
    notification_service: NotificationService = Depends(get_notification_service)
):
    return await notification_service.list_for_user(user.id, unread_only=unread_only, limit=limit)

@router.patch("/{notification_id}/read", response_model=NotificationOut)
async def mark_notification_read(
    notification_id: str,
    user: User = Depends(get_current_user),
    notification_service: NotificationService = Depends(get_notification_service)
):
    return await notification_service.mark_read(notification_id, user.id)
