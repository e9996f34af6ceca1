from fastapi import APIRouter, Depends
from typing import Dict, Union
from eventhub.api.deps import get_broadcaster
from eventhub.websocket.broadcaster import RoomBroadcaster

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", response_model=Dict[str, Union[str, int]])
async def health_check(broadcaster: RoomBroadcaster = Depends(get_broadcaster)):
    """
    Basic health check endpoint.

    Returns:
        Service status and the number of live realtime connections
    """
    return {"status": "healthy", "connections": broadcaster.connection_count()}
