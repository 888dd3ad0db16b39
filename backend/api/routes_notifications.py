from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from models.crisis import NotificationCategory
from utils.utcnow import utc_iso
from api.routes import get_services

router = APIRouter(tags=["Notifications"])


@router.get("/notifications")
async def list_notifications(
    unread_only: bool = Query(False, alias="unreadOnly"),
    category: Optional[NotificationCategory] = Query(None),
    min_priority: int = Query(1, ge=1, le=5, alias="minPriority"),
    services=Depends(get_services),
):
    items = services.notifications.list_notifications(
        unread_only=unread_only, category=category, min_priority=min_priority
    )
    return {
        "success": True,
        "data": [item.model_dump(mode="json") for item in items],
        "count": len(items),
        "unreadCount": services.notifications.unread_count(),
        "timestamp": utc_iso(),
    }


@router.post("/notifications/{notification_id}/read")
async def mark_notification_read(
    notification_id: str = Path(..., min_length=1, max_length=64),
    services=Depends(get_services),
):
    item = services.notifications.mark_read(notification_id)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Notification '{notification_id}' not found")
    return {
        "success": True,
        "data": item.model_dump(mode="json"),
        "unreadCount": services.notifications.unread_count(),
    }
