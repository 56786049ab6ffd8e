"""
Notification routes.

Endpoints:
- GET /api/notifications
- PUT /api/notifications/{notification_id}/read
"""

from fastapi import APIRouter, Depends, HTTPException

from ..models import Profile
from ..services import NotificationService
from .deps import internal_error


def create_notification_routes(notifier: NotificationService, get_current_user) -> APIRouter:

    router = APIRouter(prefix="/api/notifications", tags=["notifications"])

    @router.get("")
    async def get_notifications(limit: int = 50, user: Profile = Depends(get_current_user)):
        """Get user notifications"""
        try:
            return await notifier.list_for_user(user.user_id, min(max(limit, 1), 200))
        except Exception as e:
            raise internal_error("listing notifications", e)

    @router.put("/{notification_id}/read")
    async def mark_notification_read(notification_id: str, user: Profile = Depends(get_current_user)):
        """Mark notification as read"""
        try:
            found = await notifier.mark_read(notification_id, user.user_id)
        except Exception as e:
            raise internal_error("updating notification", e)
        if not found:
            raise HTTPException(status_code=404, detail="Notification not found")
        return {"message": "Notification marked as read"}

    return router
