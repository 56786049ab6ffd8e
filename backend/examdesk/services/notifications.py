"""
Notifications - in-app notification records plus Expo push dispatch.

Push delivery is fire-and-forget: a failed push is logged and never fails
the operation that triggered it.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..config.settings import settings as default_settings
from ..utils import new_id, utcnow

logger = logging.getLogger(__name__)


class NotificationService:

    def __init__(self, db, settings=None, http_client: Optional[httpx.AsyncClient] = None):
        self.db = db
        self.settings = settings or default_settings
        self.http_client = http_client

    async def notify(
        self,
        user_id: str,
        notification_type: str,
        title: str,
        message: str,
        link: Optional[str] = None,
    ) -> str:
        """Store a notification for a user and push it to their device."""
        notification_id = new_id("notif")
        await self.db.notifications.insert_one({
            "notification_id": notification_id,
            "user_id": user_id,
            "type": notification_type,
            "title": title,
            "message": message,
            "link": link,
            "is_read": False,
            "created_at": utcnow(),
        })

        if self.settings.PUSH_ENABLED:
            profile = await self.db.profiles.find_one(
                {"user_id": user_id},
                {"_id": 0, "push_token": 1}
            )
            if profile and profile.get("push_token"):
                await self.push(profile["push_token"], title, message, {"link": link})

        return notification_id

    async def notify_role(self, role: str, notification_type: str, title: str,
                          message: str, link: Optional[str] = None) -> int:
        users = await self.db.profiles.find(
            {"role": role},
            {"_id": 0, "user_id": 1}
        ).to_list(100)
        for user in users:
            await self.notify(user["user_id"], notification_type, title, message, link)
        return len(users)

    async def push(self, token: str, title: str, body: str,
                   data: Optional[Dict[str, Any]] = None) -> bool:
        payload = {
            "to": token,
            "sound": "default",
            "title": title,
            "body": body,
            "data": data or {},
        }
        try:
            if self.http_client is not None:
                response = await self.http_client.post(self.settings.EXPO_PUSH_URL, json=payload)
            else:
                async with httpx.AsyncClient(timeout=self.settings.PUSH_TIMEOUT) as client:
                    response = await client.post(self.settings.EXPO_PUSH_URL, json=payload)
            response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.warning(f"Push notification failed: {e}")
            return False

    async def list_for_user(self, user_id: str, limit: int = 50) -> Dict[str, Any]:
        notifications: List[Dict[str, Any]] = await self.db.notifications.find(
            {"user_id": user_id},
            {"_id": 0}
        ).sort("created_at", -1).limit(limit).to_list(limit)

        unread_count = await self.db.notifications.count_documents({
            "user_id": user_id,
            "is_read": False
        })

        return {
            "notifications": notifications,
            "unread_count": unread_count
        }

    async def mark_read(self, notification_id: str, user_id: str) -> bool:
        result = await self.db.notifications.update_one(
            {"notification_id": notification_id, "user_id": user_id},
            {"$set": {"is_read": True, "read_at": utcnow()}}
        )
        return result.matched_count > 0
