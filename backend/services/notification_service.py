"""
Notification dispatch.
Stores notification records and delivers them over the requested channels.
"""
import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from database import db
from models import Notification
from .email_service import EmailService, email_service
from .helpers import now_iso
from .sms_gateway import SMSGateway, sms_gateway

logger = logging.getLogger(__name__)

CHANNELS = ("in_app", "sms", "email")


def _is_future(when: Optional[datetime]) -> bool:
    if when is None:
        return False
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when > datetime.now(timezone.utc)


class NotificationService:
    def __init__(self, gateway: SMSGateway = sms_gateway, mailer: EmailService = email_service):
        self.gateway = gateway
        self.mailer = mailer

    async def _send_sms(self, doc: dict, user: dict):
        channel = doc["channels"]["sms"]
        phone = user.get("phone")
        if not phone:
            channel.update({"status": "failed", "error": "No phone number on file"})
            return
        result = await self.gateway.send_sms(phone, f"{doc['title']}: {doc['message']}")
        channel["phone"] = phone
        if result.get("success"):
            channel.update({
                "sent": True,
                "sent_at": now_iso(),
                "message_id": result.get("message_id"),
                "status": "sent",
            })
        else:
            channel.update({"status": "failed", "error": result.get("error")})

    async def _send_email(self, doc: dict, user: dict):
        channel = doc["channels"]["email"]
        html = self.mailer.render(
            "notification.html", title=doc["title"], message=doc["message"], name=user.get("name", "")
        )
        result = await self.mailer.send_email(user["email"], doc["title"], html)
        channel["email"] = user["email"]
        if result.get("success"):
            channel.update({"sent": True, "sent_at": now_iso(), "status": "sent"})
        else:
            channel.update({"status": "failed", "error": result.get("error")})

    async def dispatch(self, doc: dict, channels: Iterable[str]) -> dict:
        """Deliver a stored-shape notification document; channel failures are recorded, not raised."""
        channels = set(channels) & set(CHANNELS)
        user = await db.users.find_one({"id": doc["recipient_id"]}, {"_id": 0, "password_hash": 0})

        if "in_app" in channels:
            doc["channels"]["in_app"].update({"delivered": True, "delivered_at": now_iso()})
        if user is None:
            if channels - {"in_app"}:
                logger.warning("Notification %s has no matching user; skipping external channels", doc["id"])
            return doc
        if "sms" in channels:
            await self._send_sms(doc, user)
        if "email" in channels:
            await self._send_email(doc, user)
        return doc

    async def create(
        self,
        recipient_id: str,
        type: str,
        title: str,
        message: str,
        data: Optional[dict] = None,
        priority: str = "medium",
        channels: Iterable[str] = ("in_app",),
        scheduled_for: Optional[datetime] = None,
        created_by: Optional[str] = None,
    ) -> dict:
        notification = Notification(
            recipient_id=recipient_id,
            type=type,
            title=title,
            message=message,
            data=data or {},
            priority=priority,
            scheduled_for=scheduled_for,
            created_by=created_by,
        )
        doc = notification.model_dump(mode="json")
        doc["requested_channels"] = list(channels)

        if not _is_future(scheduled_for):
            await self.dispatch(doc, channels)

        await db.notifications.insert_one(doc)
        doc.pop("_id", None)
        return doc

    async def create_many(self, recipient_ids: Iterable[str], **kwargs) -> List[dict]:
        return [await self.create(recipient_id, **kwargs) for recipient_id in recipient_ids]


notification_service = NotificationService()
