import logging

from fastapi import APIRouter, HTTPException, Request

from config import settings
from database import db
from services import sms_gateway, now_iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

CHANNEL_STATUS = {
    "queued": "sent",
    "sending": "sent",
    "sent": "sent",
    "received": "sent",
    "delivered": "delivered",
    "undelivered": "failed",
    "failed": "failed",
}


@router.post("/sms-status")
async def sms_status_callback(request: Request):
    """Twilio delivery status callback for messages sent through the gateway."""
    form = await request.form()
    params = {key: value for key, value in form.items()}

    if settings.SMS_VALIDATE_WEBHOOKS:
        signature = request.headers.get("X-Twilio-Signature", "")
        url = f"{settings.PUBLIC_BASE_URL.rstrip('/')}{request.url.path}"
        if not signature or not sms_gateway.validate_webhook_signature(signature, url, params):
            client = request.client.host if request.client else "-"
            logger.warning("Rejected SMS status callback with invalid signature from %s", client)
            raise HTTPException(status_code=403, detail="Invalid webhook signature")

    message_id = params.get("MessageSid")
    provider_status = params.get("MessageStatus")
    if not message_id or not provider_status:
        raise HTTPException(status_code=400, detail="MessageSid and MessageStatus are required")

    changes = {
        "channels.sms.status": CHANNEL_STATUS.get(provider_status, "pending"),
        "updated_at": now_iso(),
    }
    if params.get("ErrorCode"):
        changes["channels.sms.error"] = f"{params['ErrorCode']}: {params.get('ErrorMessage', '')}".strip(": ")

    result = await db.notifications.update_one({"channels.sms.message_id": message_id}, {"$set": changes})
    if result.matched_count == 0:
        logger.info("SMS status %s for unknown message %s", provider_status, message_id)
    else:
        logger.info("SMS %s is now %s", message_id, provider_status)

    return {
        "success": True,
        "data": {
            "message_id": message_id,
            "status": provider_status,
            "description": sms_gateway.get_delivery_status(provider_status),
            "matched": result.matched_count,
        },
    }
