"""
Blood request creation and hospital notification, shared by the request,
hospital and recipient routers.
"""
import logging
from typing import Optional

from fastapi import HTTPException

from database import db
from models import BloodRequest, BloodRequestCreate
from .email_service import email_service
from .helpers import generate_request_code

logger = logging.getLogger(__name__)

VALID_TRANSITIONS = {
    "pending": ("approved", "rejected", "cancelled"),
    "approved": ("fulfilled", "cancelled"),
    "fulfilled": (),
    "rejected": (),
    "cancelled": (),
}


async def resolve_hospital_id(current_user: dict, hospital_id: Optional[str]) -> str:
    if hospital_id:
        hospital = await db.hospitals.find_one({"id": hospital_id}, {"_id": 0, "id": 1})
        if not hospital:
            raise HTTPException(status_code=404, detail="Hospital not found")
        return hospital["id"]

    hospital = await db.hospitals.find_one(
        {"staff_members.user_id": current_user["id"]}, {"_id": 0, "id": 1}
    )
    if not hospital:
        raise HTTPException(status_code=400, detail="Hospital is required for a blood request")
    return hospital["id"]


async def create_blood_request(
    request_data: BloodRequestCreate,
    current_user: dict,
    hospital_id: Optional[str] = None,
    recipient_id: Optional[str] = None,
) -> dict:
    recipient_id = recipient_id or request_data.recipient_id
    if recipient_id and not await db.recipients.find_one({"id": recipient_id}, {"_id": 1}):
        raise HTTPException(status_code=404, detail="Recipient not found")

    payload = request_data.model_dump(mode="json")
    payload.update({
        "hospital_id": await resolve_hospital_id(current_user, hospital_id or request_data.hospital_id),
        "recipient_id": recipient_id,
        "requested_by": current_user["id"],
    })
    request = BloodRequest(**payload)
    request.request_code = await generate_request_code()

    doc = request.model_dump(mode="json")
    await db.blood_requests.insert_one(doc)
    doc.pop("_id", None)
    logger.info("Blood request %s created for %s x%d", doc["request_code"], doc["blood_type"], doc["units_required"])
    return doc


async def notify_hospital(request: dict):
    hospital = await db.hospitals.find_one({"id": request["hospital_id"]}, {"_id": 0, "contact_info": 1})
    email = (hospital or {}).get("contact_info", {}).get("email")
    if not email:
        return None
    result = await email_service.send_blood_request_notification(email, request)
    if not result.get("success"):
        logger.warning("Request status email for %s not sent: %s", request["id"], result.get("error"))
    return result
