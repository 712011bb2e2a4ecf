from typing import Optional

from fastapi import APIRouter, HTTPException, Depends

from database import db
from middleware import require_admin, require_staff, ensure_admin_or_owner
from models import (
    Recipient, RecipientCreate, RecipientUpdate, TransfusionRecord, TransfusionCreate,
    MedicalStatusUpdate, ActiveStatusUpdate, BloodRequestCreate, BloodType, UserRole
)
from services import get_current_user, paginate, pagination_meta, now_iso
from services.blood_requests import create_blood_request
from services.helpers import calculate_age, can_receive_from, can_donate_to
from services.inventory import available_units_by_type

router = APIRouter(prefix="/recipients", tags=["Recipients"])


async def _get_recipient(recipient_id: str) -> dict:
    recipient = await db.recipients.find_one({"id": recipient_id}, {"_id": 0})
    if not recipient:
        raise HTTPException(status_code=404, detail="Recipient not found")
    return recipient


def _ensure_can_access(recipient: dict, current_user: dict):
    if current_user["role"] in ("admin", "hospital_staff"):
        return
    ensure_admin_or_owner(current_user, recipient["user_id"])


async def _recipient_user(recipient: dict) -> dict:
    return await db.users.find_one(
        {"id": recipient["user_id"]}, {"_id": 0, "id": 1, "name": 1, "email": 1, "phone": 1}
    ) or {}


@router.get("")
async def get_recipients(
    page: int = 1,
    limit: int = 10,
    blood_type: Optional[BloodType] = None,
    is_active: Optional[bool] = None,
    current_user: dict = Depends(require_staff)
):
    query = {}
    if blood_type:
        query["blood_type"] = blood_type.value
    if is_active is not None:
        query["is_active"] = is_active

    paging = paginate(page, limit)
    total = await db.recipients.count_documents(query)
    cursor = db.recipients.find(query, {"_id": 0}).sort("created_at", -1)
    recipients = await cursor.skip(paging["skip"]).limit(paging["limit"]).to_list(paging["limit"])
    for recipient in recipients:
        recipient["user"] = await _recipient_user(recipient)
    return {
        "success": True,
        "data": {"recipients": recipients, "pagination": pagination_meta(paging["page"], paging["limit"], total)},
    }


@router.post("", status_code=201)
async def create_recipient(recipient_data: RecipientCreate, current_user: dict = Depends(require_staff)):
    if not recipient_data.user_id:
        raise HTTPException(status_code=400, detail="user_id is required")
    user = await db.users.find_one({"id": recipient_data.user_id}, {"_id": 0, "role": 1})
    if not user or user["role"] != UserRole.RECIPIENT.value:
        raise HTTPException(status_code=400, detail="User must exist and have the recipient role")
    if await db.recipients.find_one({"user_id": recipient_data.user_id}, {"_id": 1}):
        raise HTTPException(status_code=409, detail="Recipient profile already exists for this user")

    recipient = Recipient(**recipient_data.model_dump(mode="json"))
    doc = recipient.model_dump(mode="json")
    await db.recipients.insert_one(doc)
    doc.pop("_id", None)
    return {"success": True, "message": "Recipient created", "data": {"recipient": doc}}


@router.get("/search/compatible/{blood_type}")
async def search_by_compatible_donor(blood_type: BloodType, current_user: dict = Depends(require_staff)):
    """Recipients who can receive blood from a donor of ``blood_type``."""
    compatible = can_donate_to(blood_type.value)
    recipients = await db.recipients.find(
        {"blood_type": {"$in": compatible}, "is_active": True}, {"_id": 0}
    ).to_list(1000)
    return {
        "success": True,
        "data": {
            "donor_blood_type": blood_type.value,
            "compatible_types": compatible,
            "count": len(recipients),
            "recipients": recipients,
        },
    }


@router.get("/search/condition/{condition}")
async def search_by_condition(condition: str, current_user: dict = Depends(require_staff)):
    recipients = await db.recipients.find(
        {"medical_condition": {"$regex": condition, "$options": "i"}}, {"_id": 0}
    ).to_list(1000)
    return {"success": True, "data": {"count": len(recipients), "recipients": recipients}}


@router.get("/{recipient_id}")
async def get_recipient(recipient_id: str, current_user: dict = Depends(get_current_user)):
    recipient = await _get_recipient(recipient_id)
    _ensure_can_access(recipient, current_user)
    recipient["user"] = await _recipient_user(recipient)
    return {"success": True, "data": {"recipient": recipient}}


@router.put("/{recipient_id}")
async def update_recipient(
    recipient_id: str,
    updates: RecipientUpdate,
    current_user: dict = Depends(get_current_user)
):
    recipient = await _get_recipient(recipient_id)
    _ensure_can_access(recipient, current_user)

    changes = updates.model_dump(mode="json", exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    changes["updated_at"] = now_iso()
    await db.recipients.update_one({"id": recipient_id}, {"$set": changes})
    return {"success": True, "message": "Recipient updated", "data": {"recipient": await _get_recipient(recipient_id)}}


@router.get("/{recipient_id}/transfusions")
async def get_transfusion_history(recipient_id: str, current_user: dict = Depends(get_current_user)):
    recipient = await _get_recipient(recipient_id)
    _ensure_can_access(recipient, current_user)
    history = sorted(
        recipient.get("transfusion_history", []), key=lambda record: record["transfusion_date"], reverse=True
    )
    return {
        "success": True,
        "data": {
            "transfusions": history,
            "total_transfusions": len(history),
            "total_units": sum(record["units"] for record in history),
        },
    }


@router.post("/{recipient_id}/transfusions", status_code=201)
async def add_transfusion(
    recipient_id: str,
    body: TransfusionCreate,
    current_user: dict = Depends(require_staff)
):
    recipient = await _get_recipient(recipient_id)
    if body.blood_type.value not in can_receive_from(recipient["blood_type"]):
        raise HTTPException(
            status_code=400,
            detail=f"{body.blood_type.value} is not compatible with recipient blood type {recipient['blood_type']}",
        )

    record = TransfusionRecord(**body.model_dump(mode="json"))
    await db.recipients.update_one(
        {"id": recipient_id},
        {"$push": {"transfusion_history": record.model_dump(mode="json")}, "$set": {"updated_at": now_iso()}},
    )
    return {"success": True, "message": "Transfusion recorded", "data": {"transfusion": record.model_dump(mode="json")}}


@router.get("/{recipient_id}/compatible-blood")
async def get_compatible_blood(recipient_id: str, current_user: dict = Depends(get_current_user)):
    recipient = await _get_recipient(recipient_id)
    _ensure_can_access(recipient, current_user)

    compatible = can_receive_from(recipient["blood_type"])
    totals = await available_units_by_type()
    available = {blood_type: totals.get(blood_type, 0) for blood_type in compatible}
    return {
        "success": True,
        "data": {
            "recipient_blood_type": recipient["blood_type"],
            "compatible_types": compatible,
            "available_units": available,
            "total_available": sum(available.values()),
        },
    }


@router.get("/{recipient_id}/requests")
async def get_recipient_requests(recipient_id: str, current_user: dict = Depends(get_current_user)):
    recipient = await _get_recipient(recipient_id)
    _ensure_can_access(recipient, current_user)
    requests = await db.blood_requests.find(
        {"recipient_id": recipient_id}, {"_id": 0}
    ).sort("created_at", -1).to_list(1000)
    return {"success": True, "data": {"requests": requests}}


@router.post("/{recipient_id}/requests", status_code=201)
async def create_recipient_request(
    recipient_id: str,
    request_data: BloodRequestCreate,
    current_user: dict = Depends(require_staff)
):
    recipient = await _get_recipient(recipient_id)
    if not recipient.get("is_active", True):
        raise HTTPException(status_code=400, detail="Recipient is not active")
    if request_data.blood_type.value not in can_receive_from(recipient["blood_type"]):
        raise HTTPException(status_code=400, detail="Requested blood type is not compatible with the recipient")

    doc = await create_blood_request(request_data, current_user, recipient_id=recipient_id)
    return {"success": True, "message": "Blood request created", "data": {"request": doc}}


@router.get("/{recipient_id}/stats")
async def get_recipient_stats(recipient_id: str, current_user: dict = Depends(get_current_user)):
    recipient = await _get_recipient(recipient_id)
    _ensure_can_access(recipient, current_user)

    history = recipient.get("transfusion_history", [])
    requests = await db.blood_requests.find(
        {"recipient_id": recipient_id}, {"_id": 0, "status": 1, "units_required": 1}
    ).to_list(1000)
    last = max((record["transfusion_date"] for record in history), default=None)

    stats = {
        "personal_info": {
            "age": calculate_age(recipient["date_of_birth"]),
            "blood_type": recipient["blood_type"],
            "medical_condition": recipient["medical_condition"],
            "is_active": recipient.get("is_active", True),
        },
        "transfusion_stats": {
            "total_transfusions": len(history),
            "total_units_received": sum(record["units"] for record in history),
            "last_transfusion_date": last,
        },
        "request_stats": {
            "total_requests": len(requests),
            "pending_requests": sum(1 for r in requests if r["status"] == "pending"),
            "fulfilled_requests": sum(1 for r in requests if r["status"] == "fulfilled"),
        },
    }
    return {"success": True, "data": {"stats": stats}}


@router.patch("/{recipient_id}/medical-status")
async def update_medical_status(
    recipient_id: str,
    body: MedicalStatusUpdate,
    current_user: dict = Depends(require_staff)
):
    await _get_recipient(recipient_id)
    changes = body.model_dump(exclude_none=True)
    changes["updated_at"] = now_iso()
    await db.recipients.update_one({"id": recipient_id}, {"$set": changes})
    return {
        "success": True,
        "message": "Medical status updated",
        "data": {"recipient": await _get_recipient(recipient_id)},
    }


@router.patch("/{recipient_id}/status")
async def update_active_status(
    recipient_id: str,
    body: ActiveStatusUpdate,
    current_user: dict = Depends(require_staff)
):
    await _get_recipient(recipient_id)
    await db.recipients.update_one(
        {"id": recipient_id}, {"$set": {"is_active": body.is_active, "updated_at": now_iso()}}
    )
    state = "activated" if body.is_active else "deactivated"
    return {"success": True, "message": f"Recipient {state}", "data": {"recipient": await _get_recipient(recipient_id)}}


@router.delete("/{recipient_id}")
async def delete_recipient(recipient_id: str, current_user: dict = Depends(require_admin)):
    await _get_recipient(recipient_id)
    open_requests = await db.blood_requests.count_documents(
        {"recipient_id": recipient_id, "status": {"$in": ["pending", "approved"]}}
    )
    if open_requests:
        raise HTTPException(status_code=400, detail="Recipient has open blood requests and cannot be deleted")
    await db.recipients.delete_one({"id": recipient_id})
    return {"success": True, "message": "Recipient deleted"}
