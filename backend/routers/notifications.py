import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, Query

from database import db
from middleware import require_admin, require_staff
from models import (
    NotificationCreate, NotificationUpdate, BulkNotificationCreate, BloodTypeNotification,
    EmergencyNotification, DirectSMS, DirectEmail, NotificationType, NotificationPriority
)
from services import (
    get_current_user, notification_service, sms_gateway, sms_service, email_service,
    paginate, pagination_meta, now_iso, SMSConfigurationError
)
from services.helpers import can_receive_from

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


async def _get_notification(notification_id: str) -> dict:
    notification = await db.notifications.find_one({"id": notification_id}, {"_id": 0})
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification


def _ensure_owner(notification: dict, current_user: dict):
    if current_user["role"] == "admin" or notification["recipient_id"] == current_user["id"]:
        return
    raise HTTPException(status_code=403, detail="Access denied")


async def _donor_user_ids(blood_types, eligible_only: bool = True) -> list:
    query = {"blood_type": {"$in": list(blood_types)}}
    if eligible_only:
        query["is_eligible"] = True
    donors = await db.donors.find(query, {"_id": 0, "user_id": 1}).to_list(10000)
    return [donor["user_id"] for donor in donors]


@router.get("")
async def get_my_notifications(
    page: int = 1,
    limit: int = 20,
    type: Optional[NotificationType] = None,
    read: Optional[bool] = None,
    priority: Optional[NotificationPriority] = None,
    current_user: dict = Depends(get_current_user)
):
    query = {"recipient_id": current_user["id"], "is_active": True}
    if type:
        query["type"] = type.value
    if read is not None:
        query["channels.in_app.read"] = read
    if priority:
        query["priority"] = priority.value

    paging = paginate(page, limit)
    total = await db.notifications.count_documents(query)
    cursor = db.notifications.find(query, {"_id": 0}).sort("created_at", -1)
    notifications = await cursor.skip(paging["skip"]).limit(paging["limit"]).to_list(paging["limit"])
    unread = await db.notifications.count_documents(
        {"recipient_id": current_user["id"], "is_active": True, "channels.in_app.read": False}
    )
    return {
        "success": True,
        "data": {
            "notifications": notifications,
            "unread_count": unread,
            "pagination": pagination_meta(paging["page"], paging["limit"], total),
        },
    }


@router.get("/all")
async def get_all_notifications(
    page: int = 1,
    limit: int = 20,
    type: Optional[NotificationType] = None,
    recipient_id: Optional[str] = None,
    current_user: dict = Depends(require_admin)
):
    query = {}
    if type:
        query["type"] = type.value
    if recipient_id:
        query["recipient_id"] = recipient_id

    paging = paginate(page, limit)
    total = await db.notifications.count_documents(query)
    cursor = db.notifications.find(query, {"_id": 0}).sort("created_at", -1)
    notifications = await cursor.skip(paging["skip"]).limit(paging["limit"]).to_list(paging["limit"])
    return {
        "success": True,
        "data": {"notifications": notifications, "pagination": pagination_meta(paging["page"], paging["limit"], total)},
    }


@router.post("", status_code=201)
async def create_notification(body: NotificationCreate, current_user: dict = Depends(require_staff)):
    if not await db.users.find_one({"id": body.recipient_id}, {"_id": 1}):
        raise HTTPException(status_code=404, detail="Recipient not found")

    doc = await notification_service.create(
        **body.model_dump(mode="python"), created_by=current_user["id"]
    )
    return {"success": True, "message": "Notification created", "data": {"notification": doc}}


@router.get("/stats")
async def get_notification_stats(current_user: dict = Depends(require_admin)):
    type_rows = await db.notifications.aggregate([
        {"$group": {"_id": "$type", "count": {"$sum": 1}}}
    ]).to_list(20)
    priority_rows = await db.notifications.aggregate([
        {"$group": {"_id": "$priority", "count": {"$sum": 1}}}
    ]).to_list(10)

    stats = {
        "total": await db.notifications.count_documents({}),
        "unread": await db.notifications.count_documents({"channels.in_app.read": False}),
        "sms_sent": await db.notifications.count_documents({"channels.sms.sent": True}),
        "sms_delivered": await db.notifications.count_documents({"channels.sms.status": "delivered"}),
        "sms_failed": await db.notifications.count_documents({"channels.sms.status": "failed"}),
        "email_sent": await db.notifications.count_documents({"channels.email.sent": True}),
        "email_failed": await db.notifications.count_documents({"channels.email.status": "failed"}),
        "scheduled": await db.notifications.count_documents({"scheduled_for": {"$gt": now_iso()}, "is_active": True}),
        "by_type": {row["_id"]: row["count"] for row in type_rows if row["_id"]},
        "by_priority": {row["_id"]: row["count"] for row in priority_rows if row["_id"]},
    }
    return {"success": True, "data": {"stats": stats}}


@router.get("/unread-count")
async def get_unread_count(current_user: dict = Depends(get_current_user)):
    count = await db.notifications.count_documents(
        {"recipient_id": current_user["id"], "is_active": True, "channels.in_app.read": False}
    )
    return {"success": True, "data": {"unread_count": count}}


@router.post("/bulk", status_code=201)
async def create_bulk_notifications(body: BulkNotificationCreate, current_user: dict = Depends(require_admin)):
    payload = body.model_dump(mode="python", exclude={"recipient_ids"})
    created = await notification_service.create_many(
        body.recipient_ids, **payload, created_by=current_user["id"]
    )
    return {
        "success": True,
        "message": f"{len(created)} notifications created",
        "data": {"count": len(created), "notification_ids": [doc["id"] for doc in created]},
    }


@router.post("/donors/blood-type", status_code=201)
async def notify_donors_by_blood_type(body: BloodTypeNotification, current_user: dict = Depends(require_staff)):
    user_ids = await _donor_user_ids([bt.value for bt in body.blood_types], body.eligible_only)
    if not user_ids:
        raise HTTPException(status_code=404, detail="No donors found for the given blood types")

    created = await notification_service.create_many(
        user_ids,
        type=NotificationType.BLOOD_REQUEST.value,
        title=body.title,
        message=body.message,
        data={"blood_types": [bt.value for bt in body.blood_types]},
        priority=body.priority.value,
        channels=body.channels,
        created_by=current_user["id"],
    )
    return {
        "success": True,
        "message": f"Notified {len(created)} donors",
        "data": {"count": len(created)},
    }


@router.post("/emergency", status_code=201)
async def send_emergency_notification(body: EmergencyNotification, current_user: dict = Depends(require_staff)):
    compatible = can_receive_from(body.blood_type.value)
    user_ids = await _donor_user_ids(compatible)
    if not user_ids:
        raise HTTPException(status_code=404, detail="No eligible compatible donors found")

    users = await db.users.find(
        {"id": {"$in": user_ids}, "is_active": True}, {"_id": 0, "id": 1, "phone": 1}
    ).to_list(10000)

    try:
        sms = await sms_service.send_emergency_request(
            [user.get("phone") for user in users], body.blood_type.value, body.hospital_name
        )
    except SMSConfigurationError as exc:
        logger.warning("Emergency SMS skipped: %s", exc.message)
        sms = {"success": False, "error": exc.message, "total": 0, "successful": 0, "failed": 0}

    message = f"URGENT: {body.units_needed} units of {body.blood_type.value} needed at {body.hospital_name}."
    if body.contact_phone:
        message += f" Contact: {body.contact_phone}"
    created = await notification_service.create_many(
        [user["id"] for user in users],
        type=NotificationType.EMERGENCY_REQUEST.value,
        title=f"Emergency: {body.blood_type.value} blood needed",
        message=message,
        data=body.model_dump(mode="json"),
        priority=NotificationPriority.URGENT.value,
        channels=["in_app"],
        created_by=current_user["id"],
    )

    return {
        "success": True,
        "message": "Emergency notification sent",
        "data": {
            "blood_type": body.blood_type.value,
            "compatible_types": compatible,
            "donors_notified": len(created),
            "sms": {key: sms.get(key) for key in ("successful", "failed", "error") if key in sms},
        },
    }


@router.get("/scheduled/upcoming")
async def get_scheduled_notifications(current_user: dict = Depends(require_staff)):
    notifications = await db.notifications.find(
        {"scheduled_for": {"$gt": now_iso()}, "is_active": True}, {"_id": 0}
    ).sort("scheduled_for", 1).to_list(500)
    return {"success": True, "data": {"notifications": notifications, "count": len(notifications)}}


@router.patch("/mark-all-read")
async def mark_all_read(current_user: dict = Depends(get_current_user)):
    result = await db.notifications.update_many(
        {"recipient_id": current_user["id"], "channels.in_app.read": False},
        {"$set": {"channels.in_app.read": True, "channels.in_app.read_at": now_iso(), "updated_at": now_iso()}},
    )
    return {
        "success": True,
        "message": "All notifications marked as read",
        "data": {"modified_count": result.modified_count},
    }


@router.post("/send-sms")
async def send_direct_sms(body: DirectSMS, current_user: dict = Depends(require_admin)):
    result = await sms_gateway.send_sms(body.to, body.message)
    if not result.get("success"):
        raise HTTPException(status_code=502, detail={"message": "Failed to send SMS", "error": result.get("error")})
    return {"success": True, "message": "SMS sent", "data": result}


@router.post("/send-email")
async def send_direct_email(body: DirectEmail, current_user: dict = Depends(require_admin)):
    result = await email_service.send_email(body.to, body.subject, body.html)
    if not result.get("success"):
        raise HTTPException(status_code=502, detail={"message": "Failed to send email", "error": result.get("error")})
    return {"success": True, "message": "Email sent", "data": result}


@router.get("/sms/status")
async def get_sms_status(current_user: dict = Depends(require_admin)):
    connection = await sms_gateway.test_connection()
    balance = await sms_gateway.get_account_balance() if connection.get("success") else None
    return {
        "success": True,
        "data": {"configured": sms_gateway.is_enabled, "connection": connection, "balance": balance},
    }


@router.get("/email/status")
async def get_email_status(current_user: dict = Depends(require_admin)):
    connection = await email_service.verify_connection()
    return {"success": True, "data": {"configured": email_service.is_configured, "connection": connection}}


@router.get("/sms/cost-estimate")
async def estimate_sms_cost(
    message_count: int = Query(ge=1),
    message_length: int = Query(default=160, ge=1, le=1600),
    current_user: dict = Depends(require_staff)
):
    return {"success": True, "data": sms_gateway.estimate_cost(message_count, message_length)}


@router.get("/{notification_id}")
async def get_notification(notification_id: str, current_user: dict = Depends(get_current_user)):
    notification = await _get_notification(notification_id)
    _ensure_owner(notification, current_user)
    return {"success": True, "data": {"notification": notification}}


@router.put("/{notification_id}")
async def update_notification(
    notification_id: str,
    updates: NotificationUpdate,
    current_user: dict = Depends(require_staff)
):
    await _get_notification(notification_id)
    changes = updates.model_dump(mode="json", exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    changes["updated_at"] = now_iso()
    await db.notifications.update_one({"id": notification_id}, {"$set": changes})
    return {
        "success": True,
        "message": "Notification updated",
        "data": {"notification": await _get_notification(notification_id)},
    }


@router.patch("/{notification_id}/read")
async def mark_as_read(notification_id: str, current_user: dict = Depends(get_current_user)):
    notification = await _get_notification(notification_id)
    _ensure_owner(notification, current_user)
    await db.notifications.update_one(
        {"id": notification_id},
        {"$set": {"channels.in_app.read": True, "channels.in_app.read_at": now_iso(), "updated_at": now_iso()}},
    )
    return {"success": True, "message": "Notification marked as read"}


@router.patch("/{notification_id}/cancel")
async def cancel_scheduled_notification(notification_id: str, current_user: dict = Depends(require_staff)):
    notification = await _get_notification(notification_id)
    if not notification.get("scheduled_for") or notification["scheduled_for"] <= now_iso():
        raise HTTPException(status_code=400, detail="Only pending scheduled notifications can be cancelled")
    if not notification.get("is_active", True):
        raise HTTPException(status_code=400, detail="Notification is already cancelled")

    await db.notifications.update_one(
        {"id": notification_id}, {"$set": {"is_active": False, "updated_at": now_iso()}}
    )
    return {"success": True, "message": "Scheduled notification cancelled"}


@router.delete("/{notification_id}")
async def delete_notification(notification_id: str, current_user: dict = Depends(get_current_user)):
    notification = await _get_notification(notification_id)
    _ensure_owner(notification, current_user)
    await db.notifications.delete_one({"id": notification_id})
    return {"success": True, "message": "Notification deleted"}
