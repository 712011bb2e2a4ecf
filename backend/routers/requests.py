from datetime import date, datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends

from database import db
from middleware import require_staff, is_staff
from models import (
    BloodRequestCreate, BloodRequestUpdate, RequestStatusUpdate,
    BloodType, RequestStatus, UrgencyLevel
)
from services import get_current_user, paginate, pagination_meta, now_iso, today_str
from services.blood_requests import VALID_TRANSITIONS, create_blood_request, notify_hospital
from services.inventory import (
    InsufficientStockError, ReservationConflictError, release_units, reserve_units, set_units_status
)

router = APIRouter(prefix="/requests", tags=["Blood Requests"])


async def _get_request(request_id: str) -> dict:
    request = await db.blood_requests.find_one(
        {"$or": [{"id": request_id}, {"request_code": request_id}]},
        {"_id": 0}
    )
    if not request:
        raise HTTPException(status_code=404, detail="Blood request not found")
    return request


def _ensure_can_view(request: dict, current_user: dict):
    if is_staff(current_user) or request["requested_by"] == current_user["id"]:
        return
    raise HTTPException(status_code=403, detail="Access denied")


@router.get("")
async def get_blood_requests(
    page: int = 1,
    limit: int = 10,
    status: Optional[RequestStatus] = None,
    urgency_level: Optional[UrgencyLevel] = None,
    blood_type: Optional[BloodType] = None,
    hospital_id: Optional[str] = None,
    current_user: dict = Depends(get_current_user)
):
    query = {}
    if status:
        query["status"] = status.value
    if urgency_level:
        query["urgency_level"] = urgency_level.value
    if blood_type:
        query["blood_type"] = blood_type.value
    if hospital_id:
        query["hospital_id"] = hospital_id
    if not is_staff(current_user):
        query["requested_by"] = current_user["id"]

    paging = paginate(page, limit)
    total = await db.blood_requests.count_documents(query)
    cursor = db.blood_requests.find(query, {"_id": 0}).sort("created_at", -1)
    requests = await cursor.skip(paging["skip"]).limit(paging["limit"]).to_list(paging["limit"])
    return {
        "success": True,
        "data": {"requests": requests, "pagination": pagination_meta(paging["page"], paging["limit"], total)},
    }


@router.post("", status_code=201)
async def create_request(request_data: BloodRequestCreate, current_user: dict = Depends(get_current_user)):
    doc = await create_blood_request(request_data, current_user)
    return {"success": True, "message": "Blood request created", "data": {"request": doc}}


@router.get("/stats")
async def get_request_stats(current_user: dict = Depends(require_staff)):
    status_rows = await db.blood_requests.aggregate([
        {"$group": {"_id": "$status", "count": {"$sum": 1}}}
    ]).to_list(20)
    urgency_rows = await db.blood_requests.aggregate([
        {"$group": {"_id": "$urgency_level", "count": {"$sum": 1}}}
    ]).to_list(10)
    demand_rows = await db.blood_requests.aggregate([
        {"$match": {"status": {"$in": ["pending", "approved"]}}},
        {"$group": {"_id": "$blood_type", "count": {"$sum": 1}, "units": {"$sum": "$units_required"}}},
    ]).to_list(10)

    now = datetime.now(timezone.utc)
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    start_of_week = start_of_day - timedelta(days=start_of_day.weekday())
    start_of_month = start_of_day.replace(day=1)

    by_status = {row["_id"]: row["count"] for row in status_rows if row["_id"]}
    total = await db.blood_requests.count_documents({})
    fulfilled = by_status.get("fulfilled", 0)

    stats = {
        "total_requests": total,
        "pending_requests": by_status.get("pending", 0),
        "approved_requests": by_status.get("approved", 0),
        "fulfilled_requests": fulfilled,
        "cancelled_requests": by_status.get("cancelled", 0),
        "rejected_requests": by_status.get("rejected", 0),
        "critical_requests": await db.blood_requests.count_documents({
            "urgency_level": {"$in": ["high", "critical"]}, "status": "pending"
        }),
        "overdue_requests": await db.blood_requests.count_documents({
            "required_by": {"$lt": today_str()}, "status": {"$in": ["pending", "approved"]}
        }),
        "today_requests": await db.blood_requests.count_documents({"created_at": {"$gte": start_of_day.isoformat()}}),
        "week_requests": await db.blood_requests.count_documents({"created_at": {"$gte": start_of_week.isoformat()}}),
        "month_requests": await db.blood_requests.count_documents({"created_at": {"$gte": start_of_month.isoformat()}}),
        "fulfillment_rate": round(fulfilled / total * 100, 2) if total else 0,
        "by_status": by_status,
        "by_urgency": {row["_id"]: row["count"] for row in urgency_rows if row["_id"]},
        "by_blood_type": {
            row["_id"]: {"requests": row["count"], "units": row["units"]} for row in demand_rows if row["_id"]
        },
    }
    return {"success": True, "data": {"stats": stats}}


@router.get("/urgent")
async def get_urgent_requests(current_user: dict = Depends(require_staff)):
    requests = await db.blood_requests.find(
        {"urgency_level": {"$in": ["high", "critical"]}, "status": "pending"},
        {"_id": 0}
    ).sort("required_by", 1).to_list(100)
    return {"success": True, "data": {"requests": requests, "count": len(requests)}}


@router.get("/{request_id}")
async def get_blood_request(request_id: str, current_user: dict = Depends(get_current_user)):
    request = await _get_request(request_id)
    _ensure_can_view(request, current_user)
    return {"success": True, "data": {"request": request}}


@router.put("/{request_id}")
async def update_blood_request(
    request_id: str,
    updates: BloodRequestUpdate,
    current_user: dict = Depends(get_current_user)
):
    request = await _get_request(request_id)
    _ensure_can_view(request, current_user)
    if request["status"] != RequestStatus.PENDING.value:
        raise HTTPException(status_code=400, detail="Only pending requests can be updated")

    changes = updates.model_dump(mode="json", exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    if "required_by" in changes and changes["required_by"] < date.today().isoformat():
        raise HTTPException(status_code=400, detail="Required by date cannot be in the past")

    changes["updated_at"] = now_iso()
    await db.blood_requests.update_one({"id": request["id"]}, {"$set": changes})
    return {"success": True, "message": "Blood request updated", "data": {"request": await _get_request(request["id"])}}


@router.put("/{request_id}/status")
async def update_request_status(
    request_id: str,
    body: RequestStatusUpdate,
    current_user: dict = Depends(require_staff)
):
    request = await _get_request(request_id)
    current, target = request["status"], body.status.value

    if target not in VALID_TRANSITIONS.get(current, ()):
        raise HTTPException(status_code=400, detail=f"Cannot change status from {current} to {target}")

    changes = {
        "status": target,
        "processed_by": current_user["id"],
        "processed_at": now_iso(),
        "updated_at": now_iso(),
    }
    if body.notes:
        changes["notes"] = body.notes

    reserved_ids = [allocation["inventory_id"] for allocation in request.get("allocated_blood", [])]
    claimed = []

    if target == RequestStatus.APPROVED.value:
        try:
            reserved = await reserve_units(request["blood_type"], request["units_required"], request["id"])
        except InsufficientStockError as exc:
            raise HTTPException(status_code=400, detail=f"Insufficient blood units. Only {exc.available} units available")
        except ReservationConflictError as exc:
            raise HTTPException(status_code=409, detail=str(exc))
        claimed = [unit["id"] for unit in reserved]
        changes["allocated_blood"] = [
            {"inventory_id": unit["id"], "units": unit.get("units", 1), "allocation_date": now_iso()}
            for unit in reserved
        ]
    elif target == RequestStatus.REJECTED.value:
        if not body.rejection_reason:
            raise HTTPException(status_code=400, detail="Rejection reason is required")
        changes["rejection_reason"] = body.rejection_reason

    result = await db.blood_requests.update_one({"id": request["id"], "status": current}, {"$set": changes})
    if result.matched_count == 0:
        await release_units(claimed)
        raise HTTPException(status_code=409, detail="Blood request was updated by someone else, please reload")

    if target == RequestStatus.FULFILLED.value:
        await set_units_status(reserved_ids, "used")
    elif target == RequestStatus.CANCELLED.value:
        await release_units(reserved_ids)

    updated = await _get_request(request["id"])
    await notify_hospital(updated)
    return {"success": True, "message": "Request status updated successfully", "data": {"request": updated}}


@router.delete("/{request_id}")
async def delete_blood_request(request_id: str, current_user: dict = Depends(get_current_user)):
    request = await _get_request(request_id)
    if current_user["role"] != "admin" and request["requested_by"] != current_user["id"]:
        raise HTTPException(status_code=403, detail="Access denied")
    if request["status"] not in (RequestStatus.PENDING.value, RequestStatus.CANCELLED.value):
        raise HTTPException(status_code=400, detail="Only pending or cancelled requests can be deleted")

    await db.blood_requests.delete_one({"id": request["id"]})
    return {"success": True, "message": "Blood request deleted"}
