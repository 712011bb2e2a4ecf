from typing import Optional

from fastapi import APIRouter, HTTPException, Depends

from database import db
from middleware import require_admin, require_staff
from models import (
    Hospital, HospitalCreate, HospitalUpdate, StaffMember, StaffMemberCreate,
    BloodRequestCreate, RequestStatus, UserRole
)
from services import get_current_user, paginate, pagination_meta, now_iso
from services.blood_requests import create_blood_request

router = APIRouter(prefix="/hospitals", tags=["Hospitals"])


async def _get_hospital(hospital_id: str) -> dict:
    hospital = await db.hospitals.find_one({"id": hospital_id}, {"_id": 0})
    if not hospital:
        raise HTTPException(status_code=404, detail="Hospital not found")
    return hospital


def _ensure_member_or_admin(hospital: dict, current_user: dict):
    if current_user["role"] == "admin":
        return
    if any(member["user_id"] == current_user["id"] for member in hospital.get("staff_members", [])):
        return
    raise HTTPException(status_code=403, detail="Access denied. You are not a member of this hospital.")


@router.get("")
async def get_hospitals(
    page: int = 1,
    limit: int = 10,
    city: Optional[str] = None,
    district: Optional[str] = None,
    is_active: Optional[bool] = None,
    current_user: dict = Depends(get_current_user)
):
    query = {}
    if city:
        query["address.city"] = city
    if district:
        query["address.district"] = district
    if is_active is not None:
        query["is_active"] = is_active

    paging = paginate(page, limit)
    total = await db.hospitals.count_documents(query)
    cursor = db.hospitals.find(query, {"_id": 0}).sort("name", 1)
    hospitals = await cursor.skip(paging["skip"]).limit(paging["limit"]).to_list(paging["limit"])
    return {
        "success": True,
        "data": {"hospitals": hospitals, "pagination": pagination_meta(paging["page"], paging["limit"], total)},
    }


@router.post("", status_code=201)
async def create_hospital(hospital_data: HospitalCreate, current_user: dict = Depends(require_admin)):
    if await db.hospitals.find_one({"registration_number": hospital_data.registration_number}, {"_id": 1}):
        raise HTTPException(status_code=409, detail="Hospital with this registration number already exists")

    hospital = Hospital(**hospital_data.model_dump(mode="json"))
    doc = hospital.model_dump(mode="json")
    await db.hospitals.insert_one(doc)
    doc.pop("_id", None)
    return {"success": True, "message": "Hospital created", "data": {"hospital": doc}}


@router.get("/{hospital_id}")
async def get_hospital(hospital_id: str, current_user: dict = Depends(get_current_user)):
    hospital = await _get_hospital(hospital_id)
    return {"success": True, "data": {"hospital": hospital}}


@router.put("/{hospital_id}")
async def update_hospital(hospital_id: str, updates: HospitalUpdate, current_user: dict = Depends(require_staff)):
    hospital = await _get_hospital(hospital_id)
    _ensure_member_or_admin(hospital, current_user)

    changes = updates.model_dump(mode="json", exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    changes["updated_at"] = now_iso()
    await db.hospitals.update_one({"id": hospital_id}, {"$set": changes})
    return {"success": True, "message": "Hospital updated", "data": {"hospital": await _get_hospital(hospital_id)}}


@router.post("/{hospital_id}/staff", status_code=201)
async def add_staff_member(hospital_id: str, body: StaffMemberCreate, current_user: dict = Depends(require_admin)):
    hospital = await _get_hospital(hospital_id)
    user = await db.users.find_one({"id": body.user_id}, {"_id": 0, "role": 1})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if user["role"] != UserRole.HOSPITAL_STAFF.value:
        raise HTTPException(status_code=400, detail="User must have the hospital_staff role")
    if any(member["user_id"] == body.user_id for member in hospital.get("staff_members", [])):
        raise HTTPException(status_code=409, detail="User is already a staff member of this hospital")

    member = StaffMember(**body.model_dump())
    await db.hospitals.update_one(
        {"id": hospital_id},
        {"$push": {"staff_members": member.model_dump(mode="json")}, "$set": {"updated_at": now_iso()}},
    )
    return {"success": True, "message": "Staff member added", "data": {"hospital": await _get_hospital(hospital_id)}}


@router.delete("/{hospital_id}/staff/{user_id}")
async def remove_staff_member(hospital_id: str, user_id: str, current_user: dict = Depends(require_admin)):
    hospital = await _get_hospital(hospital_id)
    if not any(member["user_id"] == user_id for member in hospital.get("staff_members", [])):
        raise HTTPException(status_code=404, detail="Staff member not found")

    await db.hospitals.update_one(
        {"id": hospital_id},
        {"$pull": {"staff_members": {"user_id": user_id}}, "$set": {"updated_at": now_iso()}},
    )
    return {"success": True, "message": "Staff member removed"}


@router.get("/{hospital_id}/requests")
async def get_hospital_requests(
    hospital_id: str,
    status: Optional[RequestStatus] = None,
    current_user: dict = Depends(require_staff)
):
    hospital = await _get_hospital(hospital_id)
    _ensure_member_or_admin(hospital, current_user)

    query = {"hospital_id": hospital_id}
    if status:
        query["status"] = status.value
    requests = await db.blood_requests.find(query, {"_id": 0}).sort("created_at", -1).to_list(1000)
    return {"success": True, "data": {"requests": requests}}


@router.post("/{hospital_id}/requests", status_code=201)
async def create_hospital_request(
    hospital_id: str,
    request_data: BloodRequestCreate,
    current_user: dict = Depends(require_staff)
):
    hospital = await _get_hospital(hospital_id)
    _ensure_member_or_admin(hospital, current_user)
    if not hospital.get("is_active", True):
        raise HTTPException(status_code=400, detail="Hospital is not active")

    doc = await create_blood_request(request_data, current_user, hospital_id=hospital_id)
    return {"success": True, "message": "Blood request created", "data": {"request": doc}}


@router.get("/{hospital_id}/stats")
async def get_hospital_stats(hospital_id: str, current_user: dict = Depends(require_staff)):
    hospital = await _get_hospital(hospital_id)
    _ensure_member_or_admin(hospital, current_user)

    rows = await db.blood_requests.aggregate([
        {"$match": {"hospital_id": hospital_id}},
        {"$group": {"_id": "$status", "count": {"$sum": 1}, "units": {"$sum": "$units_required"}}},
    ]).to_list(20)
    by_status = {row["_id"]: {"requests": row["count"], "units": row["units"]} for row in rows}
    total = sum(row["count"] for row in rows)
    fulfilled = by_status.get("fulfilled", {}).get("requests", 0)

    stats = {
        "staff_count": len(hospital.get("staff_members", [])),
        "blood_bank_capacity": hospital.get("blood_bank_capacity", 0),
        "total_requests": total,
        "by_status": by_status,
        "fulfillment_rate": round(fulfilled / total * 100, 2) if total else 0,
    }
    return {"success": True, "data": {"stats": stats}}


@router.delete("/{hospital_id}")
async def delete_hospital(hospital_id: str, current_user: dict = Depends(require_admin)):
    await _get_hospital(hospital_id)
    open_requests = await db.blood_requests.count_documents(
        {"hospital_id": hospital_id, "status": {"$in": ["pending", "approved"]}}
    )
    if open_requests:
        raise HTTPException(status_code=400, detail="Hospital has open blood requests and cannot be deleted")
    await db.hospitals.delete_one({"id": hospital_id})
    return {"success": True, "message": "Hospital deleted"}
