import logging
from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, Query

from database import db
from middleware import require_admin, require_staff
from models import (
    BloodUnit, BloodUnitCreate, BloodUnitUpdate, ReserveRequest,
    BloodType, UnitStatus, NotificationType
)
from services import (
    get_current_user, generate_unit_code, generate_qr_base64, unit_label_payload,
    sms_service, email_service, notification_service, paginate, pagination_meta,
    now_iso, today_str, SMSConfigurationError
)
from services.helpers import (
    BLOOD_TYPES, MINIMUM_STOCK, are_tests_complete, are_tests_negative, calculate_expiry_date, days_until_expiry
)
from services.inventory import InsufficientStockError, ReservationConflictError, reserve_units, low_stock_report

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/inventory", tags=["Blood Inventory"])


def _date_after(days: int) -> str:
    return (date.today() + timedelta(days=days)).isoformat()


async def _get_unit(unit_id: str) -> dict:
    unit = await db.blood_inventory.find_one(
        {"$or": [{"id": unit_id}, {"unit_code": unit_id}]}, {"_id": 0}
    )
    if not unit:
        raise HTTPException(status_code=404, detail="Blood inventory record not found")
    return unit


@router.get("")
async def get_inventory(
    page: int = 1,
    limit: int = 10,
    blood_type: Optional[BloodType] = None,
    status: Optional[UnitStatus] = None,
    section: Optional[str] = None,
    expiring_within: Optional[int] = Query(default=None, ge=0),
    current_user: dict = Depends(require_staff)
):
    query = {}
    if blood_type:
        query["blood_type"] = blood_type.value
    if status:
        query["status"] = status.value
    if section:
        query["storage_location.section"] = section
    if expiring_within is not None:
        query["expiry_date"] = {"$gte": today_str(), "$lte": _date_after(expiring_within)}

    paging = paginate(page, limit)
    total = await db.blood_inventory.count_documents(query)
    cursor = db.blood_inventory.find(query, {"_id": 0}).sort("expiry_date", 1)
    units = await cursor.skip(paging["skip"]).limit(paging["limit"]).to_list(paging["limit"])

    for unit in units:
        unit["days_until_expiry"] = days_until_expiry(unit["expiry_date"])

    return {
        "success": True,
        "data": {"inventory": units, "pagination": pagination_meta(paging["page"], paging["limit"], total)},
    }


@router.get("/stats")
async def get_inventory_stats(current_user: dict = Depends(require_staff)):
    today = today_str()
    status_rows = await db.blood_inventory.aggregate([
        {"$group": {"_id": "$status", "count": {"$sum": 1}}}
    ]).to_list(10)

    available = await db.blood_inventory.find({"status": "available"}, {"_id": 0}).to_list(10000)
    by_blood_type = {
        blood_type: {"units": 0, "expiring_in_7_days": 0, "min_required": MINIMUM_STOCK[blood_type]}
        for blood_type in BLOOD_TYPES
    }
    week = _date_after(7)
    for unit in available:
        bucket = by_blood_type[unit["blood_type"]]
        bucket["units"] += unit.get("units", 1)
        if unit["expiry_date"] <= week:
            bucket["expiring_in_7_days"] += unit.get("units", 1)

    low_stock_items = sum(1 for bt, row in by_blood_type.items() if row["units"] < MINIMUM_STOCK[bt])

    stats = {
        "total_units": sum(row["units"] for row in by_blood_type.values()),
        "expiring_in_3_days": await db.blood_inventory.count_documents({
            "status": "available", "expiry_date": {"$gte": today, "$lte": _date_after(3)}
        }),
        "expiring_in_7_days": await db.blood_inventory.count_documents({
            "status": "available", "expiry_date": {"$gte": today, "$lte": week}
        }),
        "expired": await db.blood_inventory.count_documents({"expiry_date": {"$lt": today}}),
        "low_stock_items": low_stock_items,
        "by_blood_type": by_blood_type,
        "by_status": {row["_id"]: row["count"] for row in status_rows if row["_id"]},
    }
    return {"success": True, "data": {"stats": stats}}


@router.post("", status_code=201)
async def add_blood_unit(unit_data: BloodUnitCreate, current_user: dict = Depends(require_staff)):
    donor = await db.donors.find_one({"id": unit_data.donor_id}, {"_id": 0})
    if not donor:
        raise HTTPException(status_code=404, detail="Donor not found")
    if donor["blood_type"] != unit_data.blood_type.value:
        raise HTTPException(status_code=400, detail="Blood type does not match donor's blood type")

    payload = unit_data.model_dump(mode="json")
    if not unit_data.expiry_date:
        payload["expiry_date"] = calculate_expiry_date(
            unit_data.collection_date, unit_data.component.value
        ).isoformat()

    unit = BloodUnit(**payload, created_by=current_user["id"])
    unit.unit_code = await generate_unit_code()

    doc = unit.model_dump(mode="json")
    await db.blood_inventory.insert_one(doc)
    doc.pop("_id", None)
    logger.info("Added blood unit %s (%s)", unit.unit_code, unit.blood_type.value)
    return {"success": True, "message": "Blood inventory added", "data": {"inventory": doc}}


@router.post("/check-expired")
async def check_expired_blood(current_user: dict = Depends(require_staff)):
    query = {"status": "available", "expiry_date": {"$lt": today_str()}}
    expired = await db.blood_inventory.find(
        query, {"_id": 0, "id": 1, "unit_code": 1, "blood_type": 1, "expiry_date": 1}
    ).to_list(10000)
    if expired:
        await db.blood_inventory.update_many(query, {"$set": {"status": "expired", "updated_at": now_iso()}})
    return {
        "success": True,
        "message": "Expired blood check completed",
        "data": {"expired_count": len(expired), "expired_units": expired},
    }


@router.post("/low-stock-alert")
async def send_low_stock_alert(current_user: dict = Depends(require_staff)):
    low_stock = await low_stock_report()
    if not low_stock:
        return {"success": True, "message": "All blood types are adequately stocked", "data": {"alerts_sent": 0}}

    staff = await db.users.find(
        {"role": {"$in": ["admin", "hospital_staff"]}, "is_active": True},
        {"_id": 0, "id": 1, "phone": 1, "email": 1},
    ).to_list(1000)
    phones = [user["phone"] for user in staff if user.get("phone")]
    emails = [user["email"] for user in staff if user.get("email")]

    alerts = []
    for item in low_stock:
        try:
            sms = await sms_service.send_low_stock_alert(phones, item["blood_type"], item["current_units"])
        except SMSConfigurationError as exc:
            sms = {"success": False, "error": exc.message}
        emailed = await email_service.send_low_stock_alert(
            emails, item["blood_type"], item["current_units"], item["minimum_required"]
        )
        for user in staff:
            await notification_service.create(
                recipient_id=user["id"],
                type=NotificationType.LOW_STOCK_ALERT.value,
                title=f"Low stock: {item['blood_type']}",
                message=f"{item['blood_type']} stock is at {item['current_units']} units "
                        f"(minimum {item['minimum_required']}).",
                priority="urgent" if item["level"] == "critical" else "high",
                channels=["in_app"],
                created_by=current_user["id"],
            )
        alerts.append({
            **item,
            "sms_sent": sms.get("successful", 0),
            "emails_sent": sum(1 for result in emailed if result.get("success")),
        })

    return {
        "success": True,
        "message": "Low stock alerts sent successfully",
        "data": {"alerts_sent": len(alerts), "alerts": alerts},
    }


@router.post("/expiry-alert")
async def send_expiry_alert(
    days: int = Query(default=3, ge=1, le=30),
    current_user: dict = Depends(require_staff)
):
    units = await db.blood_inventory.find(
        {"status": "available", "expiry_date": {"$gte": today_str(), "$lte": _date_after(days)}},
        {"_id": 0, "blood_type": 1, "expiry_date": 1, "units": 1},
    ).sort("expiry_date", 1).to_list(10000)
    if not units:
        return {"success": True, "message": f"No blood units expire within {days} days", "data": {"alerts_sent": 0}}

    batches = {}
    for unit in units:
        key = (unit["blood_type"], unit["expiry_date"])
        batches[key] = batches.get(key, 0) + unit.get("units", 1)

    staff = await db.users.find(
        {"role": {"$in": ["admin", "hospital_staff"]}, "is_active": True}, {"_id": 0, "phone": 1}
    ).to_list(1000)
    phones = [user["phone"] for user in staff if user.get("phone")]

    alerts = []
    for (blood_type, expiry_date), count in batches.items():
        try:
            sms = await sms_service.send_expiry_alert(phones, blood_type, expiry_date, count)
        except SMSConfigurationError as exc:
            sms = {"success": False, "error": exc.message}
        alerts.append({
            "blood_type": blood_type,
            "expiry_date": expiry_date,
            "units": count,
            "sms_sent": sms.get("successful", 0),
            "error": sms.get("error"),
        })

    logger.info("Expiry alerts for %d batches within %d days", len(alerts), days)
    return {"success": True, "message": "Expiry alerts sent", "data": {"alerts_sent": len(alerts), "alerts": alerts}}


@router.post("/reserve")
async def reserve_blood(body: ReserveRequest, current_user: dict = Depends(require_staff)):
    try:
        reserved = await reserve_units(body.blood_type.value, body.units, body.request_id)
    except InsufficientStockError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ReservationConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return {
        "success": True,
        "message": "Blood units reserved successfully",
        "data": {
            "reserved_units": [unit["id"] for unit in reserved],
            "blood_type": body.blood_type.value,
            "units": sum(unit.get("units", 1) for unit in reserved),
        },
    }


@router.get("/blood-type/{blood_type}")
async def get_by_blood_type(blood_type: BloodType, current_user: dict = Depends(get_current_user)):
    units = await db.blood_inventory.find(
        {"blood_type": blood_type.value, "status": "available", "expiry_date": {"$gte": today_str()}},
        {"_id": 0},
    ).sort("expiry_date", 1).to_list(1000)
    return {
        "success": True,
        "data": {
            "blood_type": blood_type.value,
            "total_units": sum(unit.get("units", 1) for unit in units),
            "inventory": units,
        },
    }


@router.get("/expiring")
async def get_expiring(days: int = Query(default=7, ge=1, le=365), current_user: dict = Depends(require_staff)):
    units = await db.blood_inventory.find(
        {"status": "available", "expiry_date": {"$gte": today_str(), "$lte": _date_after(days)}},
        {"_id": 0},
    ).sort("expiry_date", 1).to_list(1000)
    return {"success": True, "data": {"days": days, "count": len(units), "inventory": units}}


@router.get("/{unit_id}")
async def get_blood_unit(unit_id: str, current_user: dict = Depends(require_staff)):
    unit = await _get_unit(unit_id)
    unit["days_until_expiry"] = days_until_expiry(unit["expiry_date"])
    return {"success": True, "data": {"inventory": unit}}


@router.get("/{unit_id}/label")
async def get_unit_label(unit_id: str, current_user: dict = Depends(require_staff)):
    unit = await _get_unit(unit_id)
    return {
        "success": True,
        "data": {"unit_code": unit.get("unit_code"), "qrcode": generate_qr_base64(unit_label_payload(unit))},
    }


@router.put("/{unit_id}")
async def update_blood_unit(unit_id: str, updates: BloodUnitUpdate, current_user: dict = Depends(require_staff)):
    unit = await _get_unit(unit_id)
    changes = updates.model_dump(mode="json", exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")

    changes["updated_at"] = now_iso()
    await db.blood_inventory.update_one({"id": unit["id"]}, {"$set": changes})
    updated = await db.blood_inventory.find_one({"id": unit["id"]}, {"_id": 0})

    results_ready = (
        "test_results" in changes
        and are_tests_complete(changes["test_results"])
        and not are_tests_complete(unit.get("test_results") or {})
    )
    donor_notified = await _send_test_results(updated) if results_ready else False
    return {
        "success": True,
        "message": "Blood inventory updated",
        "data": {"inventory": updated, "donor_notified": donor_notified},
    }


async def _send_test_results(unit: dict) -> bool:
    donor = await db.donors.find_one({"id": unit.get("donor_id")}, {"_id": 0, "user_id": 1})
    if not donor:
        return False
    user = await db.users.find_one({"id": donor["user_id"]}, {"_id": 0, "name": 1, "email": 1, "phone": 1})
    if not user:
        return False

    results = unit["test_results"]
    name = user.get("name", "Donor")
    sent = []
    if user.get("phone"):
        summary = "clear" if are_tests_negative(results) else "review"
        sent.append(await sms_service.send_test_results(user["phone"], name, summary))
    if user.get("email"):
        sent.append(await email_service.send_test_results(user["email"], name, results, unit["collection_date"]))
    return any(result.get("success") for result in sent)


@router.delete("/{unit_id}")
async def delete_blood_unit(unit_id: str, current_user: dict = Depends(require_admin)):
    unit = await _get_unit(unit_id)
    if unit["status"] in (UnitStatus.RESERVED.value, UnitStatus.USED.value):
        raise HTTPException(status_code=400, detail=f"Cannot delete {unit['status']} blood units")
    await db.blood_inventory.delete_one({"id": unit["id"]})
    return {"success": True, "message": "Blood inventory deleted"}
