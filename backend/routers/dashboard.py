from datetime import date, timedelta

from fastapi import APIRouter, Depends

from config import settings
from database import db
from middleware import require_staff
from services import today_str

router = APIRouter(tags=["Dashboard"])


@router.get("/dashboard/stats")
async def get_dashboard_stats(current_user: dict = Depends(require_staff)):
    today = today_str()
    week = (date.today() + timedelta(days=7)).isoformat()

    inventory_pipeline = [
        {"$match": {"status": "available", "expiry_date": {"$gte": today}}},
        {"$group": {"_id": "$blood_type", "units": {"$sum": "$units"}}}
    ]
    inventory_by_type = await db.blood_inventory.aggregate(inventory_pipeline).to_list(10)

    return {
        "success": True,
        "data": {
            "todays_donations": await db.donations.count_documents({"donation_date": today}),
            "total_donors": await db.donors.count_documents({}),
            "eligible_donors": await db.donors.count_documents({"is_eligible": True}),
            "total_recipients": await db.recipients.count_documents({"is_active": True}),
            "total_hospitals": await db.hospitals.count_documents({"is_active": True}),
            "available_units": sum(item["units"] for item in inventory_by_type),
            "pending_requests": await db.blood_requests.count_documents({"status": "pending"}),
            "expiring_within_7_days": await db.blood_inventory.count_documents({
                "status": "available",
                "expiry_date": {"$gte": today, "$lte": week}
            }),
            "active_campaigns": await db.campaigns.count_documents({"status": "active"}),
            "inventory_by_blood_type": {item["_id"]: item["units"] for item in inventory_by_type if item["_id"]},
        },
    }


@router.get("/")
async def root():
    return {
        "success": True,
        "message": "Blood Bank Management System API",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
    }
