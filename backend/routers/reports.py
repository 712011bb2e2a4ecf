from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends

from database import db
from middleware import require_staff
from services.helpers import (
    BLOOD_TYPES, calculate_age, calculate_inventory_stats, are_tests_complete, are_tests_negative
)
from services.inventory import low_stock_report

router = APIRouter(prefix="/reports", tags=["Reports"])

AGE_GROUPS = ((18, 25), (26, 35), (36, 45), (46, 55), (56, 65))


def _period(start_date: Optional[date], end_date: Optional[date], field: str = "created_at") -> dict:
    if not start_date and not end_date:
        return {}
    bounds = {}
    if start_date:
        bounds["$gte"] = start_date.isoformat()
    if end_date:
        # inclusive of the whole end day
        bounds["$lte"] = f"{end_date.isoformat()}T23:59:59.999999+00:00"
    return {field: bounds}


def _age_group(age: int) -> str:
    for low, high in AGE_GROUPS:
        if low <= age <= high:
            return f"{low}-{high}"
    return "other"


def _generated() -> dict:
    return {"generated_at": datetime.now(timezone.utc).isoformat()}


@router.get("/donors")
async def donor_report(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    current_user: dict = Depends(require_staff)
):
    donors = await db.donors.find(_period(start_date, end_date), {"_id": 0}).to_list(100000)

    by_blood_type = {blood_type: 0 for blood_type in BLOOD_TYPES}
    age_groups = {f"{low}-{high}": 0 for low, high in AGE_GROUPS}
    age_groups["other"] = 0
    by_gender = {}
    for donor in donors:
        by_blood_type[donor["blood_type"]] = by_blood_type.get(donor["blood_type"], 0) + 1
        age_groups[_age_group(calculate_age(donor["date_of_birth"]))] += 1
        by_gender[donor.get("gender", "other")] = by_gender.get(donor.get("gender", "other"), 0) + 1

    active_users = await db.users.count_documents({"role": "donor", "is_active": True})
    return {
        "success": True,
        "data": {
            **_generated(),
            "summary": {
                "total_donors": len(donors),
                "eligible_donors": sum(1 for donor in donors if donor.get("is_eligible")),
                "active_donor_accounts": active_users,
                "repeat_donors": sum(1 for donor in donors if donor.get("total_donations", 0) > 1),
                "blood_type_distribution": by_blood_type,
                "age_groups": age_groups,
                "gender_distribution": by_gender,
            },
        },
    }


@router.get("/inventory")
async def inventory_report(current_user: dict = Depends(require_staff)):
    units = await db.blood_inventory.find({}, {"_id": 0}).to_list(100000)

    by_status = {}
    for unit in units:
        by_status[unit["status"]] = by_status.get(unit["status"], 0) + unit.get("units", 1)

    results = [unit.get("test_results") or {} for unit in units]
    test_analysis = {
        "tested": sum(1 for result in results if are_tests_complete(result)),
        "pending": sum(1 for result in results if not are_tests_complete(result)),
        "passed": sum(1 for result in results if are_tests_negative(result)),
        "reactive": sum(1 for result in results if "positive" in result.values()),
    }

    return {
        "success": True,
        "data": {
            **_generated(),
            "stats": calculate_inventory_stats(units),
            "by_status": by_status,
            "low_stock": await low_stock_report(),
            "test_results_analysis": test_analysis,
        },
    }


@router.get("/campaigns")
async def campaign_report(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    current_user: dict = Depends(require_staff)
):
    campaigns = await db.campaigns.find(_period(start_date, end_date, "start_date"), {"_id": 0}).to_list(10000)

    by_status = {}
    participants, donations, units = 0, 0, 0
    for campaign in campaigns:
        by_status[campaign["status"]] = by_status.get(campaign["status"], 0) + 1
        participants += len(campaign.get("participants", []))
        donations += campaign.get("results", {}).get("successful_donations", 0)
        units += campaign.get("results", {}).get("units_collected", 0)

    top = sorted(
        campaigns, key=lambda campaign: campaign.get("results", {}).get("successful_donations", 0), reverse=True
    )[:5]
    return {
        "success": True,
        "data": {
            **_generated(),
            "summary": {
                "total_campaigns": len(campaigns),
                "by_status": by_status,
                "total_participants": participants,
                "successful_donations": donations,
                "units_collected": units,
                "conversion_rate": round(donations / participants * 100, 2) if participants else 0,
            },
            "top_campaigns": [
                {
                    "id": campaign["id"],
                    "title": campaign["title"],
                    "successful_donations": campaign.get("results", {}).get("successful_donations", 0),
                }
                for campaign in top
            ],
        },
    }


@router.get("/requests")
async def request_report(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    current_user: dict = Depends(require_staff)
):
    requests = await db.blood_requests.find(_period(start_date, end_date), {"_id": 0}).to_list(100000)

    by_status, by_urgency, by_blood_type = {}, {}, {}
    for request in requests:
        by_status[request["status"]] = by_status.get(request["status"], 0) + 1
        by_urgency[request["urgency_level"]] = by_urgency.get(request["urgency_level"], 0) + 1
        by_blood_type[request["blood_type"]] = by_blood_type.get(request["blood_type"], 0) + request["units_required"]

    total = len(requests)
    fulfilled = by_status.get("fulfilled", 0)
    return {
        "success": True,
        "data": {
            **_generated(),
            "summary": {
                "total_requests": total,
                "by_status": by_status,
                "by_urgency": by_urgency,
                "units_requested_by_blood_type": by_blood_type,
                "fulfillment_rate": round(fulfilled / total * 100, 2) if total else 0,
            },
        },
    }


@router.get("/donations")
async def donation_report(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    current_user: dict = Depends(require_staff)
):
    donations = await db.donations.find(_period(start_date, end_date, "donation_date"), {"_id": 0}).to_list(100000)

    by_month, by_blood_type = {}, {}
    for donation in donations:
        month = donation["donation_date"][:7]
        by_month[month] = by_month.get(month, 0) + 1
        by_blood_type[donation["blood_type"]] = by_blood_type.get(donation["blood_type"], 0) + 1

    return {
        "success": True,
        "data": {
            **_generated(),
            "summary": {
                "total_donations": len(donations),
                "total_units": sum(donation.get("units_collected", 0) for donation in donations),
                "discarded": sum(1 for donation in donations if donation.get("status") == "discarded"),
                "by_month": dict(sorted(by_month.items())),
                "by_blood_type": by_blood_type,
            },
        },
    }


@router.get("/analytics/dashboard")
async def analytics_dashboard(current_user: dict = Depends(require_staff)):
    units = await db.blood_inventory.find({"status": "available"}, {"_id": 0}).to_list(100000)
    stats = calculate_inventory_stats(units)
    return {
        "success": True,
        "data": {
            **_generated(),
            "donors": {
                "total": await db.donors.count_documents({}),
                "eligible": await db.donors.count_documents({"is_eligible": True}),
            },
            "inventory": {
                "total_units": stats["total_units"],
                "expiring_in_3_days": stats["expiring_in_3_days"],
                "expiring_in_7_days": stats["expiring_in_7_days"],
                "by_blood_type": {bt: row["units"] for bt, row in stats["by_blood_type"].items()},
            },
            "requests": {
                "pending": await db.blood_requests.count_documents({"status": "pending"}),
                "critical": await db.blood_requests.count_documents(
                    {"status": "pending", "urgency_level": "critical"}
                ),
            },
            "campaigns": {
                "active": await db.campaigns.count_documents({"status": "active"}),
                "planned": await db.campaigns.count_documents({"status": "planned"}),
            },
            "low_stock": await low_stock_report(),
        },
    }
