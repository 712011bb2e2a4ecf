import logging
from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends

from database import db
from middleware import require_admin, require_staff, ensure_admin_or_owner
from models import (
    Donor, DonorCreate, DonorUpdate, Donation, DonationCreate, BulkDonorNotification,
    BloodUnit, BloodType, DonationStatus, UserRole
)
from services import (
    get_current_user, check_donor_eligibility, generate_unit_code, sms_service,
    paginate, pagination_meta, now_iso
)
from services.helpers import calculate_age, calculate_expiry_date, can_receive_from

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/donors", tags=["Donors"])


async def _get_donor(donor_id: str) -> dict:
    donor = await db.donors.find_one({"id": donor_id}, {"_id": 0})
    if not donor:
        raise HTTPException(status_code=404, detail="Donor not found")
    return donor


async def _donor_user(donor: dict) -> dict:
    return await db.users.find_one(
        {"id": donor["user_id"]}, {"_id": 0, "id": 1, "name": 1, "email": 1, "phone": 1}
    ) or {}


async def _record_campaign_donation(campaign_id: str, donor_id: str, units: int, donation_id: str):
    campaign = await db.campaigns.find_one({"id": campaign_id}, {"_id": 0, "participants": 1})
    participants = (campaign or {}).get("participants", [])
    index = next((i for i, p in enumerate(participants) if p["donor_id"] == donor_id), None)
    if index is None:
        logger.warning("Donation %s references campaign %s without a registration", donation_id, campaign_id)
        return

    slot = f"participants.{index}"
    # a participant already marked donated has been counted
    counted = await db.campaigns.update_one(
        {"id": campaign_id, f"{slot}.donor_id": donor_id, f"{slot}.status": {"$ne": "donated"}},
        {
            "$set": {f"{slot}.status": "donated", "updated_at": now_iso()},
            "$inc": {"results.successful_donations": 1, "results.units_collected": units},
        },
    )
    if counted.matched_count == 0:
        await db.campaigns.update_one(
            {"id": campaign_id, f"{slot}.donor_id": donor_id},
            {"$set": {"updated_at": now_iso()}, "$inc": {"results.units_collected": units}},
        )


async def _ensure_can_access(donor: dict, current_user: dict):
    if current_user["role"] in ("admin", "hospital_staff"):
        return
    ensure_admin_or_owner(current_user, donor["user_id"])


@router.get("")
async def get_donors(
    page: int = 1,
    limit: int = 10,
    blood_type: Optional[BloodType] = None,
    is_eligible: Optional[bool] = None,
    current_user: dict = Depends(require_staff)
):
    query = {}
    if blood_type:
        query["blood_type"] = blood_type.value
    if is_eligible is not None:
        query["is_eligible"] = is_eligible

    paging = paginate(page, limit)
    total = await db.donors.count_documents(query)
    cursor = db.donors.find(query, {"_id": 0}).sort("created_at", -1)
    donors = await cursor.skip(paging["skip"]).limit(paging["limit"]).to_list(paging["limit"])
    for donor in donors:
        donor["user"] = await _donor_user(donor)
    return {
        "success": True,
        "data": {"donors": donors, "pagination": pagination_meta(paging["page"], paging["limit"], total)},
    }


@router.post("", status_code=201)
async def create_donor(donor_data: DonorCreate, current_user: dict = Depends(require_admin)):
    if not donor_data.user_id:
        raise HTTPException(status_code=400, detail="user_id is required")
    user = await db.users.find_one({"id": donor_data.user_id}, {"_id": 0})
    if not user or user["role"] != UserRole.DONOR.value:
        raise HTTPException(status_code=400, detail="User must exist and have the donor role")
    if await db.donors.find_one({"user_id": donor_data.user_id}, {"_id": 1}):
        raise HTTPException(status_code=409, detail="Donor profile already exists for this user")

    donor = Donor(**donor_data.model_dump(mode="json"))
    doc = donor.model_dump(mode="json")
    eligibility = check_donor_eligibility(doc)
    doc.update({
        "is_eligible": eligibility["is_eligible"],
        "eligibility_notes": ", ".join(eligibility["issues"]) or None,
        "next_eligible_date": eligibility["next_eligible_date"],
    })
    await db.donors.insert_one(doc)
    doc.pop("_id", None)
    return {"success": True, "message": "Donor created", "data": {"donor": doc}}


@router.get("/me")
async def get_my_donor_profile(current_user: dict = Depends(get_current_user)):
    donor = await db.donors.find_one({"user_id": current_user["id"]}, {"_id": 0})
    if not donor:
        raise HTTPException(status_code=404, detail="Donor profile not found")
    return {"success": True, "data": {"donor": donor}}


@router.get("/eligible/{blood_type}")
async def get_eligible_donors(blood_type: BloodType, current_user: dict = Depends(require_staff)):
    compatible = can_receive_from(blood_type.value)
    donors = await db.donors.find(
        {"blood_type": {"$in": compatible}, "is_eligible": True}, {"_id": 0}
    ).to_list(1000)
    for donor in donors:
        donor["user"] = await _donor_user(donor)
    return {
        "success": True,
        "data": {
            "recipient_blood_type": blood_type.value,
            "compatible_types": compatible,
            "count": len(donors),
            "donors": donors,
        },
    }


@router.post("/bulk-notification")
async def send_bulk_notification(body: BulkDonorNotification, current_user: dict = Depends(require_admin)):
    donors = await db.donors.find(
        {"blood_type": {"$in": can_receive_from(body.blood_type.value)}, "is_eligible": True},
        {"_id": 0, "user_id": 1},
    ).to_list(10000)
    users = await db.users.find(
        {"id": {"$in": [donor["user_id"] for donor in donors]}}, {"_id": 0, "phone": 1}
    ).to_list(10000)
    phones = [user["phone"] for user in users if user.get("phone")]
    if not phones:
        raise HTTPException(status_code=404, detail="No eligible donors found with phone numbers")

    results = await sms_service.send_bulk(phones, body.message)
    return {
        "success": True,
        "message": "Bulk notification sent successfully",
        "data": {
            "blood_type": body.blood_type.value,
            "total_donors": len(donors),
            "notifications_sent": results["successful"],
            "notifications_failed": results["failed"],
            "results": results["results"],
        },
    }


@router.get("/{donor_id}")
async def get_donor(donor_id: str, current_user: dict = Depends(get_current_user)):
    donor = await _get_donor(donor_id)
    await _ensure_can_access(donor, current_user)
    donor["user"] = await _donor_user(donor)
    donor["age"] = calculate_age(donor["date_of_birth"])
    return {"success": True, "data": {"donor": donor}}


@router.put("/{donor_id}")
async def update_donor(donor_id: str, updates: DonorUpdate, current_user: dict = Depends(get_current_user)):
    donor = await _get_donor(donor_id)
    ensure_admin_or_owner(current_user, donor["user_id"])

    changes = updates.model_dump(mode="json", exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    changes["updated_at"] = now_iso()
    await db.donors.update_one({"id": donor_id}, {"$set": changes})
    return {"success": True, "message": "Donor updated", "data": {"donor": await _get_donor(donor_id)}}


@router.post("/{donor_id}/check-eligibility")
async def check_eligibility(donor_id: str, current_user: dict = Depends(get_current_user)):
    donor = await _get_donor(donor_id)
    await _ensure_can_access(donor, current_user)

    eligibility = check_donor_eligibility(donor)
    if eligibility["is_eligible"] != donor.get("is_eligible"):
        changes = {
            "is_eligible": eligibility["is_eligible"],
            "eligibility_notes": ", ".join(eligibility["issues"]) or None,
            "next_eligible_date": eligibility["next_eligible_date"],
            "updated_at": now_iso(),
        }
        await db.donors.update_one({"id": donor_id}, {"$set": changes})
        donor.update(changes)

        user = await _donor_user(donor)
        if user.get("phone"):
            await sms_service.send_eligibility_update(
                user["phone"], eligibility["is_eligible"], eligibility["next_eligible_date"]
            )

    return {
        "success": True,
        "message": "Eligibility checked successfully",
        "data": {
            "eligibility": eligibility,
            "donor": {
                "id": donor["id"],
                "is_eligible": donor.get("is_eligible"),
                "eligibility_notes": donor.get("eligibility_notes"),
                "next_eligible_date": donor.get("next_eligible_date"),
            },
        },
    }


@router.post("/{donor_id}/donations", status_code=201)
async def record_donation(donor_id: str, body: DonationCreate, current_user: dict = Depends(require_staff)):
    donor = await _get_donor(donor_id)
    if not donor.get("is_eligible", True):
        raise HTTPException(status_code=400, detail="Donor is not currently eligible to donate")

    donation_date = (body.donation_date or date.today()).isoformat()
    donation = Donation(
        donor_id=donor_id,
        campaign_id=body.campaign_id,
        donation_date=donation_date,
        blood_type=donor["blood_type"],
        units_collected=body.units_collected,
        pre_screening=body.pre_screening,
        collected_by=current_user["id"],
        venue=body.venue,
        complications=body.complications,
        follow_up_required=body.follow_up_required,
    )

    unit_doc = None
    if body.pre_screening.passed:
        unit = BloodUnit(
            blood_type=donor["blood_type"],
            units=body.units_collected,
            collection_date=donation_date,
            expiry_date=calculate_expiry_date(donation_date).isoformat(),
            donor_id=donor_id,
            donation_id=donation.id,
            storage_location={"section": body.storage_section},
            created_by=current_user["id"],
        )
        unit.unit_code = await generate_unit_code()
        unit_doc = unit.model_dump(mode="json")
        await db.blood_inventory.insert_one(unit_doc)
        unit_doc.pop("_id", None)
        donation.inventory_id = unit.id
    else:
        donation.status = DonationStatus.DISCARDED

    doc = donation.model_dump(mode="json")
    await db.donations.insert_one(doc)
    doc.pop("_id", None)

    updated_donor = {**donor, "last_donation_date": donation_date}
    eligibility = check_donor_eligibility(updated_donor)
    await db.donors.update_one({"id": donor_id}, {
        "$set": {
            "last_donation_date": donation_date,
            "is_eligible": eligibility["is_eligible"],
            "eligibility_notes": ", ".join(eligibility["issues"]) or None,
            "next_eligible_date": eligibility["next_eligible_date"],
            "updated_at": now_iso(),
        },
        "$inc": {"total_donations": 1},
    })

    if body.campaign_id:
        await _record_campaign_donation(body.campaign_id, donor_id, body.units_collected, doc["id"])

    user = await _donor_user(donor)
    if user.get("phone") and body.pre_screening.passed:
        await sms_service.send_donation_thank_you(user["phone"], user.get("name", "Donor"), donor["blood_type"])

    return {
        "success": True,
        "message": "Donation recorded",
        "data": {"donation": doc, "inventory": unit_doc, "eligibility": eligibility},
    }


@router.get("/{donor_id}/history")
async def get_donor_history(donor_id: str, current_user: dict = Depends(get_current_user)):
    donor = await _get_donor(donor_id)
    await _ensure_can_access(donor, current_user)
    donations = await db.donations.find({"donor_id": donor_id}, {"_id": 0}).sort("donation_date", -1).to_list(1000)
    return {
        "success": True,
        "data": {
            "donations": donations,
            "total_donations": len(donations),
            "total_units": sum(donation.get("units_collected", 0) for donation in donations),
        },
    }


@router.get("/{donor_id}/campaigns")
async def get_donor_campaigns(donor_id: str, current_user: dict = Depends(get_current_user)):
    donor = await _get_donor(donor_id)
    await _ensure_can_access(donor, current_user)
    campaigns = await db.campaigns.find({"participants.donor_id": donor_id}, {"_id": 0}).to_list(1000)
    for campaign in campaigns:
        campaign["registration"] = next(
            (p for p in campaign.get("participants", []) if p["donor_id"] == donor_id), None
        )
        campaign.pop("participants", None)
    return {"success": True, "data": {"campaigns": campaigns}}


@router.get("/{donor_id}/stats")
async def get_donor_stats(donor_id: str, current_user: dict = Depends(get_current_user)):
    donor = await _get_donor(donor_id)
    await _ensure_can_access(donor, current_user)
    donations = await db.donations.find({"donor_id": donor_id}, {"_id": 0}).to_list(1000)
    campaigns = await db.campaigns.find({"participants.donor_id": donor_id}, {"_id": 0, "status": 1}).to_list(1000)
    successful = [donation for donation in donations if donation.get("status") != "discarded"]
    created = datetime.fromisoformat(donor["created_at"].replace("Z", "+00:00"))

    stats = {
        "personal_info": {
            "age": calculate_age(donor["date_of_birth"]),
            "blood_type": donor["blood_type"],
            "weight": donor["weight"],
            "is_eligible": donor.get("is_eligible"),
        },
        "donation_stats": {
            "total_donations": len(donations),
            "successful_donations": len(successful),
            "total_units_contributed": sum(donation.get("units_collected", 0) for donation in successful),
            "last_donation_date": donor.get("last_donation_date"),
            "next_eligible_date": donor.get("next_eligible_date"),
        },
        "campaign_stats": {
            "total_campaigns": len(campaigns),
            "active_campaigns": sum(1 for campaign in campaigns if campaign["status"] == "active"),
            "completed_campaigns": sum(1 for campaign in campaigns if campaign["status"] == "completed"),
        },
        "impact_stats": {
            "lives_saved": len(successful) * 3,
            "years_contributing": (datetime.now(timezone.utc) - created).days // 365,
        },
    }
    return {"success": True, "data": {"stats": stats}}


@router.delete("/{donor_id}")
async def delete_donor(donor_id: str, current_user: dict = Depends(require_admin)):
    donor = await _get_donor(donor_id)
    if await db.blood_inventory.count_documents({"donor_id": donor_id, "status": "reserved"}):
        raise HTTPException(status_code=400, detail="Donor has reserved blood units and cannot be deleted")
    await db.donors.delete_one({"id": donor["id"]})
    await db.campaigns.update_many({}, {"$pull": {"participants": {"donor_id": donor_id}}})
    return {"success": True, "message": "Donor deleted"}
