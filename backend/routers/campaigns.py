import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends

from database import db
from middleware import require_admin, require_staff, is_staff
from models import (
    Campaign, CampaignCreate, CampaignUpdate, CampaignRegistration, CampaignCompletion,
    Participant, ParticipantStatusUpdate, CampaignStatus, ParticipantStatus
)
from services import (
    get_current_user, generate_campaign_code, sms_service, email_service,
    paginate, pagination_meta, now_iso
)
from services.helpers import format_date

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/campaigns", tags=["Campaigns"])

OPEN_STATUSES = (CampaignStatus.PLANNED.value, CampaignStatus.ACTIVE.value)


async def _get_campaign(campaign_id: str) -> dict:
    campaign = await db.campaigns.find_one(
        {"$or": [{"id": campaign_id}, {"campaign_code": campaign_id}]}, {"_id": 0}
    )
    if not campaign:
        raise HTTPException(status_code=404, detail="Campaign not found")
    return campaign


async def _donor_contact(donor_id: str) -> dict:
    donor = await db.donors.find_one({"id": donor_id}, {"_id": 0, "user_id": 1})
    if not donor:
        return {}
    return await db.users.find_one(
        {"id": donor["user_id"]}, {"_id": 0, "name": 1, "email": 1, "phone": 1}
    ) or {}


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _summary(campaign: dict) -> dict:
    participants = campaign.get("participants", [])
    counts = {status.value: 0 for status in ParticipantStatus}
    for participant in participants:
        counts[participant["status"]] = counts.get(participant["status"], 0) + 1
    target = campaign.get("target_donors") or 0
    return {
        "total_registered": len(participants),
        "by_status": counts,
        "target_donors": target,
        "target_progress": round(len(participants) / target * 100, 2) if target else 0,
    }


@router.get("")
async def get_campaigns(
    page: int = 1,
    limit: int = 10,
    status: Optional[CampaignStatus] = None,
    city: Optional[str] = None,
    current_user: dict = Depends(get_current_user)
):
    query = {}
    if status:
        query["status"] = status.value
    if city:
        query["location.city"] = city
    if not is_staff(current_user):
        query["is_public"] = True

    paging = paginate(page, limit)
    total = await db.campaigns.count_documents(query)
    cursor = db.campaigns.find(query, {"_id": 0, "participants": 0}).sort("start_date", 1)
    campaigns = await cursor.skip(paging["skip"]).limit(paging["limit"]).to_list(paging["limit"])
    return {
        "success": True,
        "data": {"campaigns": campaigns, "pagination": pagination_meta(paging["page"], paging["limit"], total)},
    }


@router.post("", status_code=201)
async def create_campaign(campaign_data: CampaignCreate, current_user: dict = Depends(require_staff)):
    campaign = Campaign(**campaign_data.model_dump(), organizer=current_user["id"])
    campaign.campaign_code = await generate_campaign_code()

    doc = campaign.model_dump(mode="json")
    await db.campaigns.insert_one(doc)
    doc.pop("_id", None)
    logger.info("Campaign %s created by %s", doc["campaign_code"], current_user["id"])
    return {"success": True, "message": "Campaign created", "data": {"campaign": doc}}


@router.get("/status/upcoming")
async def get_upcoming_campaigns(current_user: dict = Depends(get_current_user)):
    campaigns = await db.campaigns.find(
        {"status": CampaignStatus.PLANNED.value, "start_date": {"$gt": now_iso()}, "is_public": True},
        {"_id": 0, "participants": 0},
    ).sort("start_date", 1).to_list(50)
    return {"success": True, "data": {"campaigns": campaigns}}


@router.get("/status/active")
async def get_active_campaigns(current_user: dict = Depends(get_current_user)):
    campaigns = await db.campaigns.find(
        {"status": CampaignStatus.ACTIVE.value}, {"_id": 0, "participants": 0}
    ).sort("end_date", 1).to_list(50)
    return {"success": True, "data": {"campaigns": campaigns}}


@router.get("/{campaign_id}")
async def get_campaign(campaign_id: str, current_user: dict = Depends(get_current_user)):
    campaign = await _get_campaign(campaign_id)
    if not campaign.get("is_public", True) and not is_staff(current_user):
        raise HTTPException(status_code=404, detail="Campaign not found")
    return {"success": True, "data": {"campaign": campaign}}


@router.put("/{campaign_id}")
async def update_campaign(campaign_id: str, updates: CampaignUpdate, current_user: dict = Depends(require_staff)):
    campaign = await _get_campaign(campaign_id)
    if campaign["status"] in (CampaignStatus.COMPLETED.value, CampaignStatus.CANCELLED.value):
        raise HTTPException(status_code=400, detail=f"Cannot update a {campaign['status']} campaign")

    changes = updates.model_dump(mode="json", exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")

    stored = Campaign(**campaign)
    start = _aware(updates.start_date or stored.start_date)
    end = _aware(updates.end_date or stored.end_date)
    if end <= start:
        raise HTTPException(status_code=400, detail="End date must be after start date")

    changes["updated_at"] = now_iso()
    await db.campaigns.update_one({"id": campaign["id"]}, {"$set": changes})
    return {"success": True, "message": "Campaign updated", "data": {"campaign": await _get_campaign(campaign["id"])}}


@router.post("/{campaign_id}/register", status_code=201)
async def register_donor(
    campaign_id: str,
    body: CampaignRegistration,
    current_user: dict = Depends(get_current_user)
):
    campaign = await _get_campaign(campaign_id)
    if campaign["status"] not in OPEN_STATUSES:
        raise HTTPException(status_code=400, detail="Campaign is not open for registration")

    if body.donor_id:
        donor = await db.donors.find_one({"id": body.donor_id}, {"_id": 0})
    else:
        donor = await db.donors.find_one({"user_id": current_user["id"]}, {"_id": 0})
    if not donor:
        raise HTTPException(status_code=404, detail="Donor not found")
    if not is_staff(current_user) and donor["user_id"] != current_user["id"]:
        raise HTTPException(status_code=403, detail="Access denied")
    if not donor.get("is_eligible", True):
        raise HTTPException(status_code=400, detail="Donor is not eligible for donation")
    if any(p["donor_id"] == donor["id"] for p in campaign.get("participants", [])):
        raise HTTPException(status_code=409, detail="Donor already registered for this campaign")

    participant = Participant(donor_id=donor["id"], appointment_time=body.appointment_time)
    await db.campaigns.update_one(
        {"id": campaign["id"]},
        {"$push": {"participants": participant.model_dump(mode="json")}, "$set": {"updated_at": now_iso()}},
    )

    contact = await _donor_contact(donor["id"])
    venue = campaign["location"]["venue"]
    if contact.get("phone"):
        await sms_service.send_campaign_invitation(
            contact["phone"], campaign["title"], format_date(campaign["start_date"], "DD/MM/YYYY"), venue
        )
    if contact.get("email"):
        await email_service.send_campaign_invitation(
            contact["email"], contact.get("name", ""), campaign["title"],
            format_date(campaign["start_date"], "DD/MM/YYYY HH:mm"), venue, campaign["description"],
        )

    return {
        "success": True,
        "message": "Donor registered for campaign successfully",
        "data": {"campaign_id": campaign["id"], "participant": participant.model_dump(mode="json")},
    }


@router.put("/{campaign_id}/donors/{donor_id}")
async def update_participant_status(
    campaign_id: str,
    donor_id: str,
    body: ParticipantStatusUpdate,
    current_user: dict = Depends(require_staff)
):
    campaign = await _get_campaign(campaign_id)
    participants = campaign.get("participants", [])
    index = next((i for i, p in enumerate(participants) if p["donor_id"] == donor_id), None)
    if index is None:
        raise HTTPException(status_code=404, detail="Donor not registered for this campaign")

    slot = f"participants.{index}"
    changes = {f"{slot}.status": body.status.value, "updated_at": now_iso()}
    if body.notes:
        changes[f"{slot}.notes"] = body.notes
    query = {"id": campaign["id"], f"{slot}.donor_id": donor_id}

    if body.status == ParticipantStatus.DONATED:
        counted = await db.campaigns.update_one(
            {**query, f"{slot}.status": {"$ne": ParticipantStatus.DONATED.value}},
            {"$set": changes, "$inc": {"results.successful_donations": 1}},
        )
        if counted.matched_count == 0:
            await db.campaigns.update_one(query, {"$set": changes})
    else:
        await db.campaigns.update_one(query, {"$set": changes})
    return {
        "success": True,
        "message": "Donor status updated successfully",
        "data": {"campaign_id": campaign["id"], "donor_id": donor_id, "status": body.status.value, "notes": body.notes},
    }


@router.post("/{campaign_id}/send-reminders")
async def send_campaign_reminders(campaign_id: str, current_user: dict = Depends(require_staff)):
    campaign = await _get_campaign(campaign_id)
    waiting = [
        p for p in campaign.get("participants", [])
        if p["status"] in (ParticipantStatus.REGISTERED.value, ParticipantStatus.CONFIRMED.value)
    ]

    venue = campaign["location"]["venue"]
    sms_sent, emails_sent = 0, 0
    for participant in waiting:
        contact = await _donor_contact(participant["donor_id"])
        when = participant.get("appointment_time") or campaign["start_date"]
        if contact.get("phone"):
            result = await sms_service.send_appointment_reminder(
                contact["phone"], format_date(when, "DD/MM/YYYY HH:mm"), venue
            )
            sms_sent += 1 if result.get("success") else 0
        if contact.get("email"):
            result = await email_service.send_appointment_confirmation(
                contact["email"], contact.get("name", ""), format_date(when, "DD/MM/YYYY HH:mm"),
                venue, campaign["title"],
            )
            emails_sent += 1 if result.get("success") else 0

    return {
        "success": True,
        "message": "Campaign reminders sent successfully",
        "data": {
            "campaign_id": campaign["id"],
            "donors_contacted": len(waiting),
            "sms_sent": sms_sent,
            "emails_sent": emails_sent,
        },
    }


@router.get("/{campaign_id}/stats")
async def get_campaign_stats(campaign_id: str, current_user: dict = Depends(require_staff)):
    campaign = await _get_campaign(campaign_id)
    donations = await db.donations.find({"campaign_id": campaign["id"]}, {"_id": 0}).to_list(10000)

    by_blood_type = {}
    for donation in donations:
        by_blood_type[donation["blood_type"]] = by_blood_type.get(donation["blood_type"], 0) + 1

    registered = len(campaign.get("participants", []))
    successful = campaign.get("results", {}).get("successful_donations", 0)
    stats = {
        **_summary(campaign),
        "results": campaign.get("results", {}),
        "donations_recorded": len(donations),
        "units_from_donations": sum(donation.get("units_collected", 0) for donation in donations),
        "donations_by_blood_type": by_blood_type,
        "conversion_rate": round(successful / registered * 100, 2) if registered else 0,
    }
    return {"success": True, "data": {"stats": stats}}


@router.get("/{campaign_id}/participants")
async def get_participants(
    campaign_id: str,
    status: Optional[ParticipantStatus] = None,
    current_user: dict = Depends(require_staff)
):
    campaign = await _get_campaign(campaign_id)
    participants = campaign.get("participants", [])
    if status:
        participants = [p for p in participants if p["status"] == status.value]

    for participant in participants:
        donor = await db.donors.find_one({"id": participant["donor_id"]}, {"_id": 0, "blood_type": 1})
        participant["blood_type"] = (donor or {}).get("blood_type")
        participant["contact"] = await _donor_contact(participant["donor_id"])
    return {"success": True, "data": {"participants": participants, "count": len(participants)}}


@router.patch("/{campaign_id}/cancel")
async def cancel_campaign(campaign_id: str, current_user: dict = Depends(require_staff)):
    campaign = await _get_campaign(campaign_id)
    if campaign["status"] not in OPEN_STATUSES:
        raise HTTPException(status_code=400, detail=f"Cannot cancel a {campaign['status']} campaign")

    await db.campaigns.update_one(
        {"id": campaign["id"]},
        {"$set": {"status": CampaignStatus.CANCELLED.value, "updated_at": now_iso()}},
    )
    return {"success": True, "message": "Campaign cancelled", "data": {"campaign": await _get_campaign(campaign["id"])}}


@router.patch("/{campaign_id}/complete")
async def complete_campaign(
    campaign_id: str,
    body: Optional[CampaignCompletion] = None,
    current_user: dict = Depends(require_staff)
):
    campaign = await _get_campaign(campaign_id)
    if campaign["status"] not in OPEN_STATUSES:
        raise HTTPException(status_code=400, detail=f"Cannot complete a {campaign['status']} campaign")

    participants = campaign.get("participants", [])
    attended = (ParticipantStatus.ATTENDED.value, ParticipantStatus.DONATED.value)
    changes = {
        "status": CampaignStatus.COMPLETED.value,
        "results.total_attendees": sum(1 for p in participants if p["status"] in attended),
        "updated_at": now_iso(),
    }
    if body and body.units_collected is not None:
        changes["results.units_collected"] = body.units_collected

    await db.campaigns.update_one({"id": campaign["id"]}, {"$set": changes})
    return {"success": True, "message": "Campaign completed", "data": {"campaign": await _get_campaign(campaign["id"])}}


@router.delete("/{campaign_id}")
async def delete_campaign(campaign_id: str, current_user: dict = Depends(require_admin)):
    campaign = await _get_campaign(campaign_id)
    if campaign["status"] == CampaignStatus.ACTIVE.value:
        raise HTTPException(status_code=400, detail="Active campaigns cannot be deleted")
    await db.campaigns.delete_one({"id": campaign["id"]})
    return {"success": True, "message": "Campaign deleted"}
