from datetime import datetime, timedelta, timezone

import pytest

from conftest import auth_headers
from database import db


def at(days, hour=9):
    moment = datetime.now(timezone.utc).replace(hour=hour, minute=0, second=0, microsecond=0)
    return (moment + timedelta(days=days)).strftime("%Y-%m-%dT%H:%M:%SZ")


def campaign_body(**overrides):
    body = {
        "title": "Community Blood Drive",
        "description": "Quarterly drive at the town hall",
        "start_date": at(10),
        "end_date": at(10, hour=17),
        "location": {"venue": "Town Hall", "address": "5 Temple Rd", "city": "Galle", "district": "Galle"},
        "target_blood_types": ["O-", "O+"],
        "target_donors": 4,
    }
    body.update(overrides)
    return body


@pytest.fixture
async def campaign(client, staff_headers):
    response = await client.post("/api/campaigns", headers=staff_headers, json=campaign_body())
    return response.json()["data"]["campaign"]


async def test_create_campaign(client, staff, staff_headers):
    response = await client.post("/api/campaigns", headers=staff_headers, json=campaign_body())

    assert response.status_code == 201
    campaign = response.json()["data"]["campaign"]
    assert campaign["campaign_code"] == "CMP-000001"
    assert campaign["organizer"] == staff["id"]
    assert campaign["status"] == "planned"


async def test_create_campaign_rejects_reversed_dates(client, staff_headers):
    response = await client.post(
        "/api/campaigns", headers=staff_headers, json=campaign_body(end_date=at(9))
    )
    assert response.status_code == 400


async def test_donors_only_see_public_campaigns(client, staff_headers, make_user, campaign):
    await client.post("/api/campaigns", headers=staff_headers, json=campaign_body(title="Staff-only drive", is_public=False))
    donor = await make_user("donor")

    public = await client.get("/api/campaigns", headers=auth_headers(donor))
    assert [item["title"] for item in public.json()["data"]["campaigns"]] == ["Community Blood Drive"]
    assert "participants" not in public.json()["data"]["campaigns"][0]

    everything = await client.get("/api/campaigns", headers=staff_headers)
    assert everything.json()["data"]["pagination"]["total_items"] == 2


async def test_upcoming_and_lookup_by_code(client, staff_headers, campaign):
    upcoming = await client.get("/api/campaigns/status/upcoming", headers=staff_headers)
    assert [item["id"] for item in upcoming.json()["data"]["campaigns"]] == [campaign["id"]]

    by_code = await client.get(f"/api/campaigns/{campaign['campaign_code']}", headers=staff_headers)
    assert by_code.json()["data"]["campaign"]["id"] == campaign["id"]


async def test_donor_registers_and_is_invited(client, campaign, make_donor, twilio, outbox):
    donor, user = await make_donor("O-")

    response = await client.post(f"/api/campaigns/{campaign['id']}/register", headers=auth_headers(user), json={})

    assert response.status_code == 201
    assert response.json()["data"]["participant"]["donor_id"] == donor["id"]
    start = datetime.strptime(campaign["start_date"][:10], "%Y-%m-%d")
    assert start.strftime("%d/%m/%Y") in twilio.sent[0]["body"]
    assert outbox[0]["Subject"] == "Invitation: Community Blood Drive"

    again = await client.post(f"/api/campaigns/{campaign['id']}/register", headers=auth_headers(user), json={})
    assert again.status_code == 409


async def test_donor_cannot_register_someone_else(client, campaign, make_donor):
    other, _ = await make_donor("O+")
    _, user = await make_donor("A+")

    response = await client.post(
        f"/api/campaigns/{campaign['id']}/register", headers=auth_headers(user), json={"donor_id": other["id"]}
    )
    assert response.status_code == 403


async def test_ineligible_donor_cannot_register(client, staff_headers, campaign, make_donor):
    donor, _ = await make_donor("A+", is_eligible=False)
    response = await client.post(
        f"/api/campaigns/{campaign['id']}/register", headers=staff_headers, json={"donor_id": donor["id"]}
    )
    assert response.status_code == 400


async def test_participant_status_counts_donations_once(client, staff_headers, campaign, make_donor):
    donor, _ = await make_donor("O-")
    await client.post(f"/api/campaigns/{campaign['id']}/register", headers=staff_headers, json={"donor_id": donor["id"]})
    path = f"/api/campaigns/{campaign['id']}/donors/{donor['id']}"

    await client.put(path, headers=staff_headers, json={"status": "donated", "notes": "No complications"})
    await client.put(path, headers=staff_headers, json={"status": "donated"})

    stored = await db.campaigns.find_one({"id": campaign["id"]})
    assert stored["results"]["successful_donations"] == 1
    assert stored["participants"][0]["status"] == "donated"
    assert stored["participants"][0]["notes"] == "No complications"

    missing = await client.put(
        f"/api/campaigns/{campaign['id']}/donors/unknown", headers=staff_headers, json={"status": "attended"}
    )
    assert missing.status_code == 404


async def test_recorded_donation_does_not_recount_marked_participant(client, staff_headers, campaign, make_donor):
    donor, _ = await make_donor("O-")
    await client.post(f"/api/campaigns/{campaign['id']}/register", headers=staff_headers, json={"donor_id": donor["id"]})
    await client.put(
        f"/api/campaigns/{campaign['id']}/donors/{donor['id']}", headers=staff_headers, json={"status": "donated"}
    )

    response = await client.post(f"/api/donors/{donor['id']}/donations", headers=staff_headers, json={
        "pre_screening": {"weight": 70, "passed": True}, "campaign_id": campaign["id"],
    })

    assert response.status_code == 201
    results = (await db.campaigns.find_one({"id": campaign["id"]}))["results"]
    assert results["successful_donations"] == 1
    assert results["units_collected"] == 1


async def test_marking_donated_after_recorded_donation_counts_once(client, staff_headers, campaign, make_donor):
    donor, _ = await make_donor("O+")
    await client.post(f"/api/campaigns/{campaign['id']}/register", headers=staff_headers, json={"donor_id": donor["id"]})
    await client.post(f"/api/donors/{donor['id']}/donations", headers=staff_headers, json={
        "pre_screening": {"weight": 70, "passed": True}, "campaign_id": campaign["id"],
    })

    await client.put(
        f"/api/campaigns/{campaign['id']}/donors/{donor['id']}", headers=staff_headers, json={"status": "donated"}
    )

    stored = await db.campaigns.find_one({"id": campaign["id"]})
    assert stored["results"]["successful_donations"] == 1
    assert stored["participants"][0]["status"] == "donated"


async def test_send_reminders_to_waiting_participants(client, staff_headers, campaign, make_donor, twilio, outbox):
    waiting, _ = await make_donor("O-")
    done, _ = await make_donor("O+")
    for donor in (waiting, done):
        await client.post(
            f"/api/campaigns/{campaign['id']}/register", headers=staff_headers,
            json={"donor_id": donor["id"], "appointment_time": at(10, hour=11)},
        )
    await client.put(
        f"/api/campaigns/{campaign['id']}/donors/{done['id']}", headers=staff_headers, json={"status": "donated"}
    )
    twilio.sent.clear()
    outbox.clear()

    response = await client.post(f"/api/campaigns/{campaign['id']}/send-reminders", headers=staff_headers)

    data = response.json()["data"]
    assert data["donors_contacted"] == 1
    assert data["sms_sent"] == 1
    assert data["emails_sent"] == 1
    assert "11:00" in twilio.sent[0]["body"]
    assert outbox[0]["Subject"] == "Blood Donation Appointment Confirmation"


async def test_stats_and_participants(client, staff_headers, campaign, make_donor):
    donor, _ = await make_donor("O-")
    await client.post(f"/api/campaigns/{campaign['id']}/register", headers=staff_headers, json={"donor_id": donor["id"]})

    stats = await client.get(f"/api/campaigns/{campaign['id']}/stats", headers=staff_headers)
    data = stats.json()["data"]["stats"]
    assert data["total_registered"] == 1
    assert data["target_progress"] == 25.0
    assert data["by_status"]["registered"] == 1

    participants = await client.get(
        f"/api/campaigns/{campaign['id']}/participants", headers=staff_headers, params={"status": "registered"}
    )
    assert participants.json()["data"]["participants"][0]["blood_type"] == "O-"


async def test_update_rejects_end_before_start(client, staff_headers, campaign):
    response = await client.put(
        f"/api/campaigns/{campaign['id']}", headers=staff_headers, json={"end_date": at(5)}
    )
    assert response.status_code == 400
    assert response.json()["message"] == "End date must be after start date"

    renamed = await client.put(
        f"/api/campaigns/{campaign['id']}", headers=staff_headers, json={"title": "Spring Blood Drive"}
    )
    assert renamed.json()["data"]["campaign"]["title"] == "Spring Blood Drive"


async def test_complete_and_cancel(client, staff_headers, admin_headers, campaign, make_donor):
    donor, _ = await make_donor("O-")
    await client.post(f"/api/campaigns/{campaign['id']}/register", headers=staff_headers, json={"donor_id": donor["id"]})
    await client.put(
        f"/api/campaigns/{campaign['id']}/donors/{donor['id']}", headers=staff_headers, json={"status": "attended"}
    )

    completed = await client.patch(
        f"/api/campaigns/{campaign['id']}/complete", headers=staff_headers, json={"units_collected": 1}
    )
    results = completed.json()["data"]["campaign"]["results"]
    assert results["total_attendees"] == 1
    assert results["units_collected"] == 1

    cancelled = await client.patch(f"/api/campaigns/{campaign['id']}/cancel", headers=staff_headers)
    assert cancelled.status_code == 400

    locked = await client.put(f"/api/campaigns/{campaign['id']}", headers=staff_headers, json={"title": "Too late now"})
    assert locked.status_code == 400

    deleted = await client.delete(f"/api/campaigns/{campaign['id']}", headers=admin_headers)
    assert deleted.status_code == 200


async def test_active_campaign_cannot_be_deleted(client, admin_headers, staff_headers, campaign):
    await client.put(f"/api/campaigns/{campaign['id']}", headers=staff_headers, json={"status": "active"})

    active = await client.get("/api/campaigns/status/active", headers=staff_headers)
    assert len(active.json()["data"]["campaigns"]) == 1

    response = await client.delete(f"/api/campaigns/{campaign['id']}", headers=admin_headers)
    assert response.status_code == 400
