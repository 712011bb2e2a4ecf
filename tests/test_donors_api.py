from datetime import date, timedelta

from conftest import auth_headers
from database import db


def screening(passed=True):
    return {"weight": 70, "systolic": 120, "diastolic": 80, "hemoglobin": 14.2, "passed": passed}


async def test_create_donor_profile(client, admin_headers, make_user):
    user = await make_user("donor")

    response = await client.post("/api/donors", headers=admin_headers, json={
        "user_id": user["id"],
        "blood_type": "B-",
        "date_of_birth": "1988-02-10",
        "gender": "female",
        "weight": 48,
        "height": 160,
    })

    assert response.status_code == 201
    donor = response.json()["data"]["donor"]
    assert donor["is_eligible"] is False
    assert donor["eligibility_notes"] == "Weight must be at least 50kg"

    duplicate = await client.post("/api/donors", headers=admin_headers, json={
        "user_id": user["id"], "blood_type": "B-", "date_of_birth": "1988-02-10", "weight": 60, "height": 160,
    })
    assert duplicate.status_code == 409


async def test_create_donor_requires_donor_role(client, admin_headers, staff):
    response = await client.post("/api/donors", headers=admin_headers, json={
        "user_id": staff["id"], "blood_type": "B-", "date_of_birth": "1988-02-10", "weight": 60, "height": 160,
    })
    assert response.status_code == 400


async def test_donor_sees_own_profile_only(client, make_donor):
    donor, user = await make_donor("O+")
    _, other = await make_donor("A+")

    own = await client.get(f"/api/donors/{donor['id']}", headers=auth_headers(user))
    assert own.status_code == 200
    assert own.json()["data"]["donor"]["user"]["id"] == user["id"]

    foreign = await client.get(f"/api/donors/{donor['id']}", headers=auth_headers(other))
    assert foreign.status_code == 403

    me = await client.get("/api/donors/me", headers=auth_headers(user))
    assert me.json()["data"]["donor"]["id"] == donor["id"]


async def test_eligible_donors_for_recipient_type(client, staff_headers, make_donor):
    await make_donor("O-")
    await make_donor("A-")
    await make_donor("B+")
    await make_donor("A+", is_eligible=False)

    response = await client.get("/api/donors/eligible/A+", headers=staff_headers)

    data = response.json()["data"]
    assert data["count"] == 2
    assert sorted(donor["blood_type"] for donor in data["donors"]) == ["A-", "O-"]


async def test_record_donation_adds_inventory_and_updates_eligibility(client, staff_headers, make_donor, twilio):
    donor, _ = await make_donor("AB+")

    response = await client.post(f"/api/donors/{donor['id']}/donations", headers=staff_headers, json={
        "pre_screening": screening(), "storage_section": "fridge-2",
    })

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["inventory"]["unit_code"] == "BU-000001"
    assert data["inventory"]["storage_location"]["section"] == "fridge-2"
    assert data["donation"]["inventory_id"] == data["inventory"]["id"]
    assert data["eligibility"]["is_eligible"] is False
    assert data["eligibility"]["next_eligible_date"] == (date.today() + timedelta(days=84)).isoformat()

    stored = await db.donors.find_one({"id": donor["id"]})
    assert stored["total_donations"] == 1
    assert stored["is_eligible"] is False
    assert "Thank you" in twilio.sent[0]["body"]


async def test_failed_screening_discards_donation(client, staff_headers, make_donor):
    donor, _ = await make_donor("AB+")

    response = await client.post(f"/api/donors/{donor['id']}/donations", headers=staff_headers, json={
        "pre_screening": screening(passed=False),
    })

    data = response.json()["data"]
    assert data["donation"]["status"] == "discarded"
    assert data["inventory"] is None
    assert await db.blood_inventory.count_documents({}) == 0


async def test_ineligible_donor_cannot_donate(client, staff_headers, make_donor):
    donor, _ = await make_donor("AB+", is_eligible=False)
    response = await client.post(f"/api/donors/{donor['id']}/donations", headers=staff_headers, json={
        "pre_screening": screening(),
    })
    assert response.status_code == 400


async def test_check_eligibility_updates_and_texts_donor(client, make_donor, twilio):
    recent = (date.today() - timedelta(days=10)).isoformat()
    donor, user = await make_donor("O+", last_donation_date=recent)

    response = await client.post(f"/api/donors/{donor['id']}/check-eligibility", headers=auth_headers(user))

    data = response.json()["data"]
    assert data["donor"]["is_eligible"] is False
    assert data["eligibility"]["next_eligible_date"] == (date.today() + timedelta(days=74)).isoformat()
    assert "not eligible" in twilio.sent[0]["body"]


async def test_bulk_notification(client, admin_headers, make_donor, twilio):
    await make_donor("O-")
    await make_donor("O+")

    response = await client.post("/api/donors/bulk-notification", headers=admin_headers, json={
        "blood_type": "O+", "message": "Urgent O+ drive at the central blood bank today",
    })

    data = response.json()["data"]
    assert data["total_donors"] == 2
    assert data["notifications_sent"] == 2
    assert len(twilio.sent) == 2


async def test_bulk_notification_without_sms_configuration(client, admin_headers, make_donor):
    await make_donor("O+")

    response = await client.post("/api/donors/bulk-notification", headers=admin_headers, json={
        "blood_type": "O+", "message": "Urgent O+ drive at the central blood bank today",
    })

    assert response.status_code == 503
    assert response.json() == {"success": False, "message": "SMS service not configured"}


async def test_history_and_stats(client, staff_headers, make_donor):
    donor, user = await make_donor("A-")
    await client.post(f"/api/donors/{donor['id']}/donations", headers=staff_headers, json={
        "pre_screening": screening(), "units_collected": 2,
    })

    history = await client.get(f"/api/donors/{donor['id']}/history", headers=auth_headers(user))
    assert history.json()["data"]["total_units"] == 2

    stats = await client.get(f"/api/donors/{donor['id']}/stats", headers=auth_headers(user))
    impact = stats.json()["data"]["stats"]
    assert impact["donation_stats"]["successful_donations"] == 1
    assert impact["impact_stats"]["lives_saved"] == 3


async def test_delete_donor_blocked_by_reserved_units(client, admin_headers, make_donor, make_unit):
    donor, _ = await make_donor("A-")
    await make_unit("A-", status="reserved", donor_id=donor["id"])

    response = await client.delete(f"/api/donors/{donor['id']}", headers=admin_headers)
    assert response.status_code == 400

    await db.blood_inventory.delete_many({})
    response = await client.delete(f"/api/donors/{donor['id']}", headers=admin_headers)
    assert response.status_code == 200
