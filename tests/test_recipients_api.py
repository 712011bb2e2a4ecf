from datetime import date, timedelta

import pytest

from conftest import auth_headers
from database import db


@pytest.fixture
def make_recipient(client, staff_headers, make_user):
    async def factory(blood_type="A-", condition="Thalassemia major"):
        user = await make_user("recipient")
        response = await client.post("/api/recipients", headers=staff_headers, json={
            "user_id": user["id"],
            "blood_type": blood_type,
            "date_of_birth": "2001-07-21",
            "medical_condition": condition,
        })
        return response.json()["data"]["recipient"], user

    return factory


def request_body(blood_type="A-"):
    return {
        "blood_type": blood_type,
        "units_required": 1,
        "required_by": (date.today() + timedelta(days=3)).isoformat(),
        "reason": "Monthly transfusion cycle",
        "patient_condition": "Anaemic, stable",
    }


async def test_create_recipient_checks_role_and_duplicates(client, staff_headers, make_user, make_recipient):
    recipient, user = await make_recipient()
    assert recipient["is_active"] is True

    again = await client.post("/api/recipients", headers=staff_headers, json={
        "user_id": user["id"], "blood_type": "A-", "date_of_birth": "2001-07-21",
        "medical_condition": "Thalassemia major",
    })
    assert again.status_code == 409

    donor = await make_user("donor")
    wrong_role = await client.post("/api/recipients", headers=staff_headers, json={
        "user_id": donor["id"], "blood_type": "A-", "date_of_birth": "2001-07-21",
        "medical_condition": "Thalassemia major",
    })
    assert wrong_role.status_code == 400


async def test_recipient_access_is_owner_or_staff(client, make_recipient, make_user):
    recipient, user = await make_recipient()
    stranger = await make_user("recipient")

    own = await client.get(f"/api/recipients/{recipient['id']}", headers=auth_headers(user))
    assert own.status_code == 200
    other = await client.get(f"/api/recipients/{recipient['id']}", headers=auth_headers(stranger))
    assert other.status_code == 403


async def test_search_by_compatible_donor(client, staff_headers, make_recipient):
    await make_recipient("A-")
    await make_recipient("AB+")
    await make_recipient("O+")

    response = await client.get("/api/recipients/search/compatible/A-", headers=staff_headers)

    data = response.json()["data"]
    assert sorted(item["blood_type"] for item in data["recipients"]) == ["A-", "AB+"]


async def test_search_by_condition_is_case_insensitive(client, staff_headers, make_recipient):
    await make_recipient(condition="Sickle cell disease")
    await make_recipient(condition="Chronic kidney failure")

    response = await client.get("/api/recipients/search/condition/SICKLE", headers=staff_headers)

    assert response.json()["data"]["count"] == 1


async def test_transfusion_compatibility(client, staff_headers, make_recipient):
    recipient, user = await make_recipient("A-")
    path = f"/api/recipients/{recipient['id']}/transfusions"

    rejected = await client.post(path, headers=staff_headers, json={
        "transfusion_date": date.today().isoformat(), "blood_type": "A+", "units": 1,
    })
    assert rejected.status_code == 400
    assert rejected.json()["message"] == "A+ is not compatible with recipient blood type A-"

    for days, units in ((20, 2), (5, 1)):
        await client.post(path, headers=staff_headers, json={
            "transfusion_date": (date.today() - timedelta(days=days)).isoformat(), "blood_type": "O-", "units": units,
        })

    history = await client.get(path, headers=auth_headers(user))
    data = history.json()["data"]
    assert data["total_units"] == 3
    assert data["transfusions"][0]["units"] == 1


async def test_compatible_blood_availability(client, staff_headers, make_recipient, make_unit):
    recipient, _ = await make_recipient("A-")
    await make_unit("O-", units=3)
    await make_unit("A-", units=2)
    await make_unit("A+", units=9)

    response = await client.get(f"/api/recipients/{recipient['id']}/compatible-blood", headers=staff_headers)

    data = response.json()["data"]
    assert data["available_units"] == {"A-": 2, "O-": 3}
    assert data["total_available"] == 5


async def test_recipient_requests(client, staff_headers, hospital, make_recipient):
    recipient, _ = await make_recipient("A-")
    path = f"/api/recipients/{recipient['id']}/requests"

    incompatible = await client.post(path, headers=staff_headers, json=request_body("B-"))
    assert incompatible.status_code == 400

    created = await client.post(path, headers=staff_headers, json=request_body("O-"))
    assert created.status_code == 201
    assert created.json()["data"]["request"]["recipient_id"] == recipient["id"]

    stats = await client.get(f"/api/recipients/{recipient['id']}/stats", headers=staff_headers)
    assert stats.json()["data"]["stats"]["request_stats"]["pending_requests"] == 1

    listed = await client.get(path, headers=staff_headers)
    assert len(listed.json()["data"]["requests"]) == 1


async def test_status_changes(client, staff_headers, hospital, make_recipient):
    recipient, _ = await make_recipient()

    medical = await client.patch(f"/api/recipients/{recipient['id']}/medical-status", headers=staff_headers, json={
        "medical_condition": "Thalassemia with iron overload", "current_medications": ["deferasirox"],
    })
    assert medical.json()["data"]["recipient"]["current_medications"] == ["deferasirox"]

    deactivated = await client.patch(
        f"/api/recipients/{recipient['id']}/status", headers=staff_headers, json={"is_active": False}
    )
    assert deactivated.json()["message"] == "Recipient deactivated"

    blocked = await client.post(
        f"/api/recipients/{recipient['id']}/requests", headers=staff_headers, json=request_body()
    )
    assert blocked.status_code == 400


async def test_delete_blocked_by_open_requests(client, staff_headers, admin_headers, hospital, make_recipient):
    recipient, _ = await make_recipient()
    await client.post(f"/api/recipients/{recipient['id']}/requests", headers=staff_headers, json=request_body())

    refused = await client.delete(f"/api/recipients/{recipient['id']}", headers=admin_headers)
    assert refused.status_code == 400

    await db.blood_requests.update_many({}, {"$set": {"status": "fulfilled"}})
    deleted = await client.delete(f"/api/recipients/{recipient['id']}", headers=admin_headers)
    assert deleted.status_code == 200
