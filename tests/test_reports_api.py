from datetime import date, timedelta

from conftest import auth_headers
from database import db


async def test_reports_require_staff(client, make_user):
    donor = await make_user("donor")
    response = await client.get("/api/reports/donors", headers=auth_headers(donor))
    assert response.status_code == 403


async def test_donor_report(client, staff_headers, make_donor):
    await make_donor("O+", date_of_birth="2004-01-01", total_donations=3)
    await make_donor("O+", date_of_birth="1980-01-01", gender="female")
    await make_donor("AB-", is_eligible=False)

    response = await client.get("/api/reports/donors", headers=staff_headers)

    summary = response.json()["data"]["summary"]
    assert summary["total_donors"] == 3
    assert summary["eligible_donors"] == 2
    assert summary["repeat_donors"] == 1
    assert summary["blood_type_distribution"]["O+"] == 2
    assert summary["gender_distribution"] == {"male": 2, "female": 1}
    assert summary["age_groups"]["18-25"] == 1
    assert summary["active_donor_accounts"] == 3


async def test_inventory_report(client, staff_headers, make_unit):
    tested = await make_unit("O-", units=2)
    await db.blood_inventory.update_one({"id": tested["id"]}, {"$set": {"test_results": {
        "hiv": "negative", "hepatitis_b": "negative", "hepatitis_c": "negative", "syphilis": "positive",
    }}})
    await make_unit("A+", status="reserved")

    response = await client.get("/api/reports/inventory", headers=staff_headers)

    data = response.json()["data"]
    assert data["by_status"] == {"available": 2, "reserved": 1}
    assert data["test_results_analysis"] == {"tested": 1, "pending": 1, "passed": 0, "reactive": 1}
    assert data["stats"]["total_units"] == 2
    assert len(data["low_stock"]) == 8


async def test_request_report_with_period(client, staff_headers, hospital):
    tomorrow = (date.today() + timedelta(days=1)).isoformat()
    for urgency in ("high", "low"):
        await client.post("/api/requests", headers=staff_headers, json={
            "blood_type": "B+", "units_required": 2, "urgency_level": urgency, "required_by": tomorrow,
            "reason": "Elective orthopaedic surgery", "patient_condition": "Stable",
        })

    today = await client.get("/api/reports/requests", headers=staff_headers, params={
        "start_date": date.today().isoformat(), "end_date": date.today().isoformat(),
    })
    summary = today.json()["data"]["summary"]
    assert summary["total_requests"] == 2
    assert summary["units_requested_by_blood_type"] == {"B+": 4}
    assert summary["by_urgency"] == {"high": 1, "low": 1}

    earlier = await client.get("/api/reports/requests", headers=staff_headers, params={
        "end_date": (date.today() - timedelta(days=1)).isoformat(),
    })
    assert earlier.json()["data"]["summary"]["total_requests"] == 0


async def test_donation_report(client, staff_headers, make_donor):
    donor, _ = await make_donor("A+")
    for passed in (True, False):
        await client.post(f"/api/donors/{donor['id']}/donations", headers=staff_headers, json={
            "pre_screening": {"weight": 70, "passed": passed},
        })
        await db.donors.update_one({"id": donor["id"]}, {"$set": {"is_eligible": True}})

    response = await client.get("/api/reports/donations", headers=staff_headers)

    summary = response.json()["data"]["summary"]
    assert summary["total_donations"] == 2
    assert summary["discarded"] == 1
    assert summary["by_month"] == {date.today().isoformat()[:7]: 2}


async def test_campaign_report_and_dashboard(client, staff_headers):
    await db.campaigns.insert_many([
        {"id": "c1", "title": "Harbour drive", "status": "completed", "start_date": "2026-03-01T09:00:00Z",
         "participants": [{"donor_id": "d1"}, {"donor_id": "d2"}],
         "results": {"successful_donations": 2, "units_collected": 2}},
        {"id": "c2", "title": "Campus drive", "status": "planned", "start_date": "2026-12-01T09:00:00Z",
         "participants": [{"donor_id": "d3"}, {"donor_id": "d4"}],
         "results": {"successful_donations": 0, "units_collected": 0}},
    ])

    report = await client.get("/api/reports/campaigns", headers=staff_headers)
    summary = report.json()["data"]["summary"]
    assert summary["conversion_rate"] == 50.0
    assert report.json()["data"]["top_campaigns"][0]["id"] == "c1"

    dashboard = await client.get("/api/reports/analytics/dashboard", headers=staff_headers)
    assert dashboard.json()["data"]["campaigns"] == {"active": 0, "planned": 1}
