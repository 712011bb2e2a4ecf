from pymongo.errors import ServerSelectionTimeoutError

import database
from conftest import auth_headers
from config import settings


async def test_root(client):
    response = await client.get("/api/")
    assert response.json() == {
        "success": True,
        "message": "Blood Bank Management System API",
        "version": settings.APP_VERSION,
        "environment": "test",
    }


async def test_health_reports_database(client, monkeypatch):
    async def healthy():
        return {"status": "connected", "database": settings.DB_NAME, "latency_ms": 0.4}

    monkeypatch.setattr(database, "health_check", healthy)

    response = await client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["database"]["status"] == "connected"
    assert body["uptime_seconds"] >= 0
    assert body["version"] == settings.APP_VERSION


async def test_health_when_database_is_down(client, monkeypatch):
    async def unreachable():
        raise ServerSelectionTimeoutError("no servers available")

    monkeypatch.setattr(database, "health_check", unreachable)

    response = await client.get("/health")

    assert response.status_code == 503
    assert response.json()["status"] == "unhealthy"
    assert response.json()["database"] == {"status": "disconnected"}


async def test_validation_errors_use_envelope(client, staff_headers):
    response = await client.post("/api/inventory/reserve", headers=staff_headers, json={"blood_type": "Z+"})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Validation failed"
    assert {error["field"] for error in body["errors"]} == {"blood_type", "units"}


async def test_invalid_token(client):
    response = await client.get("/api/auth/profile", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "Invalid token"}


async def test_deactivated_account_is_rejected(client, make_user):
    user = await make_user("donor", is_active=False)
    response = await client.get("/api/auth/profile", headers=auth_headers(user))
    assert response.status_code == 403


async def test_dashboard_stats(client, staff_headers, make_donor, make_unit, hospital):
    await make_donor("O+")
    await make_unit("O+", units=2, expires_in=3)
    await make_unit("A-", expires_in=30)
    await make_unit("B+", expires_in=-1)

    response = await client.get("/api/dashboard/stats", headers=staff_headers)

    data = response.json()["data"]
    assert data["total_donors"] == 1
    assert data["available_units"] == 3
    assert data["expiring_within_7_days"] == 1
    assert data["total_hospitals"] == 1
    assert data["inventory_by_blood_type"] == {"O+": 2, "A-": 1}
