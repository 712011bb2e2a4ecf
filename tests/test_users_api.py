from conftest import PASSWORD, auth_headers
from database import db


async def test_list_users_filters_and_hides_hashes(client, admin_headers, make_user):
    await make_user("donor")
    await make_user("donor", is_active=False)

    response = await client.get("/api/users", headers=admin_headers, params={"role": "donor", "is_active": "true"})

    users = response.json()
    assert len(users) == 1
    assert "password_hash" not in users[0]


async def test_admin_updates_user(client, admin_headers, make_user):
    user = await make_user("donor")

    response = await client.put(f"/api/users/{user['id']}", headers=admin_headers, json={
        "name": "<i>Renamed</i>", "password": "Another9",
    })

    assert response.status_code == 200
    stored = await db.users.find_one({"id": user["id"]})
    assert stored["name"] == "iRenamed/i"
    assert stored["password_hash"] != user["password_hash"]

    login = await client.post("/api/auth/login", json={"email": user["email"], "password": "Another9"})
    assert login.status_code == 200


async def test_update_unknown_user(client, admin_headers):
    response = await client.put("/api/users/missing", headers=admin_headers, json={"is_active": False})
    assert response.status_code == 404


async def test_delete_user_removes_profiles(client, admin_headers, make_donor):
    donor, user = await make_donor("A+")

    response = await client.delete(f"/api/users/{user['id']}", headers=admin_headers)

    assert response.status_code == 200
    assert await db.donors.find_one({"id": donor["id"]}) is None


async def test_admin_cannot_delete_self(client, admin, admin_headers):
    response = await client.delete(f"/api/users/{admin['id']}", headers=admin_headers)
    assert response.status_code == 400


async def test_update_own_profile(client, make_user):
    user = await make_user("donor")

    response = await client.put("/api/auth/profile", headers=auth_headers(user), json={"phone": "0719876543"})

    assert response.json()["data"]["user"]["phone"] == "0719876543"
    login = await client.post("/api/auth/login", json={"email": user["email"], "password": PASSWORD})
    assert login.status_code == 200
