import os
import tempfile
import uuid
from datetime import date, timedelta
from types import SimpleNamespace

os.environ["APP_ENV"] = "test"
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="bloodbank-logs-")
os.environ["LOG_ROTATION_ENABLED"] = "false"
os.environ["SMS_VALIDATE_WEBHOOKS"] = "false"
for name in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_PHONE_NUMBER", "TWILIO_SERVICE_SID", "EMAIL_HOST"):
    os.environ.pop(name, None)

import httpx
import mongomock_motor
import motor.motor_asyncio
import pytest
from twilio.base.exceptions import TwilioRestException

# database.py builds its client at import time
motor.motor_asyncio.AsyncIOMotorClient = mongomock_motor.AsyncMongoMockClient

from config import settings  # noqa: E402
from database import db  # noqa: E402
from models import BloodUnit, Donor, User  # noqa: E402
from server import app  # noqa: E402
from services import email_service, hash_password, sms_gateway, token_service  # noqa: E402

PASSWORD = "Secret123"
PASSWORD_HASH = hash_password(PASSWORD)

COLLECTIONS = (
    "users", "donors", "recipients", "hospitals", "blood_inventory", "blood_requests",
    "campaigns", "notifications", "donations", "counters",
)


class FakeMessages:
    """Stands in for ``Client.messages``; records every create() call."""

    def __init__(self):
        self.sent = []
        self.fail_for = set()

    def create(self, **params):
        self.sent.append(params)
        if params["to"] in self.fail_for:
            raise TwilioRestException(400, "/Messages.json", msg="Invalid 'To' Phone Number", code=21211)
        return SimpleNamespace(
            sid=f"SM{len(self.sent):032d}",
            status="queued",
            to=params["to"],
            from_=params.get("from_"),
            body=params["body"],
            date_sent=None,
            price=None,
            price_unit="USD",
        )


def fake_twilio_client():
    return SimpleNamespace(messages=FakeMessages())


@pytest.fixture(autouse=True)
async def clean_db():
    for name in COLLECTIONS:
        await db[name].delete_many({})
    yield


@pytest.fixture
async def client():
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
        yield http


@pytest.fixture
def twilio(monkeypatch):
    """Route the shared gateway to a fake Twilio client."""
    fake = fake_twilio_client()
    monkeypatch.setattr(sms_gateway, "client", fake)
    monkeypatch.setattr(sms_gateway, "is_enabled", True)
    monkeypatch.setattr(sms_gateway, "phone_number", "+15005550006")
    monkeypatch.setattr(sms_gateway, "service_sid", None)
    monkeypatch.setattr(settings, "SMS_BATCH_DELAY", 0)
    return fake.messages


@pytest.fixture
def outbox(monkeypatch):
    """Capture outgoing email instead of talking to an SMTP server."""
    sent = []

    async def deliver(message):
        sent.append(message)

    monkeypatch.setattr(email_service, "host", "smtp.test")
    monkeypatch.setattr(email_service, "_deliver", deliver)
    return sent


@pytest.fixture
def make_user():
    async def factory(role="donor", **overrides):
        fields = {
            "name": f"Test {role.title()}",
            "email": f"{role}-{uuid.uuid4().hex[:8]}@example.com",
            "password_hash": PASSWORD_HASH,
            "phone": "0771234567",
            "role": role,
        }
        fields.update(overrides)
        doc = User(**fields).model_dump(mode="json")
        await db.users.insert_one(doc)
        doc.pop("_id", None)
        return doc

    return factory


def auth_headers(user: dict) -> dict:
    token = token_service.generate_access_token(
        {"user_id": user["id"], "email": user["email"], "role": user["role"], "name": user["name"]}
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def admin(make_user):
    return await make_user("admin")


@pytest.fixture
async def staff(make_user):
    return await make_user("hospital_staff")


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def staff_headers(staff):
    return auth_headers(staff)


@pytest.fixture
def make_donor(make_user):
    async def factory(blood_type="O+", **overrides):
        user = await make_user("donor")
        fields = {
            "user_id": user["id"],
            "blood_type": blood_type,
            "date_of_birth": "1990-05-01",
            "gender": "male",
            "weight": 70,
            "height": 175,
        }
        fields.update(overrides)
        doc = Donor(**fields).model_dump(mode="json")
        await db.donors.insert_one(doc)
        doc.pop("_id", None)
        return doc, user

    return factory


@pytest.fixture
def make_unit():
    async def factory(blood_type="O+", expires_in=20, units=1, status="available", donor_id="donor-1"):
        doc = BloodUnit(
            blood_type=blood_type,
            units=units,
            collection_date=(date.today() - timedelta(days=5)).isoformat(),
            expiry_date=(date.today() + timedelta(days=expires_in)).isoformat(),
            donor_id=donor_id,
            status=status,
        ).model_dump(mode="json")
        await db.blood_inventory.insert_one(doc)
        doc.pop("_id", None)
        return doc

    return factory


@pytest.fixture
async def hospital(staff):
    doc = {
        "id": str(uuid.uuid4()),
        "name": "General Hospital",
        "registration_number": "GH-001",
        "address": {"street": "1 Main St", "city": "Colombo", "district": "Colombo"},
        "contact_info": {"phone": "0112345678", "email": "bloodbank@general.example.com"},
        "staff_members": [{"user_id": staff["id"], "position": "doctor", "department": "ER"}],
        "is_active": True,
        "blood_bank_capacity": 200,
    }
    await db.hospitals.insert_one(doc)
    doc.pop("_id", None)
    return doc
