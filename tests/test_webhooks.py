import pytest
from twilio.request_validator import RequestValidator

from config import settings
from database import db
from services import notification_service, sms_gateway

CALLBACK = "/api/webhooks/sms-status"


@pytest.fixture
async def sent_notification(make_user, twilio):
    donor = await make_user("donor")
    return await notification_service.create(
        donor["id"], "appointment_reminder", "Reminder", "See you tomorrow", channels=["sms"]
    )


async def sms_channel(notification_id):
    return (await db.notifications.find_one({"id": notification_id}))["channels"]["sms"]


async def test_delivered_status_updates_notification(client, sent_notification):
    sid = sent_notification["channels"]["sms"]["message_id"]

    response = await client.post(CALLBACK, data={"MessageSid": sid, "MessageStatus": "delivered"})

    assert response.status_code == 200
    assert response.json()["data"] == {
        "message_id": sid, "status": "delivered", "description": "Delivered to recipient", "matched": 1,
    }
    assert (await sms_channel(sent_notification["id"]))["status"] == "delivered"


async def test_undelivered_status_records_error(client, sent_notification):
    sid = sent_notification["channels"]["sms"]["message_id"]

    await client.post(CALLBACK, data={
        "MessageSid": sid, "MessageStatus": "undelivered", "ErrorCode": "30003", "ErrorMessage": "Unreachable",
    })

    channel = await sms_channel(sent_notification["id"])
    assert channel["status"] == "failed"
    assert channel["error"] == "30003: Unreachable"


async def test_unknown_message_is_acknowledged(client):
    response = await client.post(CALLBACK, data={"MessageSid": "SMunknown", "MessageStatus": "sent"})
    assert response.json()["data"]["matched"] == 0


async def test_missing_fields(client):
    response = await client.post(CALLBACK, data={"MessageSid": "SM1"})
    assert response.status_code == 400


async def test_signature_is_enforced_when_enabled(client, monkeypatch):
    monkeypatch.setattr(settings, "SMS_VALIDATE_WEBHOOKS", True)
    monkeypatch.setattr(settings, "PUBLIC_BASE_URL", "https://bank.example.org/")
    monkeypatch.setattr(sms_gateway, "auth_token", "webhook-secret")
    params = {"MessageSid": "SM42", "MessageStatus": "delivered"}

    unsigned = await client.post(CALLBACK, data=params)
    assert unsigned.status_code == 403
    assert unsigned.json()["message"] == "Invalid webhook signature"

    forged = await client.post(CALLBACK, data=params, headers={"X-Twilio-Signature": "forged"})
    assert forged.status_code == 403

    signature = RequestValidator("webhook-secret").compute_signature(f"https://bank.example.org{CALLBACK}", params)
    signed = await client.post(CALLBACK, data=params, headers={"X-Twilio-Signature": signature})
    assert signed.status_code == 200
