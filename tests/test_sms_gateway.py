"""
Tests for the Twilio gateway wrapper, using a fake REST client.
"""
import threading
import time
from types import SimpleNamespace

import pytest
from twilio.request_validator import RequestValidator

from conftest import FakeMessages, fake_twilio_client
from services import SMSConfigurationError, SMSGateway


@pytest.fixture
def fake_client():
    return fake_twilio_client()


@pytest.fixture
def gateway(fake_client):
    return SMSGateway(phone_number="+15005550006", client=fake_client)


@pytest.fixture
def unconfigured():
    return SMSGateway()


@pytest.mark.parametrize("raw, expected", [
    ("0771234567", "+94771234567"),
    ("94771234567", "+94771234567"),
    ("771234567", "+94771234567"),
    ("+94 77-123 4567", "+94771234567"),
])
def test_format_phone_number(gateway, raw, expected):
    assert gateway.format_phone_number(raw) == expected


def test_format_phone_number_uses_configured_country_code(fake_client):
    gateway = SMSGateway(phone_number="+15005550006", country_code="1", client=fake_client)
    assert gateway.format_phone_number("0555123456") == "+1555123456"


def test_gateway_without_credentials_is_disabled(unconfigured):
    assert unconfigured.is_enabled is False
    assert unconfigured.client is None


async def test_send_sms_when_unconfigured_returns_failure(unconfigured):
    result = await unconfigured.send_sms("0771234567", "hello")
    assert result == {"success": False, "error": "SMS service not configured"}


async def test_send_sms_success(gateway, fake_client):
    result = await gateway.send_sms("0771234567", "Your appointment is tomorrow")

    assert result["success"] is True
    assert result["message_id"].startswith("SM")
    assert result["to"] == "+94771234567"
    assert result["from"] == "+15005550006"
    assert result["body"] == "Your appointment is tomorrow"
    assert set(result) == {"success", "message_id", "status", "to", "from", "body", "date_sent", "price", "price_unit"}

    sent = fake_client.messages.sent[0]
    assert sent["from_"] == "+15005550006"
    assert "messaging_service_sid" not in sent


async def test_send_sms_prefers_messaging_service(fake_client):
    gateway = SMSGateway(phone_number="+15005550006", service_sid="MG123", client=fake_client)
    await gateway.send_sms("0771234567", "hi")

    sent = fake_client.messages.sent[0]
    assert sent["messaging_service_sid"] == "MG123"
    assert "from_" not in sent


async def test_send_sms_provider_error(gateway, fake_client):
    fake_client.messages.fail_for.add("+94770000000")
    result = await gateway.send_sms("0770000000", "hi")

    assert result["success"] is False
    assert result["code"] == 21211
    assert "Invalid" in result["error"]


async def test_send_bulk_sms_requires_configuration(unconfigured):
    with pytest.raises(SMSConfigurationError):
        await unconfigured.send_bulk_sms(["0771234567"], "hi")


async def test_send_bulk_sms_batches_and_sleeps_between_batches(gateway, fake_client, monkeypatch):
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    monkeypatch.setattr("asyncio.sleep", fake_sleep)
    recipients = [f"07700000{i:02d}" for i in range(5)]

    result = await gateway.send_bulk_sms(recipients, "Blood drive today", batch_size=2, delay=0.5)

    assert result["total"] == 5
    assert result["successful"] == 5
    assert result["failed"] == 0
    assert [entry["recipient"] for entry in result["results"]] == recipients
    # three batches, no sleep after the last one
    assert sleeps == [0.5, 0.5]
    assert len(fake_client.messages.sent) == 5


async def test_send_bulk_sms_reports_each_failure(gateway, fake_client):
    fake_client.messages.fail_for.add("+94770000001")

    result = await gateway.send_bulk_sms(["0770000000", "0770000001", "0770000002"], "hi", delay=0)

    assert result["successful"] == 2
    assert result["failed"] == 1
    failed = [entry for entry in result["results"] if not entry["success"]]
    assert failed[0]["recipient"] == "0770000001"
    assert failed[0]["code"] == 21211


async def test_send_bulk_sms_turns_raised_errors_into_failures(gateway, fake_client):
    # a non-string number makes send_sms raise before reaching the provider
    recipients = ["0770000000", 770000001, "0770000002"]

    result = await gateway.send_bulk_sms(recipients, "hi", delay=0)

    assert result["total"] == 3
    assert result["successful"] + result["failed"] == result["total"] == len(result["results"])
    assert result["failed"] == 1
    broken = result["results"][1]
    assert broken["recipient"] == 770000001
    assert broken["success"] is False
    assert broken["error"]
    assert len(fake_client.messages.sent) == 2


class InFlightMessages(FakeMessages):
    """Tracks how many create() calls overlap."""

    def __init__(self):
        super().__init__()
        self.lock = threading.Lock()
        self.active = 0
        self.peak = 0

    def create(self, **params):
        with self.lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            time.sleep(0.02)
            return super().create(**params)
        finally:
            with self.lock:
                self.active -= 1


async def test_send_bulk_sms_never_exceeds_batch_size(monkeypatch):
    messages = InFlightMessages()
    gateway = SMSGateway(phone_number="+15005550006", client=SimpleNamespace(messages=messages))
    sent_before_pause = []

    async def fake_sleep(seconds):
        sent_before_pause.append(len(messages.sent))

    monkeypatch.setattr("asyncio.sleep", fake_sleep)

    result = await gateway.send_bulk_sms([f"07710000{i:02d}" for i in range(7)], "hi", batch_size=3)

    assert result["successful"] == 7
    assert sent_before_pause == [3, 6]
    assert 1 <= messages.peak <= 3


async def test_status_queries_require_configuration(unconfigured):
    with pytest.raises(SMSConfigurationError):
        await unconfigured.get_message_status("SM123")
    with pytest.raises(SMSConfigurationError):
        await unconfigured.get_account_balance()
    with pytest.raises(SMSConfigurationError):
        await unconfigured.validate_phone_number("0771234567")


async def test_test_connection_when_unconfigured(unconfigured):
    result = await unconfigured.test_connection()
    assert result["success"] is False


def test_estimate_cost(fake_client):
    gateway = SMSGateway(phone_number="+15005550006", cost_per_segment=0.01, client=fake_client)
    estimate = gateway.estimate_cost(3, 200)

    assert estimate["segment_count"] == 2
    assert estimate["total_segments"] == 6
    assert estimate["estimated_cost"] == pytest.approx(0.06)
    assert estimate["currency"] == "USD"


def test_delivery_status_descriptions():
    assert SMSGateway.get_delivery_status("delivered") == "Delivered to recipient"
    assert SMSGateway.get_delivery_status("undelivered") == "Failed to deliver"
    assert SMSGateway.get_delivery_status("exploded") == "Unknown status"


def test_create_webhook_url():
    assert SMSGateway.create_webhook_url("https://bank.example.org/") == \
        "https://bank.example.org/api/webhooks/sms-status"


def test_validate_webhook_signature(fake_client):
    gateway = SMSGateway(auth_token="secret-token", phone_number="+15005550006", client=fake_client)
    url = "https://bank.example.org/api/webhooks/sms-status"
    params = {"MessageSid": "SM1", "MessageStatus": "delivered"}
    signature = RequestValidator("secret-token").compute_signature(url, params)

    assert gateway.validate_webhook_signature(signature, url, params) is True
    assert gateway.validate_webhook_signature("bogus", url, params) is False


def test_validate_webhook_signature_without_token(gateway):
    with pytest.raises(SMSConfigurationError):
        gateway.validate_webhook_signature("sig", "https://x", {})
