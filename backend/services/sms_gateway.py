"""
SMS Gateway
Thin async wrapper around the Twilio REST client.

The Twilio SDK is synchronous, so every provider call runs in a worker
thread. Provider failures come back as {"success": False, ...} dicts instead
of exceptions.
"""
import asyncio
import logging
import math
import re
from datetime import datetime
from typing import Iterable, List, Optional

from twilio.base.exceptions import TwilioRestException
from twilio.request_validator import RequestValidator
from twilio.rest import Client

from config import settings
from .errors import SMSConfigurationError

logger = logging.getLogger(__name__)

SEGMENT_LENGTH = 160

DELIVERY_STATUS = {
    "queued": "Queued for delivery",
    "failed": "Failed to send",
    "sent": "Sent to carrier",
    "received": "Received by carrier",
    "delivered": "Delivered to recipient",
    "undelivered": "Failed to deliver",
    "partially_delivered": "Partially delivered",
}


def _iso(value) -> Optional[str]:
    return value.isoformat() if isinstance(value, datetime) else value


def _failure(exc: Exception) -> dict:
    if isinstance(exc, TwilioRestException):
        return {
            "success": False,
            "error": exc.msg,
            "code": exc.code,
            "more_info": getattr(exc, "more_info", None),
        }
    return {"success": False, "error": str(exc), "code": None, "more_info": None}


class SMSGateway:
    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        phone_number: Optional[str] = None,
        service_sid: Optional[str] = None,
        country_code: str = "94",
        cost_per_segment: float = 0.0075,
        client=None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.phone_number = phone_number
        self.service_sid = service_sid
        self.country_code = country_code
        self.cost_per_segment = cost_per_segment
        self.client = client
        self.is_enabled = self._validate_config()

    @classmethod
    def from_settings(cls, client=None) -> "SMSGateway":
        return cls(
            account_sid=settings.TWILIO_ACCOUNT_SID,
            auth_token=settings.TWILIO_AUTH_TOKEN,
            phone_number=settings.TWILIO_PHONE_NUMBER,
            service_sid=settings.TWILIO_SERVICE_SID,
            country_code=settings.SMS_COUNTRY_CODE,
            cost_per_segment=settings.SMS_COST_PER_SEGMENT,
            client=client,
        )

    def _validate_config(self) -> bool:
        if self.client is not None:
            return True
        if not (self.account_sid and self.auth_token and self.phone_number):
            logger.warning("SMS service not configured. Missing Twilio credentials.")
            return False
        self.client = Client(self.account_sid, self.auth_token)
        return True

    def _require_client(self):
        if not self.is_enabled:
            raise SMSConfigurationError()
        return self.client

    def format_phone_number(self, phone: str) -> str:
        cleaned = re.sub(r"\D", "", phone or "")
        if cleaned.startswith("0"):
            return f"+{self.country_code}{cleaned[1:]}"
        if cleaned.startswith(self.country_code):
            return f"+{cleaned}"
        return f"+{self.country_code}{cleaned}"

    async def send_sms(self, to: str, message: str, **options) -> dict:
        if not self.is_enabled:
            return {"success": False, "error": "SMS service not configured"}

        params = {"body": message, "to": self.format_phone_number(to), **options}
        if self.service_sid:
            params["messaging_service_sid"] = self.service_sid
        else:
            params.setdefault("from_", self.phone_number)

        try:
            result = await asyncio.to_thread(self.client.messages.create, **params)
        except Exception as exc:
            logger.error("SMS to %s failed: %s", params["to"], exc)
            return _failure(exc)

        return {
            "success": True,
            "message_id": result.sid,
            "status": result.status,
            "to": result.to,
            "from": result.from_,
            "body": result.body,
            "date_sent": _iso(result.date_sent),
            "price": result.price,
            "price_unit": result.price_unit,
        }

    async def send_bulk_sms(
        self,
        recipients: Iterable[str],
        message: str,
        batch_size: int = 10,
        delay: float = 1.0,
        **options,
    ) -> dict:
        """
        Send the same message to many recipients.

        Recipients are sent in batches of ``batch_size``; the messages of one
        batch go out concurrently and the gateway sleeps ``delay`` seconds
        between batches. Every recipient gets exactly one entry in
        ``results``.
        """
        self._require_client()
        recipients = list(recipients)
        batch_size = max(1, int(batch_size))
        results: List[dict] = []

        for start in range(0, len(recipients), batch_size):
            batch = recipients[start:start + batch_size]
            outcomes = await asyncio.gather(
                *(self.send_sms(recipient, message, **options) for recipient in batch),
                return_exceptions=True,
            )
            for recipient, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    outcome = _failure(outcome)
                results.append({"recipient": recipient, **outcome})

            if start + batch_size < len(recipients):
                await asyncio.sleep(delay)

        successful = sum(1 for result in results if result.get("success"))
        logger.info("Bulk SMS finished: %d sent, %d failed", successful, len(results) - successful)
        return {
            "success": True,
            "total": len(recipients),
            "successful": successful,
            "failed": len(results) - successful,
            "results": results,
        }

    async def test_connection(self) -> dict:
        if not self.is_enabled:
            return {"success": False, "error": "SMS service not configured"}
        try:
            account = await asyncio.to_thread(self.client.api.accounts(self.account_sid).fetch)
        except Exception as exc:
            return {"success": False, "error": str(exc)}
        return {
            "success": True,
            "status": account.status,
            "account_sid": account.sid,
            "friendly_name": account.friendly_name,
        }

    async def validate_phone_number(self, phone: str) -> dict:
        client = self._require_client()
        try:
            lookup = await asyncio.to_thread(client.lookups.v1.phone_numbers(phone).fetch)
        except Exception as exc:
            return {"valid": False, "error": str(exc)}
        return {
            "valid": True,
            "phone_number": lookup.phone_number,
            "country_code": lookup.country_code,
            "national_format": lookup.national_format,
        }

    async def get_message_status(self, message_id: str) -> dict:
        client = self._require_client()
        try:
            message = await asyncio.to_thread(client.messages(message_id).fetch)
        except Exception as exc:
            return {"success": False, "error": str(exc)}
        return {
            "success": True,
            "message_id": message.sid,
            "status": message.status,
            "to": message.to,
            "from": message.from_,
            "error_code": message.error_code,
            "error_message": message.error_message,
            "date_created": _iso(message.date_created),
            "date_updated": _iso(message.date_updated),
            "date_sent": _iso(message.date_sent),
            "price": message.price,
            "price_unit": message.price_unit,
        }

    async def get_account_balance(self) -> dict:
        client = self._require_client()
        try:
            balance = await asyncio.to_thread(client.balance.fetch)
        except Exception as exc:
            return {"success": False, "error": str(exc)}
        return {
            "success": True,
            "balance": balance.balance,
            "currency": balance.currency,
            "account_sid": balance.account_sid,
        }

    @staticmethod
    def get_delivery_status(status: str) -> str:
        return DELIVERY_STATUS.get(status, "Unknown status")

    def estimate_cost(self, message_count: int, message_length: int = SEGMENT_LENGTH) -> dict:
        segment_count = math.ceil(message_length / SEGMENT_LENGTH)
        total_segments = message_count * segment_count
        return {
            "message_count": message_count,
            "segment_count": segment_count,
            "total_segments": total_segments,
            "estimated_cost": total_segments * self.cost_per_segment,
            "currency": "USD",
        }

    @staticmethod
    def create_webhook_url(base_url: str) -> str:
        return f"{base_url.rstrip('/')}/api/webhooks/sms-status"

    def validate_webhook_signature(self, signature: str, url: str, params: dict) -> bool:
        if not self.auth_token:
            raise SMSConfigurationError("Auth token not configured")
        return RequestValidator(self.auth_token).validate(url, params, signature)


sms_gateway = SMSGateway.from_settings()
