"""
Templated SMS messages sent through the gateway.
"""
from typing import Iterable, Optional

from config import settings
from .sms_gateway import SMSGateway, sms_gateway


class SMSService:
    def __init__(self, gateway: SMSGateway = sms_gateway):
        self.gateway = gateway

    async def send(self, to: str, message: str) -> dict:
        return await self.gateway.send_sms(to, message)

    async def send_bulk(self, phones: Iterable[str], message: str) -> dict:
        return await self.gateway.send_bulk_sms(
            [phone for phone in phones if phone],
            message,
            batch_size=settings.SMS_BATCH_SIZE,
            delay=settings.SMS_BATCH_DELAY,
        )

    async def send_appointment_reminder(self, phone: str, appointment_date: str, venue: str) -> dict:
        message = (
            f"Blood Donation Reminder: Your appointment is scheduled for {appointment_date} "
            f"at {venue}. Please arrive 15 minutes early. Thank you for saving lives!"
        )
        return await self.send(phone, message)

    async def send_eligibility_update(self, phone: str, is_eligible: bool, next_date: Optional[str] = None) -> dict:
        if is_eligible:
            message = (
                "Good news! You are now eligible to donate blood. "
                "Visit our center or check upcoming campaigns."
            )
        elif next_date:
            message = f"You are currently not eligible to donate blood. Next eligible date: {next_date}"
        else:
            message = (
                "You are currently not eligible to donate blood. "
                "Please contact us for more information."
            )
        return await self.send(phone, message)

    async def send_campaign_invitation(self, phone: str, title: str, date: str, venue: str) -> dict:
        message = (
            f'Blood Donation Campaign: "{title}" on {date} at {venue}. '
            "Your donation can save up to 3 lives! Register now."
        )
        return await self.send(phone, message)

    async def send_emergency_request(self, phones: Iterable[str], blood_type: str, hospital_name: str) -> dict:
        message = (
            f"URGENT: {blood_type} blood needed at {hospital_name}. If you're eligible and "
            "available, please contact us immediately. Lives depend on you!"
        )
        return await self.send_bulk(phones, message)

    async def send_low_stock_alert(self, phones: Iterable[str], blood_type: str, current_units: int) -> dict:
        message = (
            f"LOW STOCK ALERT: {blood_type} blood level is critically low "
            f"({current_units} units remaining). Immediate action required."
        )
        return await self.send_bulk(phones, message)

    async def send_expiry_alert(self, phones: Iterable[str], blood_type: str, expiry_date: str, units: int) -> dict:
        message = (
            f"EXPIRY ALERT: {units} units of {blood_type} blood will expire on {expiry_date}. "
            "Please prioritize usage."
        )
        return await self.send_bulk(phones, message)

    async def send_donation_thank_you(self, phone: str, donor_name: str, blood_type: str) -> dict:
        message = (
            f"Thank you {donor_name} for your {blood_type} blood donation! Your generosity "
            "will help save lives. Take care and stay hydrated."
        )
        return await self.send(phone, message)

    async def send_test_results(self, phone: str, donor_name: str, results: str) -> dict:
        summary = (
            "All tests passed successfully!" if results == "clear"
            else "Please contact us regarding your test results."
        )
        message = f"Hello {donor_name}, your blood test results are ready. {summary} Thank you for donating."
        return await self.send(phone, message)

    async def get_message_status(self, message_id: str) -> dict:
        status = await self.gateway.get_message_status(message_id)
        if status.get("success"):
            status["description"] = self.gateway.get_delivery_status(status["status"])
        return status


sms_service = SMSService()
