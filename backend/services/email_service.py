"""
Email Service
Transactional emails rendered with Jinja2 and delivered over SMTP with aiosmtplib.
"""
import logging
import re
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Iterable, List, Optional

import aiosmtplib
from jinja2 import DictLoader, Environment, select_autoescape

from config import settings

logger = logging.getLogger(__name__)

_LAYOUT = """<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
{% block body %}{% endblock %}
<p>Best regards,<br>Blood Bank Management Team</p>
</div>"""

TEMPLATES = {
    "layout.html": _LAYOUT,
    "welcome.html": """{% extends "layout.html" %}{% block body %}
<h2 style="color: #d32f2f;">Welcome to Blood Bank Management System</h2>
<p>Dear {{ name }},</p>
<p>Thank you for joining our Blood Bank Management System as a <strong>{{ role }}</strong>.</p>
<p>You can now access your dashboard and start using our services.</p>
<ul>
  <li>Complete your profile information</li>
  <li>Explore available features in your dashboard</li>
  <li>Contact support if you need assistance</li>
</ul>
<p>Thank you for being part of our life-saving mission!</p>
{% endblock %}""",
    "appointment.html": """{% extends "layout.html" %}{% block body %}
<h2 style="color: #d32f2f;">Appointment Confirmation</h2>
<p>Dear {{ name }},</p>
<p>Your blood donation appointment has been confirmed!</p>
<p><strong>Date &amp; Time:</strong> {{ appointment_date }}</p>
<p><strong>Venue:</strong> {{ venue }}</p>
{% if campaign_title %}<p><strong>Campaign:</strong> {{ campaign_title }}</p>{% endif %}
<ul>
  <li>Please arrive 15 minutes early</li>
  <li>Bring a valid ID</li>
  <li>Eat a healthy meal before donating</li>
  <li>Stay hydrated</li>
</ul>
{% endblock %}""",
    "campaign_invitation.html": """{% extends "layout.html" %}{% block body %}
<h2 style="color: #d32f2f;">{{ title }}</h2>
<p>Dear {{ name }},</p>
<p>You're invited to participate in our upcoming blood donation campaign!</p>
<p><strong>Date:</strong> {{ date }}</p>
<p><strong>Venue:</strong> {{ venue }}</p>
<p><strong>Description:</strong> {{ description }}</p>
<p><a href="{{ frontend_url }}/campaigns">Register for Campaign</a></p>
<p>Your donation can save up to 3 lives. Thank you for making a difference!</p>
{% endblock %}""",
    "test_results.html": """{% extends "layout.html" %}{% block body %}
<h2 style="color: #d32f2f;">Blood Test Results</h2>
<p>Dear {{ name }},</p>
<p>Your blood test results for the donation on {{ donation_date }} are now available.</p>
{% for test, result in results.items() %}<p><strong>{{ test | replace("_", " ") | title }}:</strong> {{ result }}</p>
{% endfor %}
{% if all_clear %}<p style="color: #2e7d32;"><strong>Great news! All tests came back negative and your blood is safe for transfusion.</strong></p>
{% else %}<p style="color: #f57c00;"><strong>Please contact our medical team to discuss your results.</strong></p>{% endif %}
{% endblock %}""",
    "request_status.html": """{% extends "layout.html" %}{% block body %}
<h2 style="color: #d32f2f;">Blood Request Update</h2>
<p>Dear Hospital Team,</p>
<p>Your blood request has been <strong>{{ request.status }}</strong>.</p>
<p><strong>Blood Type:</strong> {{ request.blood_type }}</p>
<p><strong>Units Requested:</strong> {{ request.units_required }}</p>
<p><strong>Urgency:</strong> {{ request.urgency_level }}</p>
<p><strong>Required By:</strong> {{ request.required_by }}</p>
{% if request.notes %}<p><strong>Notes:</strong> {{ request.notes }}</p>{% endif %}
<p>Please contact us if you have any questions.</p>
{% endblock %}""",
    "low_stock.html": """{% extends "layout.html" %}{% block body %}
<h2 style="color: #d32f2f;">LOW STOCK ALERT</h2>
<p><strong>Blood Type:</strong> {{ blood_type }}</p>
<p><strong>Current Stock:</strong> {{ current_units }} units</p>
<p><strong>Minimum Threshold:</strong> {{ minimum }} units</p>
<ul>
  <li>Contact eligible donors for emergency donations</li>
  <li>Coordinate with other blood banks for transfers</li>
  <li>Review pending requests for this blood type</li>
</ul>
{% endblock %}""",
    "notification.html": """{% extends "layout.html" %}{% block body %}
<h2 style="color: #d32f2f;">{{ title }}</h2>
{% if name %}<p>Dear {{ name }},</p>{% endif %}
<p>{{ message }}</p>
{% endblock %}""",
    "password_reset.html":"""{% extends "layout.html" %}{% block body %}
<h2 style="color: #d32f2f;">Password Reset</h2>
<p>Dear {{ name }},</p>
<p>We received a request to reset your password. The link below is valid for {{ minutes }} minutes.</p>
<p><a href="{{ reset_url }}">Reset your password</a></p>
<p>If you did not request this, you can ignore this email.</p>
{% endblock %}""",
}

_TAGS = re.compile(r"<[^>]*>")


class EmailService:
    def __init__(
        self,
        host: Optional[str] = settings.EMAIL_HOST,
        port: int = settings.EMAIL_PORT,
        username: Optional[str] = settings.EMAIL_USER,
        password: Optional[str] = settings.EMAIL_PASS,
        sender: str = settings.EMAIL_FROM,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.env = Environment(
            loader=DictLoader(TEMPLATES),
            autoescape=select_autoescape(["html"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.host)

    def render(self, template: str, **context) -> str:
        return self.env.get_template(template).render(**context)

    @staticmethod
    def strip_html(html: str) -> str:
        return _TAGS.sub("", html)

    def _smtp(self) -> aiosmtplib.SMTP:
        return aiosmtplib.SMTP(
            hostname=self.host,
            port=self.port,
            timeout=settings.EMAIL_TIMEOUT,
            use_tls=settings.EMAIL_USE_TLS,
            start_tls=settings.EMAIL_START_TLS and not settings.EMAIL_USE_TLS,
        )

    async def _deliver(self, message: EmailMessage):
        smtp = self._smtp()
        async with smtp:
            if self.username and self.password:
                await smtp.login(self.username, self.password)
            await smtp.send_message(message)

    async def send_email(self, to: str, subject: str, html: str, text: Optional[str] = None) -> dict:
        if not self.is_configured:
            return {"success": False, "error": "Email service not configured"}

        message = EmailMessage()
        message["From"] = f"Blood Bank Management <{self.sender}>"
        message["To"] = to
        message["Subject"] = subject
        message["Message-ID"] = make_msgid()
        message.set_content(text or self.strip_html(html))
        message.add_alternative(html, subtype="html")

        try:
            await self._deliver(message)
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.error("Email to %s failed: %s", to, exc)
            return {"success": False, "error": str(exc)}
        return {"success": True, "message_id": message["Message-ID"]}

    async def send_welcome_email(self, email: str, name: str, role: str) -> dict:
        html = self.render("welcome.html", name=name, role=role)
        return await self.send_email(email, "Welcome to Blood Bank Management System", html)

    async def send_appointment_confirmation(
        self, email: str, name: str, appointment_date: str, venue: str, campaign_title: Optional[str] = None
    ) -> dict:
        html = self.render(
            "appointment.html", name=name, appointment_date=appointment_date,
            venue=venue, campaign_title=campaign_title,
        )
        return await self.send_email(email, "Blood Donation Appointment Confirmation", html)

    async def send_campaign_invitation(
        self, email: str, name: str, title: str, date: str, venue: str, description: str
    ) -> dict:
        html = self.render(
            "campaign_invitation.html", name=name, title=title, date=date, venue=venue,
            description=description, frontend_url=settings.FRONTEND_URL,
        )
        return await self.send_email(email, f"Invitation: {title}", html)

    async def send_test_results(self, email: str, name: str, results: dict, donation_date: str) -> dict:
        all_clear = all(value == "negative" for value in results.values())
        html = self.render(
            "test_results.html", name=name, results=results,
            donation_date=donation_date, all_clear=all_clear,
        )
        return await self.send_email(email, "Blood Test Results Available", html)

    async def send_blood_request_notification(self, email: str, request: dict) -> dict:
        subject = f"Blood Request {request['status'].upper()}: {request['blood_type']}"
        html = self.render("request_status.html", request=request)
        return await self.send_email(email, subject, html)

    async def send_low_stock_alert(
        self, emails: Iterable[str], blood_type: str, current_units: int, minimum: int
    ) -> List[dict]:
        subject = f"URGENT: Low Stock Alert - {blood_type}"
        html = self.render("low_stock.html", blood_type=blood_type, current_units=current_units, minimum=minimum)
        results = []
        for email in emails:
            results.append({"email": email, **await self.send_email(email, subject, html)})
        return results

    async def send_password_reset(self, email: str, name: str, token: str) -> dict:
        html = self.render(
            "password_reset.html", name=name, minutes=settings.JWT_RESET_EXPIRY_MINUTES,
            reset_url=f"{settings.FRONTEND_URL}/reset-password?token={token}",
        )
        return await self.send_email(email, "Password Reset Request", html)

    async def verify_connection(self) -> dict:
        if not self.is_configured:
            return {"success": False, "error": "Email service not configured"}
        try:
            smtp = self._smtp()
            async with smtp:
                if self.username and self.password:
                    await smtp.login(self.username, self.password)
        except (aiosmtplib.SMTPException, OSError) as exc:
            return {"success": False, "error": str(exc)}
        return {"success": True, "message": "Email service is ready"}


email_service = EmailService()
