from .errors import ServiceError, SMSConfigurationError, EmailConfigurationError
from .auth import get_current_user, hash_password, verify_password, public_user
from .tokens import TokenService, token_service
from .helpers import (
    generate_request_code, generate_unit_code, generate_campaign_code,
    check_donor_eligibility, paginate, pagination_meta, now_iso, today_str
)
from .labels import generate_qr_base64, unit_label_payload
from .sms_gateway import SMSGateway, sms_gateway
from .sms_service import SMSService, sms_service
from .email_service import EmailService, email_service
from .notification_service import NotificationService, notification_service
