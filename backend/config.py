"""
Application Configuration
Settings are read from the environment (and backend/.env when present).
"""
import os
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')


def _bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Runtime settings"""

    ENVIRONMENT = os.environ.get('APP_ENV', 'development')
    APP_VERSION = os.environ.get('APP_VERSION', '1.0.0')

    # Database
    MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
    DB_NAME = os.environ.get('DB_NAME', 'blood_bank')

    # JWT
    JWT_ACCESS_SECRET = os.environ.get('JWT_ACCESS_SECRET', 'access_secret_key_2024')
    JWT_REFRESH_SECRET = os.environ.get('JWT_REFRESH_SECRET', 'refresh_secret_key_2024')
    JWT_ACCESS_EXPIRY_MINUTES = int(os.environ.get('JWT_ACCESS_EXPIRY_MINUTES', '15'))
    JWT_REFRESH_EXPIRY_DAYS = int(os.environ.get('JWT_REFRESH_EXPIRY_DAYS', '7'))
    JWT_RESET_EXPIRY_MINUTES = int(os.environ.get('JWT_RESET_EXPIRY_MINUTES', '60'))
    JWT_ISSUER = os.environ.get('JWT_ISSUER', 'blood-bank-management')

    # SMS (Twilio)
    TWILIO_ACCOUNT_SID = os.environ.get('TWILIO_ACCOUNT_SID')
    TWILIO_AUTH_TOKEN = os.environ.get('TWILIO_AUTH_TOKEN')
    TWILIO_PHONE_NUMBER = os.environ.get('TWILIO_PHONE_NUMBER')
    TWILIO_SERVICE_SID = os.environ.get('TWILIO_SERVICE_SID')
    SMS_COUNTRY_CODE = os.environ.get('SMS_COUNTRY_CODE', '94')
    SMS_BATCH_SIZE = int(os.environ.get('SMS_BATCH_SIZE', '10'))
    SMS_BATCH_DELAY = float(os.environ.get('SMS_BATCH_DELAY', '1.0'))
    SMS_COST_PER_SEGMENT = float(os.environ.get('SMS_COST_PER_SEGMENT', '0.0075'))
    SMS_VALIDATE_WEBHOOKS = _bool('SMS_VALIDATE_WEBHOOKS', True)
    PUBLIC_BASE_URL = os.environ.get('PUBLIC_BASE_URL', 'http://localhost:8000')

    # Email (SMTP)
    EMAIL_HOST = os.environ.get('EMAIL_HOST')
    EMAIL_PORT = int(os.environ.get('EMAIL_PORT', '587'))
    EMAIL_USE_TLS = _bool('EMAIL_USE_TLS', False)
    EMAIL_START_TLS = _bool('EMAIL_START_TLS', True)
    EMAIL_USER = os.environ.get('EMAIL_USER')
    EMAIL_PASS = os.environ.get('EMAIL_PASS')
    EMAIL_FROM = os.environ.get('EMAIL_FROM', 'no-reply@bloodbank.local')
    EMAIL_TIMEOUT = float(os.environ.get('EMAIL_TIMEOUT', '10'))

    # HTTP
    FRONTEND_URL = os.environ.get('FRONTEND_URL', 'http://localhost:5173')
    CORS_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            'CORS_ORIGINS', 'http://localhost:5173,http://127.0.0.1:5173'
        ).split(',')
        if origin.strip()
    ]

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_DIR = os.environ.get('LOG_DIR', str(Path.cwd() / 'logs'))
    ACCESS_LOG_ENABLED = _bool('ACCESS_LOG_ENABLED', True)
    LOG_ROTATION_ENABLED = _bool('LOG_ROTATION_ENABLED', True)
    LOG_MAX_BYTES = int(os.environ.get('LOG_MAX_BYTES', str(10 * 1024 * 1024)))
    LOG_RETENTION_DAYS = int(os.environ.get('LOG_RETENTION_DAYS', '30'))

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == 'development'


settings = Settings()
