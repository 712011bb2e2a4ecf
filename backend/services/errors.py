"""
Service-level exceptions.
"""


class ServiceError(Exception):
    """Base class for errors raised outside the HTTP layer."""


class SMSConfigurationError(ServiceError):
    """Raised when an operation needs Twilio but no credentials are configured."""

    def __init__(self, message: str = "SMS service not configured"):
        super().__init__(message)
        self.message = message


class EmailConfigurationError(ServiceError):
    def __init__(self, message: str = "Email service not configured"):
        super().__init__(message)
        self.message = message
