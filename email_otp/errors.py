"""
Failure kinds raised by the OTP core.

Every error carries a stable machine-readable ``kind``, the HTTP status it
maps to, and a message that is safe to show to the caller.  Internal detail
(driver exceptions, SMTP responses) travels as the exception ``__cause__``
and is only ever logged.
"""

from __future__ import annotations

from fastapi import status


class ConfigError(Exception):
    """Raised at startup when required configuration is missing or invalid."""


class OtpError(Exception):
    kind: str = "otp_error"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"success": False, "error": self.kind, "message": self.message}


class InvalidInput(OtpError):
    kind = "invalid_input"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid input"


class CooldownActive(OtpError):
    kind = "cooldown_active"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, wait_seconds: int) -> None:
        self.wait_seconds = wait_seconds
        super().__init__(f"Please wait {wait_seconds}s before resending")

    def to_dict(self) -> dict:
        return {**super().to_dict(), "wait_seconds": self.wait_seconds}


class QuotaExceeded(OtpError):
    kind = "quota_exceeded"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many codes requested for this address, try again later"


class NotFoundOrExpired(OtpError):
    kind = "not_found_or_expired"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid or expired OTP"


class TransportFailure(OtpError):
    kind = "transport_failure"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Send failed"


class StorageFailure(OtpError):
    kind = "storage_failure"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal storage error"


class InternalError(OtpError):
    kind = "internal_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"
