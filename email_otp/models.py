"""Domain records and Pydantic models for the OTP API."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

VERIFICATION_METHOD = "email"


# ── Domain records ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class OtpRecord:
    """One issued code. Several may exist per identity (history is kept)."""
    id: str
    identity: str
    code: str
    created_at: datetime
    expires_at: datetime
    used: bool = False
    verified_at: Optional[datetime] = None

    def is_active(self, now: datetime) -> bool:
        return not self.used and self.expires_at >= now


@dataclass(frozen=True)
class AccountFlag:
    """Persisted proof that an identity completed verification."""
    identity: str
    verified: bool
    method: str
    updated_at: datetime


@dataclass(frozen=True)
class IssuedOtp:
    """Result of a successful issuance."""
    record_id: str
    identity: str
    code: str
    expires_at: datetime


# ── Requests ───────────────────────────────────────────────────────────────


class OtpRequest(BaseModel):
    """Request a code for an email address."""
    model_config = ConfigDict(populate_by_name=True)

    identity: str = Field(
        ...,
        validation_alias=AliasChoices("identity", "email"),
        description="Recipient email address",
    )


class OtpVerifyRequest(BaseModel):
    """Submit a previously issued code."""
    model_config = ConfigDict(populate_by_name=True)

    identity: str = Field(
        ...,
        validation_alias=AliasChoices("identity", "email"),
        description="Recipient email address",
    )
    code: str = Field(
        ...,
        validation_alias=AliasChoices("code", "otp"),
        description="The 6-digit code from the email",
    )

    @field_validator("code", mode="before")
    @classmethod
    def _stringify_numeric_code(cls, value: Any) -> Any:
        # Clients sometimes post the code as a JSON number.
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


# ── Responses ──────────────────────────────────────────────────────────────


class OtpIssueResponse(BaseModel):
    success: bool = Field(True, description="Always true on success")
    message: str = Field(..., description="Human-readable status")
    expires_in_seconds: int = Field(..., description="Lifetime of the issued code")
    code: Optional[str] = Field(
        None, description="The issued code (development mode only)"
    )


class OtpVerifyResponse(BaseModel):
    success: bool = Field(True, description="Always true on success")
    message: str = Field(..., description="Human-readable status")
    verified: bool = Field(..., description="Account verification flag after this call")


class ErrorResponse(BaseModel):
    success: bool = Field(False, description="Always false on failure")
    error: str = Field(..., description="Machine-readable failure kind")
    message: str = Field(..., description="Human-readable message")
    wait_seconds: Optional[int] = Field(None, description="Seconds until a resend is allowed")


class HealthResponse(BaseModel):
    status: str = Field(..., description="Health status")
    version: str = Field(..., description="Service version")
    timestamp: datetime = Field(..., description="Current timestamp")
