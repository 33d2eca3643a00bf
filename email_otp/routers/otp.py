"""
OTP endpoints – issue a code by email and verify it.
"""

from fastapi import APIRouter, Request

from email_otp.dependencies import AppSettings, Issuer, Verifier
from email_otp.models import (
    ErrorResponse,
    OtpIssueResponse,
    OtpRequest,
    OtpVerifyRequest,
    OtpVerifyResponse,
)
from email_otp.rate_limit import AUTH, STRICT, limiter

router = APIRouter(prefix="/api", tags=["otp"])

_ERRORS = {
    400: {"model": ErrorResponse, "description": "Invalid input or code"},
    429: {"model": ErrorResponse, "description": "Cooldown, quota or rate limit"},
    500: {"model": ErrorResponse, "description": "Delivery or storage failure"},
}


@router.post(
    "/send-otp",
    response_model=OtpIssueResponse,
    response_model_exclude_none=True,
    responses=_ERRORS,
    operation_id="sendOtp",
    summary="Send a one-time code to the given email",
)
@limiter.limit(STRICT)
async def send_otp(
    request: Request,
    body: OtpRequest,
    issuer: Issuer,
    settings: AppSettings,
) -> OtpIssueResponse:
    """
    Generate a 6-digit code, store it and email it.

    The code is only echoed back when OTP_EXPOSE_CODE is on outside production.
    """
    issued = await issuer.issue(body.identity)
    return OtpIssueResponse(
        message="OTP sent",
        expires_in_seconds=issuer.ttl_seconds,
        code=issued.code if settings.should_expose_code else None,
    )


@router.post(
    "/verify-otp",
    response_model=OtpVerifyResponse,
    responses=_ERRORS,
    operation_id="verifyOtp",
    summary="Verify a one-time code and mark the address as verified",
)
@limiter.limit(AUTH)
async def verify_otp(
    request: Request,
    body: OtpVerifyRequest,
    verifier: Verifier,
) -> OtpVerifyResponse:
    flag = await verifier.verify(body.identity, body.code)
    return OtpVerifyResponse(message="Verified", verified=flag.verified)
