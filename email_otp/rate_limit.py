"""
Per-IP request limits using slowapi.

Two tiers sit in front of the OTP endpoints:
  • strict – 5/min  (send-otp – prevents email spam from one client)
  • auth   – 10/min (verify-otp – slows down code guessing)

These are coarse per-client limits.  The per-address cooldown and hourly
quota live in ``email_otp.services.rate_limiter``.
"""

from __future__ import annotations

from fastapi import Request, status
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, default_limits=["60/minute"])

# Named rate strings for use in @limiter.limit() decorators
STRICT = "5/minute"     # OTP send (email sending)
AUTH = "10/minute"      # OTP verification


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={
            "success": False,
            "error": "rate_limited",
            "message": f"Rate limit exceeded: {exc.detail}",
        },
    )
