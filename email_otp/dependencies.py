"""
FastAPI dependencies.

The lifespan in ``email_otp.main`` builds the services once and parks them
on ``app.state``; routers pull them out through these helpers instead of
importing module-level singletons.
"""

from typing import Annotated

from fastapi import Depends, Request

from email_otp.config import Settings
from email_otp.services.issuance import OtpIssuer
from email_otp.services.verification import VerificationEngine


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_issuer(request: Request) -> OtpIssuer:
    return request.app.state.issuer


def get_verifier(request: Request) -> VerificationEngine:
    return request.app.state.verifier


AppSettings = Annotated[Settings, Depends(get_settings)]
Issuer = Annotated[OtpIssuer, Depends(get_issuer)]
Verifier = Annotated[VerificationEngine, Depends(get_verifier)]
