from __future__ import annotations

from email_validator import EmailNotValidError, validate_email

from email_otp.errors import InvalidInput


def normalize_identity(raw: str | None) -> str:
    """Strip surrounding whitespace and check the address is a valid email.

    The stripped string is kept as the identity; only syntax is checked,
    never whether the domain accepts mail.
    """
    identity = (raw or "").strip()
    if not identity:
        raise InvalidInput("Invalid email")
    try:
        validate_email(identity, check_deliverability=False)
    except EmailNotValidError:
        raise InvalidInput("Invalid email") from None
    return identity


def require_code(raw: str | None) -> str:
    """Codes are compared verbatim; only emptiness is rejected here."""
    if raw is None or not raw.strip():
        raise InvalidInput("Missing params")
    return raw
