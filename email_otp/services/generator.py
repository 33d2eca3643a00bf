"""
OTP code generation.

Codes guard account security, so they come from the OS CSPRNG via
``secrets`` rather than ``random``.
"""

from __future__ import annotations

import secrets

CODE_LENGTH = 6

_LOWEST = 10 ** (CODE_LENGTH - 1)            # 100000
_SPAN = 10 ** CODE_LENGTH - _LOWEST          # 900000 possible codes


def generate_code() -> str:
    """Return a 6-digit code, uniform over 100000–999999."""
    return str(_LOWEST + secrets.randbelow(_SPAN))
