"""
Application configuration from environment variables.

Most settings have sensible defaults for local development; the sender
address has none and must be provided.  A .env file in the project root
is loaded automatically (if present).

Settings are read once at startup into an immutable ``Settings`` object
which is handed to the components that need it.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from email_otp.errors import ConfigError

# Load .env file before reading any env vars
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

# ── Paths ─────────────────────────────────────────────────────────────────

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"

STORAGE_BACKENDS = ("sqlite", "memory")


@dataclass(frozen=True)
class Settings:
    """Everything the OTP core and its HTTP surface need to run."""

    from_email: str
    environment: str = "development"

    # ── Storage ───────────────────────────────────────────────────────
    storage: str = "sqlite"
    db_path: str = str(DATA_DIR / "email_otp.db")

    # ── OTP policy ────────────────────────────────────────────────────
    ttl_minutes: int = 5
    min_resend_seconds: int = 60
    max_per_hour: int = 10
    expose_code: bool = False
    sweep_interval_seconds: float = 300.0

    # ── SMTP ──────────────────────────────────────────────────────────
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    smtp_enabled_override: str = "auto"
    mail_timeout_seconds: float = 10.0

    # ── HTTP ──────────────────────────────────────────────────────────
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    # ── Process ───────────────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_reload: bool = False
    log_level: str = "info"

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def ttl_seconds(self) -> int:
        return self.ttl_minutes * 60

    @property
    def should_expose_code(self) -> bool:
        """Echo issued codes in responses only when asked to, and never in production."""
        return self.expose_code and not self.is_production

    def smtp_enabled(self) -> bool:
        """True when SMTP should actually send emails.

        Controlled by SMTP_ENABLED env var:
          • "auto" (default): send if credentials are configured
          • "true":  always send (will fail if credentials are missing)
          • "false": never send, log to console instead
        """
        if self.smtp_enabled_override.lower() == "false":
            return False
        if self.smtp_enabled_override.lower() == "true":
            return True
        return bool(self.smtp_host and self.smtp_username and self.smtp_password)


# ── Parsing helpers ───────────────────────────────────────────────────────


def _bool(raw: str) -> bool:
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _positive_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def _positive_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build ``Settings`` from the environment, failing fast on bad input."""
    env = os.environ if environ is None else environ

    from_email = (env.get("OTP_FROM_EMAIL") or env.get("FROM_EMAIL") or "").strip()
    if not from_email:
        raise ConfigError("OTP_FROM_EMAIL is required (the sender address for OTP mail)")

    storage = env.get("OTP_STORAGE", "sqlite").strip().lower()
    if storage not in STORAGE_BACKENDS:
        raise ConfigError(
            f"OTP_STORAGE must be one of {', '.join(STORAGE_BACKENDS)}, got {storage!r}"
        )

    db_path = env.get("DB_PATH", "").strip() or str(DATA_DIR / "email_otp.db")

    origins = [o.strip() for o in env.get("CORS_ORIGINS", "*").split(",") if o.strip()]

    return Settings(
        from_email=from_email,
        environment=env.get("ENVIRONMENT", "development"),
        storage=storage,
        db_path=db_path,
        ttl_minutes=_positive_int(env, "OTP_TTL_MINUTES", 5),
        min_resend_seconds=_positive_int(env, "OTP_MIN_RESEND_SECONDS", 60),
        max_per_hour=_positive_int(env, "OTP_MAX_PER_HOUR", 10),
        expose_code=_bool(env.get("OTP_EXPOSE_CODE", "false")),
        sweep_interval_seconds=_positive_float(env, "OTP_SWEEP_INTERVAL_SECONDS", 300.0),
        smtp_host=env.get("SMTP_HOST", ""),
        smtp_port=_positive_int(env, "SMTP_PORT", 587),
        smtp_username=env.get("SMTP_USERNAME", ""),
        smtp_password=env.get("SMTP_PASSWORD", ""),
        smtp_use_tls=_bool(env.get("SMTP_USE_TLS", "true")),
        smtp_enabled_override=env.get("SMTP_ENABLED", "auto"),
        mail_timeout_seconds=_positive_float(env, "OTP_MAIL_TIMEOUT_SECONDS", 10.0),
        cors_origins=origins or ["*"],
        api_host=env.get("API_HOST", "0.0.0.0"),
        api_port=_positive_int(env, "API_PORT", _positive_int(env, "PORT", 8000)),
        api_reload=_bool(env.get("API_RELOAD", "false")),
        log_level=env.get("LOG_LEVEL", "info").strip().lower() or "info",
    )
