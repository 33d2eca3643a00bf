#!/usr/bin/env python3
"""
Entry point for the email OTP service.
"""

import uvicorn

from email_otp.config import load_settings

if __name__ == "__main__":
    settings = load_settings()
    uvicorn.run(
        "email_otp.main:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
        log_level=settings.log_level,
    )
