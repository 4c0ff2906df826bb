"""
Application settings loaded from environment variables
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Runtime configuration for DeliveryLink"""

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./deliverylink.db")

    # Security
    SECRET_KEY: str = os.getenv("SECRET_KEY", "your-secret-key-change-in-production")
    ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")

    # Public URLs
    APP_URL: str = os.getenv("APP_URL", "http://localhost:3000")

    # Outbound notifications (empty URL disables sending)
    NOTIFICATION_URL: str = os.getenv("NOTIFICATION_URL", "")
    NOTIFICATION_TIMEOUT_SECONDS: float = float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "10"))
    DEFAULT_COUNTRY_CODE: str = os.getenv("DEFAULT_COUNTRY_CODE", "254")

    # Delivery rules
    OTP_TTL_MINUTES: int = int(os.getenv("OTP_TTL_MINUTES", "10"))
    DEFAULT_CURRENCY: str = os.getenv("DEFAULT_CURRENCY", "KES")

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = _as_bool(os.getenv("RATE_LIMIT_ENABLED", "true"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
