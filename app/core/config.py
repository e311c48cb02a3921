"""
Configuration settings for the application
"""

import os
from typing import Dict, List
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """Application settings"""

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./waitlist.db")
    USE_FIREBASE: bool = os.getenv("USE_FIREBASE", "false").lower() in ("1", "true", "yes")
    FIREBASE_CREDENTIALS_JSON: str | None = os.getenv("FIREBASE_CREDENTIALS_JSON")
    FIREBASE_CREDENTIALS_FILE: str | None = os.getenv("FIREBASE_CREDENTIALS_FILE")
    FIREBASE_CREDENTIALS_B64: str | None = os.getenv("FIREBASE_CREDENTIALS_B64")

    # Security (token issued by the identity provider for host devices)
    HOST_TOKEN: str = os.getenv("HOST_TOKEN", "host_token_123")

    # Application
    BASE_URL: str = os.getenv("BASE_URL", "http://localhost:8000")

    # CORS
    ALLOW_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5000",
        "http://localhost:8000",
    ]

    # Rate limiting
    RATE_LIMIT_PER_MINUTE: int = 30

    # Waitlist
    NO_SHOW_THRESHOLD_MINUTES: int = 5
    ANALYTICS_WINDOW_DAYS: int = 30

    # Payments (Stripe)
    STRIPE_SECRET_KEY: str | None = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET: str | None = os.getenv("STRIPE_WEBHOOK_SECRET")
    STRIPE_PRICE_IDS: Dict[str, str] = {
        "starter_monthly": "price_starter_monthly",
        "starter_annual": "price_starter_annual",
        "professional_monthly": "price_professional_monthly",
        "professional_annual": "price_professional_annual",
        "enterprise_monthly": "price_enterprise_monthly",
        "enterprise_annual": "price_enterprise_annual",
    }

    # SMS (Twilio)
    TWILIO_ACCOUNT_SID: str | None = os.getenv("TWILIO_ACCOUNT_SID")
    TWILIO_AUTH_TOKEN: str | None = os.getenv("TWILIO_AUTH_TOKEN")
    TWILIO_MESSAGING_SERVICE_SID: str | None = os.getenv("TWILIO_MESSAGING_SERVICE_SID")

    class Config:
        env_file = ".env"
        extra = "ignore"

settings = Settings()
