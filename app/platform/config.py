from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── App ─────────────────────────────────────
    APP_NAME: str = "Waitlist API"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    DEBUG: bool = True

    # ── Database ────────────────────────────────
    DATABASE_URL: str

    # ── Email Configuration ─────────────────────
    MAIL_HOST: str = "smtp.gmail.com"
    MAIL_PORT: int = 587
    MAIL_USERNAME: str = "your-email-id"
    MAIL_PASSWORD: str = "your-password"
    MAIL_ENCRYPTION: str = "tls"
    MAIL_FROM_ADDRESS: str = "example@localhost"
    MAIL_FROM_NAME: str = "Waitlist Team"

    EMAIL_RELAY_URL: str = ""
    EMAIL_RELAY_API_KEY: str = ""
    EMAIL_RELAY_TIMEOUT: int = 30

    # ── Google Sign-In ──────────────────────────
    GOOGLE_CLIENT_ID: str = "dummy-value"
    GOOGLE_CLIENT_ID_ANDROID: Optional[str] = None

    # ── Referral program ────────────────────────
    REFERRAL_CODE_LENGTH: int = 6
    REFERRAL_CODE_MAX_ATTEMPTS: int = 10
    REFERRAL_LEADERBOARD_SIZE: int = 10
    RECENT_SIGNUP_DAYS: int = 7

    FRONTEND_URL: str = "https://newronx.com"

    class Config:
        env_file = str(Path(__file__).parent.parent.parent / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
