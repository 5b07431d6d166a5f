import os
from dataclasses import dataclass
from datetime import timedelta
from dotenv import load_dotenv

load_dotenv()

class Settings:
    APP_NAME: str = os.getenv("APP_NAME", "OTP Verification Backend")
    APP_ENV: str = os.getenv("APP_ENV", "production")
    SQLALCHEMY_DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./otp.db")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    # Admin tokens for maintenance endpoints
    JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "change_this_secret")
    JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

    # OTP policy; OTP_SECRET has no default on purpose
    OTP_SECRET: str = os.getenv("OTP_SECRET", "")
    OTP_EXPIRY_MINUTES: int = int(os.getenv("OTP_EXPIRY_MINUTES", "5"))
    OTP_RESEND_COOLDOWN: int = int(os.getenv("OTP_RESEND_COOLDOWN", "60"))
    MAX_OTP_ATTEMPTS: int = int(os.getenv("MAX_OTP_ATTEMPTS", "5"))
    OTP_ABANDONED_RETENTION_HOURS: int = int(os.getenv("OTP_ABANDONED_RETENTION_HOURS", "24"))
    OTP_LOG_RETENTION_DAYS: int = int(os.getenv("OTP_LOG_RETENTION_DAYS", "30"))

    # Brevo Email API
    BREVO_API_KEY: str = os.getenv("BREVO_API_KEY", "")
    EMAIL_FROM_ADDRESS: str = os.getenv("EMAIL_FROM_ADDRESS", "noreply@example.com")
    EMAIL_FROM_NAME: str = os.getenv("EMAIL_FROM_NAME", "Career Counselling")

    # SMS gateway (any HTTP provider accepting a JSON POST)
    SMS_API_URL: str = os.getenv("SMS_API_URL", "")
    SMS_API_KEY: str = os.getenv("SMS_API_KEY", "")
    SMS_SENDER_ID: str = os.getenv("SMS_SENDER_ID", "CAREER")

    @property
    def is_development(self) -> bool:
        return self.APP_ENV.lower() == "development"

settings = Settings()


@dataclass(frozen=True)
class OTPPolicy:
    """Tunables shared by the rate limiter, issuer, verifier and cleanup."""

    secret: str
    expiry: timedelta = timedelta(minutes=5)
    resend_cooldown: timedelta = timedelta(seconds=60)
    max_attempts: int = 5
    abandoned_retention: timedelta = timedelta(hours=24)
    log_retention: timedelta = timedelta(days=30)
    expose_code: bool = False

    def __post_init__(self):
        if not self.secret:
            raise ValueError("OTP secret must not be empty")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")


def otp_policy() -> OTPPolicy:
    return OTPPolicy(
        secret=settings.OTP_SECRET,
        expiry=timedelta(minutes=settings.OTP_EXPIRY_MINUTES),
        resend_cooldown=timedelta(seconds=settings.OTP_RESEND_COOLDOWN),
        max_attempts=settings.MAX_OTP_ATTEMPTS,
        abandoned_retention=timedelta(hours=settings.OTP_ABANDONED_RETENTION_HOURS),
        log_retention=timedelta(days=settings.OTP_LOG_RETENTION_DAYS),
        expose_code=settings.is_development,
    )

