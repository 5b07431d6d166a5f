import hashlib
import hmac
import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from email_validator import EmailNotValidError, validate_email

from .config import settings

E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")
OTP_PATTERN = re.compile(r"^\d{6}$")


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_otp() -> str:
    """Generate a 6-digit OTP code in 100000..999999."""
    return str(secrets.randbelow(900000) + 100000)


def hash_otp(secret_key: str, otp: str) -> str:
    return hmac.new(secret_key.encode(), otp.encode(), hashlib.sha256).hexdigest()


def otp_matches(secret_key: str, otp: str, hashed_otp: str) -> bool:
    return hmac.compare_digest(hash_otp(secret_key, otp), hashed_otp)


def is_valid_otp_format(otp) -> bool:
    return isinstance(otp, str) and OTP_PATTERN.fullmatch(otp) is not None


def is_phone(identity: str) -> bool:
    return E164_PATTERN.fullmatch(identity) is not None


def normalize_identity(identity) -> Optional[str]:
    """
    Return the canonical form of a phone number or email address,
    or None when it is neither.
    """
    if not isinstance(identity, str) or not identity:
        return None
    if is_phone(identity):
        return identity
    if "@" not in identity:
        return None
    try:
        return validate_email(identity, check_deliverability=False).normalized
    except EmailNotValidError:
        return None


def mask_identity(identity: str) -> str:
    if is_phone(identity):
        digits = identity[1:]
        return "+" + "X" * (len(digits) - 2) + digits[-2:]
    local, _, domain = identity.partition("@")
    return f"{local[:1]}***@{domain}"


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    return encoded_jwt


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
