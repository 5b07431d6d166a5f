from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt
from sqlalchemy.orm import Session
from .core.database import get_db
from .core.config import otp_policy, OTPPolicy
from .core.delivery import OTPDelivery
from .core.security import decode_access_token, utcnow
from .services.audit import AuditLogger
from .services.otp_service import OTPService

bearer_scheme = HTTPBearer()


def admin_required(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)):
    token = credentials.credentials
    try:
        payload = decode_access_token(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")

    if payload.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin required")
    return True


def get_policy() -> OTPPolicy:
    return otp_policy()


def get_clock():
    return utcnow


def get_delivery() -> OTPDelivery:
    return OTPDelivery()


def get_audit_logger(db: Session = Depends(get_db), clock=Depends(get_clock)) -> AuditLogger:
    return AuditLogger(db, clock=clock)


def get_otp_service(
    db: Session = Depends(get_db),
    policy: OTPPolicy = Depends(get_policy),
    clock=Depends(get_clock),
    delivery: OTPDelivery = Depends(get_delivery),
    audit: AuditLogger = Depends(get_audit_logger),
) -> OTPService:
    return OTPService.build(db, policy, delivery=delivery, audit=audit, clock=clock)
