import logging
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from ..core.config import settings
from ..core.security import normalize_identity
from ..dependencies import admin_required, get_otp_service
from ..models.otp_log import OTPEventType
from ..schemas.otp import SendOTPRequest, VerifyOTPRequest, OTPStats, OTPStatsResponse, CleanupResponse
from ..services.otp_service import OTPService
from ..services.verifier import VerifyOutcome

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/otp", tags=["otp"])

VERIFY_STATUS = {
    VerifyOutcome.SUCCESS: 200,
    VerifyOutcome.INVALID_FORMAT: 400,
    VerifyOutcome.INCORRECT: 401,
    VerifyOutcome.LOCKED: 403,
    VerifyOutcome.NOT_FOUND: 404,
    VerifyOutcome.EXPIRED: 410,
    VerifyOutcome.CONSUMED: 410,
}


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat(timespec="milliseconds") + "Z"


def _audit_identity(identity) -> str:
    return normalize_identity(identity) or str(identity)


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message, **extra})


def _server_error(message: str, exc: Exception) -> JSONResponse:
    extra = {"error": str(exc)} if settings.is_development else {}
    return _error(500, message, **extra)


@router.post("/send")
async def send_otp(payload: SendOTPRequest, service: OTPService = Depends(get_otp_service)):
    """Issue a new OTP for a phone number or email address."""
    if not payload.identity:
        return _error(400, "Phone number or email is required")

    try:
        result = await service.send(payload.identity)
    except Exception as e:
        logger.exception("Error in /otp/send")
        service.record_error(OTPEventType.ISSUE_ERROR, _audit_identity(payload.identity), e)
        return _server_error("An error occurred while sending OTP", e)

    if result.success:
        content = {
            "success": True,
            "message": result.message,
            "expiresAt": _iso(result.expires_at),
            "maskedIdentity": result.masked_identity,
        }
        if result.debug_code:
            content["otp"] = result.debug_code
        return content

    if result.invalid_format:
        return _error(400, result.message)
    if result.retry_after:
        extra = {"locked": True} if result.locked else {}
        return _error(429, result.message, retryAfter=result.retry_after, **extra)
    return _error(500, result.message)


@router.post("/verify")
def verify_otp(payload: VerifyOTPRequest, service: OTPService = Depends(get_otp_service)):
    """Check a submitted code against the latest OTP for the identity."""
    if not payload.identity:
        return _error(400, "Phone number or email is required")
    if not payload.otp:
        return _error(400, "OTP is required")

    try:
        result = service.verify(payload.identity, payload.otp)
    except Exception as e:
        logger.exception("Error in /otp/verify")
        service.record_error(OTPEventType.VERIFY_ERROR, _audit_identity(payload.identity), e)
        return _server_error("An error occurred while verifying OTP", e)

    if result.success:
        return {"success": True, "message": result.message, "verifiedAt": _iso(result.consumed_at)}

    extra = {}
    if result.outcome is VerifyOutcome.INCORRECT:
        extra["attemptsRemaining"] = result.attempts_remaining
    elif result.outcome is VerifyOutcome.LOCKED:
        extra["locked"] = True
    return _error(VERIFY_STATUS[result.outcome], result.message, **extra)


@router.get("/stats/{identity}", response_model=OTPStatsResponse)
def otp_stats(identity: str, service: OTPService = Depends(get_otp_service)):
    if normalize_identity(identity) is None:
        return _error(400, "Invalid phone number or email format")

    try:
        stats = service.get_stats(identity)
    except Exception as e:
        logger.exception("Error in /otp/stats")
        return _server_error("An error occurred while fetching OTP statistics", e)

    if not stats:
        return _error(404, "No OTP found for this identity")

    for key in ("expiresAt", "createdAt", "consumedAt"):
        stats[key] = _iso(stats[key])
    return OTPStatsResponse(data=OTPStats(**stats))


@router.post("/cleanup", response_model=CleanupResponse, dependencies=[Depends(admin_required)])
def cleanup_otps(service: OTPService = Depends(get_otp_service)):
    """Reclaim dead OTP records and old audit rows. Meant for a cron job."""
    try:
        result = service.cleanup_expired()
    except Exception as e:
        logger.exception("Error in /otp/cleanup")
        return _server_error("An error occurred during cleanup", e)

    return CleanupResponse(
        message="Cleanup completed",
        deletedCount=result.deleted_count,
        logsPurged=result.logs_purged,
    )
