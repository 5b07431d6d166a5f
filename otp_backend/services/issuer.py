import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from ..core.config import OTPPolicy
from ..core.delivery import DeliveryError, OTPDelivery
from ..core.security import generate_otp, hash_otp, mask_identity, normalize_identity, utcnow
from ..models.otp import OTPRecord
from ..models.otp_log import OTPEventType
from .audit import AuditLogger
from .rate_limiter import RateLimiter
from .store import OTPStore

logger = logging.getLogger(__name__)

INVALID_IDENTITY_MESSAGE = (
    "Invalid phone number or email format. Use E.164 format (e.g., +91XXXXXXXXXX) or a valid email address"
)


@dataclass
class IssueResult:
    success: bool
    message: str
    expires_at: Optional[datetime] = None
    masked_identity: Optional[str] = None
    retry_after: Optional[int] = None
    locked: bool = False
    invalid_format: bool = False
    # Plaintext code; only filled when the policy allows exposing it (development)
    debug_code: Optional[str] = None


class OTPIssuer:
    def __init__(
        self,
        store: OTPStore,
        rate_limiter: RateLimiter,
        delivery: OTPDelivery,
        audit: AuditLogger,
        policy: OTPPolicy,
        clock: Callable[[], datetime] = utcnow,
        code_generator: Callable[[], str] = generate_otp,
    ):
        self.store = store
        self.rate_limiter = rate_limiter
        self.delivery = delivery
        self.audit = audit
        self.policy = policy
        self.clock = clock
        self.code_generator = code_generator

    async def issue(self, identity: str) -> IssueResult:
        """
        Create a fresh challenge for identity and hand the code to delivery.

        Malformed identities fail before the store is touched; cooldown and lock
        rejections carry retry_after. Store errors propagate to the caller.
        """
        normalized = normalize_identity(identity)
        if normalized is None:
            return IssueResult(success=False, message=INVALID_IDENTITY_MESSAGE, invalid_format=True)

        decision = self.rate_limiter.check(normalized)
        if not decision.allowed:
            self.audit.log(
                OTPEventType.ISSUE_FAILED,
                normalized,
                "locked" if decision.locked else "cooldown",
                {"reason": decision.reason, "retryAfter": decision.retry_after},
            )
            return IssueResult(
                success=False,
                message=decision.reason,
                retry_after=decision.retry_after,
                locked=decision.locked,
            )

        code = self.code_generator()
        now = self.clock()
        record = self.store.insert(
            OTPRecord(
                identity=normalized,
                hashed_secret=hash_otp(self.policy.secret, code),
                created_at=now,
                updated_at=now,
                expires_at=now + self.policy.expiry,
                attempts=0,
                consumed=False,
            )
        )
        record_id = record.id
        expires_at = record.expires_at
        masked = mask_identity(normalized)

        # Nobody received the code if delivery fails, so it must not hold the cooldown
        expiry_minutes = max(1, int(self.policy.expiry.total_seconds() // 60))
        try:
            await self.delivery.send(normalized, code, expiry_minutes)
        except DeliveryError as e:
            logger.error("OTP delivery to %s failed: %s", masked, e)
            self.store.delete(record_id)
            self.audit.log(OTPEventType.ISSUE_ERROR, normalized, "delivery_failed", {"error": str(e)})
            return IssueResult(success=False, message="Failed to deliver OTP. Please try again.")
        except Exception:
            self.store.delete(record_id)
            raise

        self.audit.log(
            OTPEventType.ISSUE_SUCCESS,
            normalized,
            "sent",
            {"expiresAt": expires_at, "recordId": record_id},
        )
        logger.info("OTP issued for %s, expires at %s", masked, expires_at.isoformat())

        return IssueResult(
            success=True,
            message="OTP sent successfully",
            expires_at=expires_at,
            masked_identity=masked,
            debug_code=code if self.policy.expose_code else None,
        )
