import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from ..core.config import OTPPolicy
from ..core.security import is_valid_otp_format, mask_identity, normalize_identity, otp_matches, utcnow
from ..models.otp_log import OTPEventType
from .audit import AuditLogger
from .store import OTPStore

logger = logging.getLogger(__name__)


class VerifyOutcome(str, enum.Enum):
    SUCCESS = "success"
    INCORRECT = "incorrect"
    LOCKED = "locked"
    EXPIRED = "expired"
    CONSUMED = "consumed"
    NOT_FOUND = "not_found"
    INVALID_FORMAT = "invalid_format"


@dataclass
class VerifyResult:
    outcome: VerifyOutcome
    message: str
    attempts_remaining: Optional[int] = None
    consumed_at: Optional[datetime] = None

    @property
    def success(self) -> bool:
        return self.outcome is VerifyOutcome.SUCCESS


class OTPVerifier:
    """
    Checks a submitted code against the newest record for an identity.

    The checks run in a fixed order: format, lookup, consumed, expired, locked,
    hash. Attempts are only ever counted against a record that is still usable.
    """

    def __init__(
        self,
        store: OTPStore,
        audit: AuditLogger,
        policy: OTPPolicy,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.audit = audit
        self.policy = policy
        self.clock = clock

    def verify(self, identity: str, submitted_code: str) -> VerifyResult:
        normalized = normalize_identity(identity)
        if normalized is None:
            return VerifyResult(VerifyOutcome.INVALID_FORMAT, "Invalid phone number or email format")
        if not is_valid_otp_format(submitted_code):
            return VerifyResult(VerifyOutcome.INVALID_FORMAT, "Invalid OTP format. Must be 6 digits.")

        record = self.store.find_latest(normalized)
        if record is None:
            self.audit.log(OTPEventType.VERIFY_FAILED, normalized, "no_record", {"reason": "No OTP record found"})
            return VerifyResult(
                VerifyOutcome.NOT_FOUND,
                "No OTP found for this identity. Please request a new one.",
            )

        now = self.clock()
        if record.consumed:
            return self._consumed(normalized, record.consumed_at)
        if record.is_expired(now):
            return self._expired(normalized, record.expires_at)
        if record.is_locked(self.policy.max_attempts):
            return self._locked(normalized, record.attempts)

        if not otp_matches(self.policy.secret, submitted_code, record.hashed_secret):
            return self._register_failure(normalized, record.id)

        used_attempts = record.attempts + 1
        if not self.store.mark_consumed(record.id, now):
            # Lost a race with a concurrent verify, or expired in between
            current = self.store.get(record.id)
            if current is None or current.consumed:
                return self._consumed(normalized, current.consumed_at if current else None)
            return self._expired(normalized, current.expires_at)

        self.audit.log(
            OTPEventType.VERIFY_SUCCESS,
            normalized,
            "success",
            {"consumedAt": now, "usedAttempts": used_attempts},
        )
        logger.info("OTP verified for %s", mask_identity(normalized))
        return VerifyResult(VerifyOutcome.SUCCESS, "OTP verified successfully", consumed_at=now)

    def _register_failure(self, identity: str, record_id: int) -> VerifyResult:
        max_attempts = self.policy.max_attempts
        attempts = self.store.increment_attempts(record_id, max_attempts, self.clock())
        if attempts is None:
            current = self.store.get(record_id)
            if current is not None and current.consumed:
                return self._consumed(identity, current.consumed_at)
            return self._locked(identity, max_attempts)

        self.audit.log(
            OTPEventType.VERIFY_FAILED,
            identity,
            "incorrect",
            {"attemptNumber": attempts, "maxAttempts": max_attempts},
        )

        if attempts >= max_attempts:
            logger.warning("OTP locked for %s after %s failed attempts", mask_identity(identity), attempts)
            return VerifyResult(
                VerifyOutcome.LOCKED,
                f"Incorrect OTP. Maximum attempts ({max_attempts}) exceeded.",
            )

        remaining = max_attempts - attempts
        return VerifyResult(
            VerifyOutcome.INCORRECT,
            f"Incorrect OTP. {remaining} attempts remaining.",
            attempts_remaining=remaining,
        )

    def _consumed(self, identity: str, consumed_at: Optional[datetime]) -> VerifyResult:
        self.audit.log(OTPEventType.VERIFY_FAILED, identity, "already_consumed", {"consumedAt": consumed_at})
        return VerifyResult(VerifyOutcome.CONSUMED, "OTP has already been used. Please request a new one.")

    def _expired(self, identity: str, expires_at: datetime) -> VerifyResult:
        self.audit.log(OTPEventType.VERIFY_FAILED, identity, "expired", {"expiresAt": expires_at})
        return VerifyResult(VerifyOutcome.EXPIRED, "OTP has expired. Please request a new one.")

    def _locked(self, identity: str, attempts: int) -> VerifyResult:
        self.audit.log(
            OTPEventType.VERIFY_FAILED,
            identity,
            "locked",
            {"attempts": attempts, "maxAttempts": self.policy.max_attempts},
        )
        return VerifyResult(
            VerifyOutcome.LOCKED,
            f"Maximum attempts ({self.policy.max_attempts}) exceeded. Please request a new OTP.",
        )
