"""
OTP service

Wires the store, rate limiter, issuer, verifier and audit logger around one
database session, and adds the read-only stats view and the cleanup job.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from ..core.config import OTPPolicy
from ..core.delivery import OTPDelivery
from ..core.security import normalize_identity, utcnow
from ..models.otp_log import OTPEventType
from .audit import AuditLogger
from .issuer import IssueResult, OTPIssuer
from .rate_limiter import RateLimiter
from .store import OTPStore
from .verifier import OTPVerifier, VerifyResult

logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    deleted_count: int
    logs_purged: int


class OTPService:
    def __init__(
        self,
        store: OTPStore,
        rate_limiter: RateLimiter,
        issuer: OTPIssuer,
        verifier: OTPVerifier,
        audit: AuditLogger,
        policy: OTPPolicy,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.rate_limiter = rate_limiter
        self.issuer = issuer
        self.verifier = verifier
        self.audit = audit
        self.policy = policy
        self.clock = clock

    @classmethod
    def build(
        cls,
        db: Session,
        policy: OTPPolicy,
        delivery: OTPDelivery,
        audit: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = utcnow,
        code_generator: Optional[Callable[[], str]] = None,
    ) -> "OTPService":
        store = OTPStore(db)
        audit = audit or AuditLogger(db, clock=clock)
        rate_limiter = RateLimiter(store, policy, clock=clock)
        issuer_kwargs = {"code_generator": code_generator} if code_generator else {}
        issuer = OTPIssuer(store, rate_limiter, delivery, audit, policy, clock=clock, **issuer_kwargs)
        verifier = OTPVerifier(store, audit, policy, clock=clock)
        return cls(store, rate_limiter, issuer, verifier, audit, policy, clock=clock)

    async def send(self, identity: str) -> IssueResult:
        return await self.issuer.issue(identity)

    def verify(self, identity: str, otp: str) -> VerifyResult:
        return self.verifier.verify(identity, otp)

    def get_stats(self, identity: str) -> Optional[Dict[str, Any]]:
        """Snapshot of the newest record for identity, or None."""
        normalized = normalize_identity(identity)
        if normalized is None:
            return None
        record = self.store.find_latest(normalized)
        if record is None:
            return None
        return {
            "identity": normalized,
            "attempts": record.attempts,
            "maxAttempts": self.policy.max_attempts,
            "consumed": record.consumed,
            "expiresAt": record.expires_at,
            "createdAt": record.created_at,
            "consumedAt": record.consumed_at,
        }

    def cleanup_expired(self) -> CleanupResult:
        now = self.clock()
        deleted = self.store.delete_expired_consumed(now)
        deleted += self.store.delete_abandoned(now - self.policy.abandoned_retention)
        purged = self.audit.purge_older_than(now - self.policy.log_retention)
        logger.info("Cleaned up %s expired OTP records and %s audit rows", deleted, purged)
        return CleanupResult(deleted_count=deleted, logs_purged=purged)

    def record_error(self, event_type: OTPEventType, identity: str, error: Exception):
        """Audit an unexpected failure; the session may be mid-transaction."""
        self.store.rollback()
        self.audit.log(event_type, identity or "", "error", {"error": str(error)})
