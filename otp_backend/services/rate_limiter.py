import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..core.config import OTPPolicy
from ..core.security import utcnow
from .store import OTPStore


@dataclass
class RateLimitDecision:
    allowed: bool
    reason: Optional[str] = None
    retry_after: Optional[int] = None
    locked: bool = False


def _seconds_left(remaining: timedelta) -> int:
    return max(1, math.ceil(remaining.total_seconds()))


class RateLimiter:
    """Decides whether a new OTP may be issued for an identity. Read-only."""

    def __init__(self, store: OTPStore, policy: OTPPolicy, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.policy = policy
        self.clock = clock

    def check(self, identity: str) -> RateLimitDecision:
        record = self.store.find_latest(identity)
        if record is None:
            return RateLimitDecision(allowed=True)

        now = self.clock()
        cooldown = self.policy.resend_cooldown

        # Cooldown always runs from issuance; a lock only changes the message
        elapsed = now - record.created_at
        if elapsed < cooldown:
            retry_after = _seconds_left(cooldown - elapsed)
            if record.is_locked(self.policy.max_attempts):
                return RateLimitDecision(
                    allowed=False,
                    reason=(
                        f"Maximum OTP attempts ({self.policy.max_attempts}) exceeded. "
                        f"Please wait {retry_after} seconds before requesting a new OTP"
                    ),
                    retry_after=retry_after,
                    locked=True,
                )
            return RateLimitDecision(
                allowed=False,
                reason=f"Please wait {retry_after} seconds before requesting a new OTP",
                retry_after=retry_after,
            )

        return RateLimitDecision(allowed=True)
