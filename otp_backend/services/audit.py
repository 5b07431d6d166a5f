import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from ..core.security import utcnow
from ..models.otp_log import OTPEventType, OTPLog

logger = logging.getLogger(__name__)


class AuditLogger:
    """Appends OTP events to otp_logs. Failures are logged and never raised."""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    def log(
        self,
        event_type: OTPEventType,
        identity: str,
        status: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> bool:
        try:
            self.db.add(
                OTPLog(
                    event_type=event_type.value,
                    identity=identity,
                    status=status,
                    details=_jsonable(details or {}),
                    timestamp=self.clock(),
                )
            )
            self.db.commit()
            return True
        except Exception:
            logger.exception("Error logging OTP event %s for %s", event_type.value, identity)
            try:
                self.db.rollback()
            except Exception:
                logger.exception("Rollback after failed audit write also failed")
            return False

    def purge_older_than(self, cutoff: datetime) -> int:
        deleted = self.db.query(OTPLog).filter(OTPLog.timestamp < cutoff).delete(synchronize_session=False)
        self.db.commit()
        return deleted


def _jsonable(details: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v.isoformat() if isinstance(v, datetime) else v for k, v in details.items()}
