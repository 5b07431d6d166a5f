# Audit trail for OTP issue/verify outcomes.
# Rows are append-only and purged by the cleanup job after the retention window.

import enum
from sqlalchemy import Integer, String, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from ..core.database import Base
from ..core.security import utcnow


class OTPEventType(str, enum.Enum):
    ISSUE_SUCCESS = "ISSUE_SUCCESS"
    ISSUE_FAILED = "ISSUE_FAILED"
    ISSUE_ERROR = "ISSUE_ERROR"
    VERIFY_SUCCESS = "VERIFY_SUCCESS"
    VERIFY_FAILED = "VERIFY_FAILED"
    VERIFY_ERROR = "VERIFY_ERROR"


class OTPLog(Base):
    __tablename__ = "otp_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    identity: Mapped[str] = mapped_column(String(320), nullable=False, index=True)

    # Free-text outcome tag, e.g. "incorrect", "cooldown", "delivered"
    status: Mapped[str] = mapped_column(String(64), nullable=False)
    details: Mapped[dict] = mapped_column(JSON, default=dict)

    timestamp: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)
