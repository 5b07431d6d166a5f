from sqlalchemy import Integer, String, DateTime, Boolean, Index
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from ..core.database import Base
from ..core.security import utcnow

class OTPRecord(Base):
    """One issued challenge. Only the newest row per identity is ever evaluated."""
    __tablename__ = "otp_records"
    __table_args__ = (
        Index("ix_otp_records_identity_created", "identity", "created_at"),
    )

    # id doubles as the tie-breaker when two rows share created_at
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identity: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    hashed_secret: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    consumed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    consumed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def is_locked(self, max_attempts: int) -> bool:
        return self.attempts >= max_attempts

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def is_usable(self, now: datetime) -> bool:
        return not self.consumed and not self.is_expired(now)
