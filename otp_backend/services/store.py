"""
Persistence for OTP records.

Every mutation is a single conditional UPDATE/DELETE so concurrent verify
calls against the same row never lose an increment or consume twice.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..models.otp import OTPRecord


class OTPStore:
    def __init__(self, db: Session):
        self.db = db

    def find_latest(self, identity: str) -> Optional[OTPRecord]:
        return (
            self.db.query(OTPRecord)
            .filter(OTPRecord.identity == identity)
            .order_by(OTPRecord.created_at.desc(), OTPRecord.id.desc())
            .first()
        )

    def get(self, record_id: int) -> Optional[OTPRecord]:
        return self.db.get(OTPRecord, record_id, populate_existing=True)

    def insert(self, record: OTPRecord) -> OTPRecord:
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    def delete(self, record_id: int) -> bool:
        deleted = self.db.query(OTPRecord).filter(OTPRecord.id == record_id).delete(synchronize_session=False)
        self.db.commit()
        return deleted == 1

    def increment_attempts(self, record_id: int, max_attempts: int, now: datetime) -> Optional[int]:
        """
        Add one failed attempt and return the new count.

        Returns None when the row is consumed, already at max_attempts, or gone.
        """
        updated = (
            self.db.query(OTPRecord)
            .filter(
                OTPRecord.id == record_id,
                OTPRecord.consumed == False,  # noqa: E712
                OTPRecord.attempts < max_attempts,
            )
            .update(
                {OTPRecord.attempts: OTPRecord.attempts + 1, OTPRecord.updated_at: now},
                synchronize_session=False,
            )
        )
        if not updated:
            self.db.commit()
            return None

        attempts = self.db.query(OTPRecord.attempts).filter(OTPRecord.id == record_id).scalar()
        self.db.commit()
        return attempts

    def mark_consumed(self, record_id: int, now: datetime) -> bool:
        """Flip consumed exactly once; False if another request got there first or it expired."""
        updated = (
            self.db.query(OTPRecord)
            .filter(
                OTPRecord.id == record_id,
                OTPRecord.consumed == False,  # noqa: E712
                OTPRecord.expires_at >= now,
            )
            .update(
                {OTPRecord.consumed: True, OTPRecord.consumed_at: now, OTPRecord.updated_at: now},
                synchronize_session=False,
            )
        )
        self.db.commit()
        return updated == 1

    def delete_expired_consumed(self, now: datetime) -> int:
        deleted = (
            self.db.query(OTPRecord)
            .filter(OTPRecord.expires_at < now, OTPRecord.consumed == True)  # noqa: E712
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted

    def delete_abandoned(self, cutoff: datetime) -> int:
        deleted = (
            self.db.query(OTPRecord)
            .filter(OTPRecord.expires_at < cutoff, OTPRecord.consumed == False)  # noqa: E712
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted

    def rollback(self):
        self.db.rollback()
