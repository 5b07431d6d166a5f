from datetime import timedelta

from otp_backend.core.security import hash_otp
from otp_backend.models.otp import OTPRecord
from otp_backend.models.otp_log import OTPLog
from otp_backend.services.rate_limiter import RateLimiter
from otp_backend.services.store import OTPStore

from conftest import PHONE


def _add_record(db, clock, **overrides):
    now = clock()
    values = dict(
        identity=PHONE,
        hashed_secret=hash_otp("test-otp-secret", "123456"),
        created_at=now,
        updated_at=now,
        expires_at=now + timedelta(minutes=5),
        attempts=0,
        consumed=False,
    )
    values.update(overrides)
    record = OTPRecord(**values)
    db.add(record)
    db.commit()
    return record


def _limiter(db, policy, clock):
    return RateLimiter(OTPStore(db), policy, clock=clock)


def test_no_record_is_allowed(db, policy, clock):
    decision = _limiter(db, policy, clock).check(PHONE)

    assert decision.allowed is True
    assert decision.retry_after is None


def test_cooldown_reports_seconds_left(db, policy, clock):
    _add_record(db, clock)
    limiter = _limiter(db, policy, clock)

    decision = limiter.check(PHONE)
    assert decision.allowed is False
    assert decision.retry_after == 60
    assert decision.locked is False

    clock.advance(seconds=20, milliseconds=500)
    assert limiter.check(PHONE).retry_after == 40

    clock.advance(seconds=39, milliseconds=500)
    assert limiter.check(PHONE).allowed is True


def test_locked_record_reports_lock_during_cooldown(db, policy, clock):
    _add_record(db, clock)
    clock.advance(seconds=30)
    _add_record(db, clock, created_at=clock() - timedelta(seconds=30), attempts=5, updated_at=clock())
    limiter = _limiter(db, policy, clock)

    decision = limiter.check(PHONE)
    assert decision.allowed is False
    assert decision.locked is True
    assert decision.retry_after == 30
    assert "(5)" in decision.reason

    clock.advance(seconds=30)
    assert limiter.check(PHONE).allowed is True


def test_late_lock_does_not_extend_cooldown(db, policy, clock):
    issued_at = clock()
    clock.advance(seconds=50)
    _add_record(db, clock, created_at=issued_at, attempts=5, updated_at=clock())
    limiter = _limiter(db, policy, clock)

    decision = limiter.check(PHONE)
    assert decision.locked is True
    assert decision.retry_after == 10

    clock.advance(seconds=11)
    assert limiter.check(PHONE).allowed is True


def test_only_latest_record_counts(db, policy, clock):
    _add_record(db, clock, created_at=clock() - timedelta(minutes=10), attempts=5)
    _add_record(db, clock, created_at=clock() - timedelta(minutes=2))

    assert _limiter(db, policy, clock).check(PHONE).allowed is True


def test_check_is_read_only_and_repeatable(db, policy, clock):
    record = _add_record(db, clock)
    limiter = _limiter(db, policy, clock)

    first = limiter.check(PHONE)
    second = limiter.check(PHONE)

    assert first == second
    db.refresh(record)
    assert record.attempts == 0
    assert db.query(OTPRecord).count() == 1
    assert db.query(OTPLog).count() == 0
