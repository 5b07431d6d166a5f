import asyncio
from dataclasses import replace
from datetime import timedelta

import pytest

from otp_backend.core.security import hash_otp
from otp_backend.models.otp import OTPRecord
from otp_backend.models.otp_log import OTPLog, OTPEventType
from otp_backend.services.otp_service import OTPService

from conftest import PHONE


def _events(db):
    return [row.event_type for row in db.query(OTPLog).order_by(OTPLog.id)]


@pytest.mark.parametrize("identity", ["9999999999", "+91-9999-999999", "+0123", "mail@", ""])
def test_malformed_identity_creates_nothing(service, db, delivery, identity):
    result = asyncio.run(service.send(identity))

    assert result.success is False
    assert result.invalid_format is True
    assert db.query(OTPRecord).count() == 0
    assert db.query(OTPLog).count() == 0
    assert delivery.sent == []


def test_issue_persists_hashed_record_and_delivers_code(service, db, delivery, clock):
    result = asyncio.run(service.send(PHONE))

    assert result.success is True
    assert result.masked_identity == "+XXXXXXXXXX99"
    assert result.expires_at == clock() + timedelta(minutes=5)
    assert result.debug_code is None

    identity, code = delivery.sent[0]
    assert identity == PHONE
    record = db.query(OTPRecord).one()
    assert record.hashed_secret == hash_otp("test-otp-secret", code)
    assert record.hashed_secret != code
    assert record.attempts == 0
    assert record.consumed is False
    assert record.consumed_at is None
    assert record.created_at == clock()
    assert _events(db) == [OTPEventType.ISSUE_SUCCESS.value]


def test_second_issue_within_cooldown_rejected(service, db, delivery, clock):
    asyncio.run(service.send(PHONE))
    clock.advance(seconds=15)

    result = asyncio.run(service.send(PHONE))

    assert result.success is False
    assert result.retry_after == 45
    assert db.query(OTPRecord).count() == 1
    assert len(delivery.sent) == 1
    assert _events(db)[-1] == OTPEventType.ISSUE_FAILED.value


def test_issue_after_cooldown_creates_new_record(service, db, delivery, clock):
    asyncio.run(service.send(PHONE))
    clock.advance(seconds=61)

    result = asyncio.run(service.send(PHONE))

    assert result.success is True
    assert db.query(OTPRecord).count() == 2
    assert len(delivery.sent) == 2


def test_delivery_failure_removes_record(service, db, delivery):
    delivery.fail = True

    result = asyncio.run(service.send(PHONE))

    assert result.success is False
    assert result.retry_after is None
    assert db.query(OTPRecord).count() == 0
    assert _events(db) == [OTPEventType.ISSUE_ERROR.value]

    delivery.fail = False
    assert asyncio.run(service.send(PHONE)).success is True


def test_development_policy_exposes_code(db, policy, delivery, clock):
    service = OTPService.build(db, replace(policy, expose_code=True), delivery=delivery, clock=clock)

    result = asyncio.run(service.send(PHONE))

    assert result.debug_code == delivery.last_code


def test_email_identity_is_normalized(service, db, delivery):
    result = asyncio.run(service.send("Student@Example.com"))

    assert result.success is True
    assert result.masked_identity == "S***@example.com"
    assert db.query(OTPRecord).one().identity == "Student@example.com"


def test_uses_injected_code_generator(db, policy, delivery, clock):
    service = OTPService.build(db, policy, delivery=delivery, clock=clock, code_generator=lambda: "424242")

    asyncio.run(service.send(PHONE))

    assert delivery.last_code == "424242"


def test_unexpected_delivery_error_removes_record(service, db, delivery):
    delivery.error = ValueError("gateway returned an HTML error page")

    with pytest.raises(ValueError):
        asyncio.run(service.send(PHONE))

    assert db.query(OTPRecord).count() == 0

    delivery.error = None
    assert asyncio.run(service.send(PHONE)).success is True
