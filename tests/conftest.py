import os

os.environ.setdefault("OTP_SECRET", "test-otp-secret")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("APP_ENV", "production")

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from otp_backend.core.config import OTPPolicy
from otp_backend.core.database import Base
from otp_backend.core.delivery import DeliveryError
from otp_backend.models.otp import OTPRecord  # noqa: F401
from otp_backend.models.otp_log import OTPLog  # noqa: F401
from otp_backend.services.otp_service import OTPService

PHONE = "+919999999999"


class FakeClock:
    def __init__(self, start: datetime = datetime(2026, 1, 15, 10, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeDelivery:
    """Records every code it is asked to send."""

    def __init__(self):
        self.sent = []
        self.fail = False
        self.error = None

    async def send(self, identity: str, otp_code: str, expiry_minutes: int):
        if self.error is not None:
            raise self.error
        if self.fail:
            raise DeliveryError("provider down")
        self.sent.append((identity, otp_code))

    @property
    def last_code(self) -> str:
        return self.sent[-1][1]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def delivery():
    return FakeDelivery()


@pytest.fixture
def policy():
    return OTPPolicy(
        secret="test-otp-secret",
        expiry=timedelta(minutes=5),
        resend_cooldown=timedelta(seconds=60),
        max_attempts=5,
    )


@pytest.fixture
def service(db, policy, delivery, clock):
    return OTPService.build(db, policy, delivery=delivery, clock=clock)
