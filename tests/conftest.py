"""
Pytest fixtures for FORTAS identity tests.
"""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, List, Tuple

import pytest
import pytest_asyncio

from fortas.config import Settings
from fortas.kernel.identity.identity_service import IdentityService
from fortas.kernel.identity.kernel import IdentityKernel
from fortas.kernel.identity.otp import OTPPurpose
from fortas.kernel.identity.profile import UserProfile


class FakeClock:
    """Manually advanced clock for expiry tests."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class DeliveryRecorder:
    """Captures simulated OTP deliveries."""

    def __init__(self):
        self.sent: List[Tuple[str, str, OTPPurpose]] = []

    def __call__(self, target: str, code: str, purpose: OTPPurpose) -> None:
        self.sent.append((target, code, purpose))

    @property
    def last_code(self) -> str:
        return self.sent[-1][1]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def deliveries() -> DeliveryRecorder:
    return DeliveryRecorder()


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway file-backed SQLite database."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'fortas_test.db'}",
        password_pepper="test-pepper-for-testing-only",
        bcrypt_rounds=4,  # bcrypt minimum; keeps tests fast
        environment="test",
    )


@pytest_asyncio.fixture
async def kernel(test_settings, clock, deliveries) -> AsyncGenerator[IdentityKernel, None]:
    """An initialized identity kernel on a fresh database."""
    kernel = IdentityKernel(test_settings, clock=clock, otp_delivery=deliveries)
    await kernel.init()
    yield kernel
    await kernel.close()


@pytest.fixture
def identity(kernel: IdentityKernel) -> IdentityService:
    return kernel.identity


@pytest_asyncio.fixture
async def asha(identity: IdentityService) -> UserProfile:
    """A registered Free user."""
    outcome = await identity.register("Asha", "a@x.com", "9990001111", "pw1")
    assert outcome.ok, outcome.error
    return outcome.value
