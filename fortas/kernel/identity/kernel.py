"""
Wiring for the identity kernel.

IdentityKernel owns one Database and every store built on it. Each instance
is independent, so tests and apps can run several side by side.
"""

from datetime import datetime, timedelta
from typing import Callable, Optional

from fortas.config import Settings, get_settings
from fortas.database import Database
from fortas.kernel.identity.identity_service import IdentityService
from fortas.kernel.identity.otp import OTPDelivery, OTPRegistry
from fortas.kernel.identity.password import PasswordHasher
from fortas.kernel.identity.sessions import SessionPointerStore, SessionRegistry
from fortas.kernel.identity.user_store import UserStore
from fortas.kernel.models.base import utcnow
from fortas.logging_config import get_logger

logger = get_logger(__name__)


class IdentityKernel:
    """
    Usage:
        kernel = IdentityKernel()
        await kernel.init()
        outcome = await kernel.identity.register("Asha", "a@x.com", "9990001111", "pw1")
        await kernel.close()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        database: Optional[Database] = None,
        clock: Callable[[], datetime] = utcnow,
        otp_delivery: Optional[OTPDelivery] = None,
        hasher: Optional[PasswordHasher] = None,
    ):
        self.settings = settings or get_settings()
        self.database = database or Database(self.settings.database_url, echo=self.settings.debug)
        self.clock = clock
        self._otp_delivery = otp_delivery
        self._hasher = hasher
        self._identity: Optional[IdentityService] = None

    @property
    def identity(self) -> IdentityService:
        if self._identity is None:
            raise RuntimeError("IdentityKernel is not initialized; call init() first")
        return self._identity

    async def init(self) -> None:
        """Open the database and build the stores."""
        await self.database.init()
        settings = self.settings
        session_maker = self.database.session_maker

        self._identity = IdentityService(
            users=UserStore(session_maker),
            otps=OTPRegistry(
                ttl=timedelta(seconds=settings.otp_ttl_seconds),
                code_length=settings.otp_length,
                delivery=self._otp_delivery,
                clock=self.clock,
            ),
            sessions=SessionRegistry(
                ttl=timedelta(hours=settings.session_ttl_hours),
                remember_me_ttl=timedelta(days=settings.remember_me_ttl_days),
                clock=self.clock,
            ),
            pointers=SessionPointerStore(session_maker),
            hasher=self._hasher or PasswordHasher(
                pepper=settings.password_pepper,
                rounds=settings.bcrypt_rounds,
            ),
            session_maker=session_maker,
            default_client_id=settings.default_client_id,
            clock=self.clock,
        )
        logger.info("Identity kernel ready")

    async def close(self) -> None:
        """Drop in-memory state and close the database."""
        self._identity = None
        await self.database.close()
