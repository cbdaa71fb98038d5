"""
One-time password registry.

Codes live in memory, keyed by (target, purpose). Issuing again for the same
pair replaces the previous code; a code is consumed by its first successful
verification and is useless after the TTL. Expired entries are removed by
the verify call that finds them, never by a background sweep.
"""

import asyncio
import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from fortas.config import get_settings
from fortas.kernel.identity.user_store import normalize_key
from fortas.kernel.models.base import utcnow
from fortas.logging_config import get_logger

logger = get_logger(__name__)


class OTPPurpose(str, Enum):
    """What a one-time password was issued for."""
    REGISTER = "register"
    LOGIN = "login"
    RESET = "reset"


@dataclass
class OTPEntry:
    """A live one-time password."""

    target: str
    code: str
    purpose: OTPPurpose
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


OTPDelivery = Callable[[str, str, OTPPurpose], None]


def log_delivery(target: str, code: str, purpose: OTPPurpose) -> None:
    """Simulated delivery: the code goes to the log instead of SMS/email."""
    logger.info(
        "OTP sent to %s (%s): %s",
        target,
        purpose.value,
        code,
        extra={"target": target, "purpose": purpose.value},
    )


class OTPRegistry:
    """
    In-memory store of one-time passwords.

    Usage:
        registry = OTPRegistry()
        code = await registry.issue("a@x.com", OTPPurpose.RESET)
        assert await registry.verify("a@x.com", code, OTPPurpose.RESET)
    """

    def __init__(
        self,
        ttl: Optional[timedelta] = None,
        code_length: Optional[int] = None,
        delivery: Optional[OTPDelivery] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        settings = get_settings()
        self.ttl = ttl or timedelta(seconds=settings.otp_ttl_seconds)
        self.code_length = code_length or settings.otp_length
        self.delivery = delivery or log_delivery
        self.clock = clock
        self._entries: Dict[Tuple[str, str], OTPEntry] = {}
        self._lock = asyncio.Lock()

    def _generate_code(self) -> str:
        return str(secrets.randbelow(10 ** self.code_length)).zfill(self.code_length)

    @staticmethod
    def _slot(target: str, purpose: OTPPurpose) -> Tuple[str, str]:
        return normalize_key(target), OTPPurpose(purpose).value

    async def issue(self, target: str, purpose: OTPPurpose) -> str:
        """
        Generate a code for (target, purpose), replacing any live one.

        Returns:
            The new code
        """
        purpose = OTPPurpose(purpose)
        slot = self._slot(target, purpose)
        code = self._generate_code()

        async with self._lock:
            replaced = slot in self._entries
            self._entries[slot] = OTPEntry(
                target=slot[0],
                code=code,
                purpose=purpose,
                expires_at=self.clock() + self.ttl,
            )

        if replaced:
            logger.debug("Previous OTP replaced", extra={"target": slot[0], "purpose": purpose.value})
        self.delivery(slot[0], code, purpose)
        return code

    async def verify(self, target: str, code: str, purpose: OTPPurpose) -> bool:
        """
        Check a code and consume it on success.

        Returns:
            True exactly once per issued code; False if missing, expired or wrong
        """
        try:
            slot = self._slot(target, purpose)
        except ValueError:
            return False

        async with self._lock:
            entry = self._entries.get(slot)
            if entry is None:
                return False

            if entry.is_expired(self.clock()):
                del self._entries[slot]
                logger.info("Expired OTP rejected", extra={"target": slot[0], "purpose": slot[1]})
                return False

            if not hmac.compare_digest(entry.code.encode(), str(code).strip().encode()):
                return False

            del self._entries[slot]

        logger.info("OTP verified", extra={"target": slot[0], "purpose": slot[1]})
        return True

    async def purge_expired(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        now = self.clock()
        async with self._lock:
            expired = [slot for slot, entry in self._entries.items() if entry.is_expired(now)]
            for slot in expired:
                del self._entries[slot]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)
