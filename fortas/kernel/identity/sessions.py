"""
Session token registry and the persisted current-session pointer.

Tokens are opaque random strings mapped in memory to a user id and an
expiry. A token is valid only while present AND unexpired; the expiry is
checked on every read and an expired token is evicted by the read that
finds it.

Each client context remembers one active token in the `session_pointers`
table, so "who is logged in here" survives a restart even though the
tokens themselves do not.
"""

import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fortas.config import get_settings
from fortas.kernel.identity.errors import StorageFailureError
from fortas.kernel.models.base import utcnow
from fortas.kernel.models.session import SessionPointer
from fortas.logging_config import get_logger

logger = get_logger(__name__)

TOKEN_BYTES = 32


@dataclass
class SessionEntry:
    """A live session."""

    user_id: uuid.UUID
    expires_at: datetime
    remember_me: bool = False


class SessionRegistry:
    """
    In-memory bearer tokens with lazy expiry.

    Token states: absent -> active -> expired/revoked -> absent.
    """

    def __init__(
        self,
        ttl: Optional[timedelta] = None,
        remember_me_ttl: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        settings = get_settings()
        self.ttl = ttl or timedelta(hours=settings.session_ttl_hours)
        self.remember_me_ttl = remember_me_ttl or timedelta(days=settings.remember_me_ttl_days)
        self.clock = clock
        self._sessions: Dict[str, SessionEntry] = {}

    def create(self, user_id: uuid.UUID, remember_me: bool = False) -> str:
        """Create a session and return its token."""
        token = secrets.token_urlsafe(TOKEN_BYTES)
        ttl = self.remember_me_ttl if remember_me else self.ttl
        self._sessions[token] = SessionEntry(
            user_id=user_id,
            expires_at=self.clock() + ttl,
            remember_me=remember_me,
        )
        logger.info(
            "Session created",
            extra={"user_id": str(user_id), "remember_me": remember_me},
        )
        return token

    def validate(self, token: Optional[str]) -> Optional[uuid.UUID]:
        """Return the token's user id, or None if unknown or expired."""
        if not token:
            return None
        entry = self._sessions.get(token)
        if entry is None:
            return None
        if self.clock() >= entry.expires_at:
            self._sessions.pop(token, None)
            logger.info("Expired session evicted", extra={"user_id": str(entry.user_id)})
            return None
        return entry.user_id

    def revoke(self, token: Optional[str]) -> None:
        """Remove a token. Unknown tokens are ignored."""
        if token and self._sessions.pop(token, None) is not None:
            logger.info("Session revoked")

    def revoke_user(self, user_id: uuid.UUID) -> int:
        """Remove every session belonging to a user."""
        tokens: List[str] = [t for t, e in self._sessions.items() if e.user_id == user_id]
        for token in tokens:
            del self._sessions[token]
        if tokens:
            logger.info("User sessions revoked", extra={"user_id": str(user_id), "count": len(tokens)})
        return len(tokens)

    def __len__(self) -> int:
        return len(self._sessions)


class SessionPointerStore:
    """Persisted client_id -> active token pointer."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def remember(self, client_id: str, token: str) -> None:
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    pointer = await session.get(SessionPointer, client_id)
                    if pointer is None:
                        session.add(SessionPointer(client_id=client_id, token=token))
                    else:
                        pointer.token = token
        except SQLAlchemyError as e:
            raise StorageFailureError(details=str(e)) from e

    async def current(self, client_id: str) -> Optional[str]:
        try:
            async with self._session_maker() as session:
                pointer = await session.get(SessionPointer, client_id)
                return pointer.token if pointer else None
        except SQLAlchemyError as e:
            raise StorageFailureError(details=str(e)) from e

    async def forget(self, client_id: str) -> None:
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    await session.execute(
                        delete(SessionPointer).where(SessionPointer.client_id == client_id)
                    )
        except SQLAlchemyError as e:
            raise StorageFailureError(details=str(e)) from e
