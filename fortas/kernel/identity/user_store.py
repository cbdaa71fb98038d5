"""
Durable user store with email/mobile alternate keys.

Each account is one canonical `users` row. The `user_keys` table maps every
alternate key to the owning id; its primary key on `key` is what makes two
racing registrations for the same email impossible. Inserts and updates
rewrite the record and its keys in a single transaction, so a key never
resolves to a stale or half-written account.
"""

import asyncio
import re
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Dict, Optional, Union

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fortas.kernel.events.event_store import AuditEntry, EventStore
from fortas.kernel.identity.errors import (
    DuplicateIdentityError,
    StorageFailureError,
    UserNotFoundError,
)
from fortas.kernel.models.user import KeyType, User, UserKey
from fortas.logging_config import get_logger

logger = get_logger(__name__)

_MOBILE_NOISE = re.compile(r"[\s\-().]")

UserId = Union[uuid.UUID, str]


def normalize_email(email: str) -> str:
    return email.strip().lower()


def normalize_mobile(mobile: str) -> str:
    return _MOBILE_NOISE.sub("", mobile.strip())


def normalize_key(key: str) -> str:
    """Normalize an identifier that may be either an email or a mobile."""
    if "@" in key:
        return normalize_email(key)
    return normalize_mobile(key)


def _coerce_id(user_id: UserId) -> Optional[uuid.UUID]:
    if isinstance(user_id, uuid.UUID):
        return user_id
    try:
        return uuid.UUID(str(user_id))
    except ValueError:
        return None


def _key_type(key: UserKey) -> str:
    return key.key_type.value if hasattr(key.key_type, "value") else key.key_type


@dataclass
class _UserLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class UserStore:
    """
    Repository for User records.

    Usage:
        store = UserStore(database.session_maker)
        user = await store.insert(User(full_name="Asha", email="a@x.com", ...))
        same = await store.find_by_key("a@x.com")
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker
        self._locks: Dict[uuid.UUID, _UserLock] = {}

    @asynccontextmanager
    async def _locked(self, user_id: uuid.UUID) -> AsyncIterator[None]:
        """Serialize updates per user. The entry is dropped once nobody holds or awaits it."""
        entry = self._locks.get(user_id)
        if entry is None:
            entry = self._locks[user_id] = _UserLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[user_id]

    async def find_by_key(self, key: str) -> Optional[User]:
        """Look a user up by email or mobile."""
        normalized = normalize_key(key)
        if not normalized:
            return None
        query = select(User).join(UserKey, UserKey.user_id == User.id).where(UserKey.key == normalized)
        try:
            async with self._session_maker() as session:
                result = await session.execute(query)
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageFailureError(details=str(e)) from e

    async def find_by_id(self, user_id: UserId) -> Optional[User]:
        """Get a user by ID."""
        uid = _coerce_id(user_id)
        if uid is None:
            return None
        try:
            async with self._session_maker() as session:
                return await session.get(User, uid)
        except SQLAlchemyError as e:
            raise StorageFailureError(details=str(e)) from e

    async def count(self) -> int:
        """Number of canonical user records."""
        try:
            async with self._session_maker() as session:
                result = await session.execute(select(func.count(User.id)))
                return result.scalar_one()
        except SQLAlchemyError as e:
            raise StorageFailureError(details=str(e)) from e

    async def insert(self, user: User, audit: Optional[AuditEntry] = None) -> User:
        """
        Persist a new user under both of its alternate keys.

        Raises:
            DuplicateIdentityError: If the email or mobile is already registered
            StorageFailureError: If the database is unavailable
        """
        user.email = normalize_email(user.email)
        user.mobile = normalize_mobile(user.mobile)
        if user.id is None:
            user.id = uuid.uuid4()

        try:
            async with self._session_maker() as session:
                async with session.begin():
                    taken = await session.execute(
                        select(UserKey.key).where(UserKey.key.in_([user.email, user.mobile]))
                    )
                    if taken.first() is not None:
                        raise DuplicateIdentityError()

                    user.keys = [
                        UserKey(key=user.email, key_type=KeyType.EMAIL.value),
                        UserKey(key=user.mobile, key_type=KeyType.MOBILE.value),
                    ]
                    session.add(user)
                    if audit is not None:
                        await EventStore(session).log_entry(audit, entity_id=user.id, user_id=user.id)
        except IntegrityError as e:
            # Lost a race with a concurrent registration for the same key
            raise DuplicateIdentityError() from e
        except SQLAlchemyError as e:
            raise StorageFailureError(details=str(e)) from e

        logger.info("User stored", extra={"user_id": str(user.id)})
        return user

    async def update(
        self,
        user_id: UserId,
        mutator: Callable[[User], None],
        audit: Optional[AuditEntry] = None,
    ) -> User:
        """
        Apply `mutator` to a stored user and re-index its alternate keys.

        Updates for the same user are serialized. If the mutation changes the
        email or mobile, the old key is dropped and the new one added in the
        same transaction.

        Raises:
            UserNotFoundError: If no user has this id
            DuplicateIdentityError: If a changed key belongs to another user
            StorageFailureError: If the database is unavailable
        """
        uid = _coerce_id(user_id)
        if uid is None:
            raise UserNotFoundError()

        async with self._locked(uid):
            try:
                async with self._session_maker() as session:
                    async with session.begin():
                        user = await session.get(User, uid)
                        if user is None:
                            raise UserNotFoundError()

                        mutator(user)
                        await self._reindex(session, user)
                        if audit is not None:
                            await EventStore(session).log_entry(audit, entity_id=user.id, user_id=user.id)
            except IntegrityError as e:
                raise DuplicateIdentityError() from e
            except SQLAlchemyError as e:
                raise StorageFailureError(details=str(e)) from e

        return user

    async def _reindex(self, session: AsyncSession, user: User) -> None:
        user.email = normalize_email(user.email)
        user.mobile = normalize_mobile(user.mobile)
        desired = {
            KeyType.EMAIL.value: user.email,
            KeyType.MOBILE.value: user.mobile,
        }
        current = {_key_type(k): k for k in user.keys}

        stale = [k for kind, k in current.items() if k.key != desired[kind]]
        if not stale:
            return

        for old in stale:
            new_key = desired[_key_type(old)]
            owner = await session.get(UserKey, new_key)
            if owner is not None and owner.user_id != user.id:
                raise DuplicateIdentityError("This email or mobile number is already in use")
            user.keys.remove(old)

        # Old rows must be gone before their replacements are inserted
        await session.flush()

        for old in stale:
            kind = _key_type(old)
            user.keys.append(UserKey(key=desired[kind], key_type=kind))

        logger.info(
            "User keys re-indexed",
            extra={"user_id": str(user.id), "changed": sorted(_key_type(k) for k in stale)},
        )
