"""
Identity service: the single entry point for identity and session operations.

Composes the password hasher, user store, OTP registry and session registry.
Business failures (duplicate identity, bad credentials, unknown user, bad
OTP, malformed input, storage outage) come back as failed Outcomes rather than exceptions.
"""

import asyncio
import functools
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fortas.kernel.events.event_store import AuditEntry, EventStore
from fortas.kernel.identity.errors import (
    DuplicateIdentityError,
    IdentityError,
    InvalidCredentialsError,
    InvalidInputError,
    InvalidOTPError,
    Outcome,
    StorageFailureError,
    UserNotFoundError,
)
from fortas.kernel.identity.otp import OTPPurpose, OTPRegistry
from fortas.kernel.identity.password import PasswordHasher
from fortas.kernel.identity.profile import (
    ACTIVITY_COUNTERS,
    ActivityKind,
    ProfileUpdate,
    UserProfile,
)
from fortas.kernel.identity.sessions import SessionPointerStore, SessionRegistry
from fortas.kernel.identity.user_store import UserStore
from fortas.kernel.models.base import utcnow
from fortas.kernel.models.event_log import EventType
from fortas.kernel.models.user import MembershipType, User
from fortas.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class AuthenticatedSession:
    """What a successful login hands back."""

    user: UserProfile
    token: str


@dataclass(frozen=True)
class OTPDispatch:
    """Result of requesting an OTP. `code` is populated for demo delivery only."""

    success: bool
    message: str
    code: Optional[str] = None


def _field_errors(error: ValidationError) -> list:
    return [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in error.errors()]


def returns_outcome(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Outcome]]:
    """Turn IdentityErrors raised inside an operation into failed Outcomes."""

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Outcome:
        try:
            return Outcome.success(await func(*args, **kwargs))
        except IdentityError as e:
            logger.info(
                "%s failed: %s",
                func.__name__,
                e.code,
                extra={"operation": func.__name__, "error_code": e.code},
            )
            return Outcome.failure(e)

    return wrapper


class IdentityService:
    """
    Service for user identity operations.

    Handles registration, login/logout, OTPs, password reset, profile
    updates, entitlement and activity tracking.
    """

    def __init__(
        self,
        users: UserStore,
        otps: OTPRegistry,
        sessions: SessionRegistry,
        pointers: SessionPointerStore,
        hasher: PasswordHasher,
        session_maker: async_sessionmaker[AsyncSession],
        default_client_id: str = "default",
        clock: Callable[[], datetime] = utcnow,
    ):
        self.users = users
        self.otps = otps
        self.sessions = sessions
        self.pointers = pointers
        self.hasher = hasher
        self._session_maker = session_maker
        self.default_client_id = default_client_id
        self.clock = clock
        self._dummy_hash: Optional[str] = None

    # ------------------------------------------------------------------ helpers

    async def _hash(self, secret: str) -> str:
        return await asyncio.to_thread(self.hasher.hash, secret)

    async def _verify(self, secret: str, digest: str) -> bool:
        return await asyncio.to_thread(self.hasher.verify, secret, digest)

    async def _burn_verify(self, secret: str) -> None:
        """Spend a verify's worth of time so unknown users look like bad passwords."""
        if self._dummy_hash is None:
            self._dummy_hash = await self._hash(uuid.uuid4().hex)
        await self._verify(secret, self._dummy_hash)

    async def _audit(
        self,
        event_type: EventType,
        user_id: Optional[uuid.UUID],
        payload: Optional[dict] = None,
        client_id: Optional[str] = None,
    ) -> None:
        """Write an event that is not tied to a user mutation."""
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    await EventStore(session).log(
                        event_type=event_type,
                        entity_type="user",
                        entity_id=user_id,
                        user_id=user_id,
                        payload=payload,
                        client_id=client_id,
                    )
        except SQLAlchemyError as e:
            raise StorageFailureError(details=str(e)) from e

    def _client(self, client_id: Optional[str]) -> str:
        return client_id or self.default_client_id

    # --------------------------------------------------------------- operations

    @returns_outcome
    async def register(
        self,
        full_name: str,
        email: str,
        mobile: str,
        password: str,
    ) -> UserProfile:
        """
        Register a new Free account.

        No session is created; callers log in afterwards.

        Returns:
            Outcome with the new user's projection, or DuplicateIdentity
        """
        if await self.users.find_by_key(email) or await self.users.find_by_key(mobile):
            raise DuplicateIdentityError()

        now = self.clock()
        user = User(
            id=uuid.uuid4(),
            full_name=full_name.strip(),
            email=email,
            mobile=mobile,
            password_hash=await self._hash(password),
            registration_date=now,
            last_login_date=now,
            membership_type=MembershipType.FREE.value,
            total_chats=0,
            files_uploaded=0,
            reports_generated=0,
        )
        user = await self.users.insert(
            user,
            audit=AuditEntry(
                event_type=EventType.USER_REGISTERED,
                payload={"email": email.strip().lower()},
            ),
        )
        logger.info("User registered", extra={"user_id": str(user.id)})
        return UserProfile.from_user(user)

    @returns_outcome
    async def login(
        self,
        identifier: str,
        password: str,
        remember_me: bool = False,
        client_id: Optional[str] = None,
        remember_client: bool = True,
    ) -> AuthenticatedSession:
        """
        Authenticate by email or mobile and open a session.

        With remember_client the token also becomes the client's current
        session. Unknown users and wrong passwords fail identically with
        InvalidCredentials.
        """
        client = self._client(client_id)
        user = await self.users.find_by_key(identifier)

        if user is None:
            await self._burn_verify(password)
            valid = False
        else:
            valid = await self._verify(password, user.password_hash)

        if not valid:
            await self._audit(
                EventType.USER_LOGIN_FAILED,
                user_id=None,
                payload={"reason": "invalid_credentials"},
                client_id=client,
            )
            raise InvalidCredentialsError()

        new_hash = None
        if self.hasher.needs_rehash(user.password_hash):
            new_hash = await self._hash(password)

        def mark_login(record: User) -> None:
            record.last_login_date = self.clock()
            if new_hash is not None:
                record.password_hash = new_hash

        user = await self.users.update(
            user.id,
            mark_login,
            audit=AuditEntry(
                event_type=EventType.USER_LOGGED_IN,
                payload={"method": "password", "remember_me": remember_me},
                client_id=client,
            ),
        )

        token = self.sessions.create(user.id, remember_me=remember_me)
        if remember_client:
            await self.pointers.remember(client, token)
        logger.info("User logged in", extra={"user_id": str(user.id)})
        return AuthenticatedSession(user=UserProfile.from_user(user), token=token)

    @returns_outcome
    async def logout(self, client_id: Optional[str] = None) -> None:
        """Revoke the client's remembered session and forget the pointer."""
        client = self._client(client_id)
        token = await self.pointers.current(client)
        if token is None:
            return None

        user_id = self.sessions.validate(token)
        self.sessions.revoke(token)
        await self.pointers.forget(client)
        if user_id is not None:
            await self._audit(EventType.USER_LOGGED_OUT, user_id=user_id, client_id=client)
        return None

    @returns_outcome
    async def end_session(self, token: Optional[str], client_id: Optional[str] = None) -> None:
        """
        Revoke the presented token.

        The client's pointer is cleared only when it names this token.
        Fails with InvalidCredentials for an unknown or expired token.
        """
        user_id = self.sessions.validate(token)
        if user_id is None:
            raise InvalidCredentialsError("Invalid or expired session")

        self.sessions.revoke(token)
        if client_id is not None and await self.pointers.current(client_id) == token:
            await self.pointers.forget(client_id)
        await self._audit(EventType.USER_LOGGED_OUT, user_id=user_id, client_id=client_id)
        return None

    @returns_outcome
    async def request_otp(self, target: str, purpose: Union[OTPPurpose, str]) -> OTPDispatch:
        """
        Issue an OTP for (target, purpose).

        Always succeeds and does not check that the target belongs to a user;
        callers that care must check existence themselves.
        """
        try:
            purpose = OTPPurpose(purpose)
        except ValueError as e:
            raise InvalidInputError(f"Unknown OTP purpose: {purpose}") from e
        code = await self.otps.issue(target, purpose)
        return OTPDispatch(success=True, message=f"OTP sent to {target.strip()}", code=code)

    @returns_outcome
    async def confirm_otp(self, target: str, code: str, purpose: Union[OTPPurpose, str]) -> bool:
        """Verify and consume an OTP. Fails with InvalidOTP, also for an unknown purpose."""
        if not await self.otps.verify(target, code, purpose):
            raise InvalidOTPError()
        return True

    @returns_outcome
    async def reset_password(self, email: str, otp: str, new_password: str) -> None:
        """
        Replace a user's password after a `reset` OTP check.

        Every open session of the user is revoked.
        """
        user = await self.users.find_by_key(email)
        if user is None:
            raise UserNotFoundError()

        if not await self.otps.verify(email, otp, OTPPurpose.RESET):
            raise InvalidOTPError()

        new_hash = await self._hash(new_password)

        def set_password(record: User) -> None:
            record.password_hash = new_hash

        await self.users.update(
            user.id,
            set_password,
            audit=AuditEntry(event_type=EventType.USER_PASSWORD_RESET),
        )
        self.sessions.revoke_user(user.id)
        logger.info("Password reset", extra={"user_id": str(user.id)})
        return None

    @returns_outcome
    async def update_profile(
        self,
        user_id: Union[uuid.UUID, str],
        changes: Union[ProfileUpdate, dict],
    ) -> UserProfile:
        """Merge the enumerated profile fields into a user."""
        if not isinstance(changes, ProfileUpdate):
            try:
                changes = ProfileUpdate(**changes)
            except ValidationError as e:
                raise InvalidInputError(
                    "Invalid profile update",
                    details=_field_errors(e),
                ) from e

        user = await self.users.update(
            user_id,
            changes.apply_to,
            audit=AuditEntry(
                event_type=EventType.USER_UPDATED,
                payload={"fields": sorted(changes.changes())},
            ),
        )
        return UserProfile.from_user(user)

    @returns_outcome
    async def upgrade_to_premium(self, user_id: Union[uuid.UUID, str]) -> UserProfile:
        """Set membership to Premium. Upgrading a Premium user changes nothing."""
        upgraded = []

        def upgrade(record: User) -> None:
            if not record.is_premium:
                record.membership_type = MembershipType.PREMIUM.value
                upgraded.append(True)

        user = await self.users.update(
            user_id,
            upgrade,
            audit=AuditEntry(event_type=EventType.USER_UPGRADED),
        )
        if upgraded:
            logger.info("User upgraded to Premium", extra={"user_id": str(user.id)})
        return UserProfile.from_user(user)

    async def record_activity(
        self,
        user_id: Union[uuid.UUID, str],
        kind: Union[ActivityKind, str],
    ) -> None:
        """
        Increment a usage counter.

        Best effort: unknown users, bad kinds and storage errors are logged
        and dropped.
        """
        try:
            counter = ACTIVITY_COUNTERS[ActivityKind(kind)]

            def increment(record: User) -> None:
                setattr(record, counter, (getattr(record, counter) or 0) + 1)

            await self.users.update(user_id, increment)
        except (IdentityError, ValueError) as e:
            logger.debug(
                "Activity not recorded",
                extra={"user_id": str(user_id), "kind": str(kind), "reason": type(e).__name__},
            )

    # ------------------------------------------------------------ session reads

    @returns_outcome
    async def authenticate_token(self, token: Optional[str]) -> UserProfile:
        """Resolve a bearer token to its user. Fails with InvalidCredentials."""
        user_id = self.sessions.validate(token)
        if user_id is None:
            raise InvalidCredentialsError("Invalid or expired session")
        user = await self.users.find_by_id(user_id)
        if user is None:
            raise InvalidCredentialsError("Invalid or expired session")
        return UserProfile.from_user(user)

    @returns_outcome
    async def current_user(self, client_id: Optional[str] = None) -> Optional[UserProfile]:
        """
        The user behind the client's remembered session, or None.

        A pointer to a dead session is cleared.
        """
        client = self._client(client_id)
        token = await self.pointers.current(client)
        if token is None:
            return None

        user_id = self.sessions.validate(token)
        if user_id is None:
            await self.pointers.forget(client)
            return None

        user = await self.users.find_by_id(user_id)
        return UserProfile.from_user(user) if user else None

    async def is_session_valid(self, client_id: Optional[str] = None) -> bool:
        """True while the client's remembered token is present and unexpired."""
        try:
            token = await self.pointers.current(self._client(client_id))
        except StorageFailureError:
            logger.warning("Session pointer unavailable", exc_info=True)
            return False
        return self.sessions.validate(token) is not None

    @returns_outcome
    async def find_user(self, user_id: Union[uuid.UUID, str]) -> Optional[UserProfile]:
        """Read-only lookup by id."""
        user = await self.users.find_by_id(user_id)
        return UserProfile.from_user(user) if user else None
