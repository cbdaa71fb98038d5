"""
Identity Core - Authentication, sessions and user management.
"""

from fortas.kernel.identity.errors import (
    IdentityError,
    DuplicateIdentityError,
    InvalidCredentialsError,
    UserNotFoundError,
    InvalidInputError,
    InvalidOTPError,
    StorageFailureError,
    Outcome,
)
from fortas.kernel.identity.password import PasswordHasher
from fortas.kernel.identity.user_store import UserStore
from fortas.kernel.identity.otp import OTPPurpose, OTPRegistry
from fortas.kernel.identity.sessions import SessionRegistry, SessionPointerStore
from fortas.kernel.identity.profile import ActivityKind, ProfileUpdate, UserProfile
from fortas.kernel.identity.identity_service import (
    AuthenticatedSession,
    IdentityService,
    OTPDispatch,
)
from fortas.kernel.identity.kernel import IdentityKernel

__all__ = [
    "IdentityError",
    "DuplicateIdentityError",
    "InvalidCredentialsError",
    "UserNotFoundError",
    "InvalidOTPError",
    "InvalidInputError",
    "StorageFailureError",
    "Outcome",
    "PasswordHasher",
    "UserStore",
    "OTPPurpose",
    "OTPRegistry",
    "SessionRegistry",
    "SessionPointerStore",
    "ActivityKind",
    "ProfileUpdate",
    "UserProfile",
    "AuthenticatedSession",
    "IdentityService",
    "OTPDispatch",
    "IdentityKernel",
]
