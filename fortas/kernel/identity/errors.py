"""
Identity error kinds.

Stores raise these; IdentityService turns them into failed Outcomes and the
HTTP layer maps status_code onto the response.
"""

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar


class IdentityError(Exception):
    """
    Base exception for the identity kernel.
    """
    def __init__(self, message: str, code: str = "IDENTITY_ERROR", status_code: int = 500, details: Optional[Any] = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class DuplicateIdentityError(IdentityError):
    """
    Raised when an email or mobile already belongs to an account.
    """
    def __init__(self, message: str = "User already exists with this email or mobile number", details: Optional[Any] = None):
        super().__init__(message, code="DUPLICATE_IDENTITY", status_code=409, details=details)


class InvalidCredentialsError(IdentityError):
    """
    Raised when login fails. Deliberately says nothing about whether the user exists.
    """
    def __init__(self, message: str = "Invalid credentials", details: Optional[Any] = None):
        super().__init__(message, code="INVALID_CREDENTIALS", status_code=401, details=details)


class UserNotFoundError(IdentityError):
    """
    Raised when a profile or reset operation targets an unknown user.
    """
    def __init__(self, message: str = "User not found", details: Optional[Any] = None):
        super().__init__(message, code="NOT_FOUND", status_code=404, details=details)


class InvalidOTPError(IdentityError):
    """
    Raised when a one-time password is wrong, expired, or for another purpose.
    """
    def __init__(self, message: str = "Invalid or expired OTP", details: Optional[Any] = None):
        super().__init__(message, code="INVALID_OTP", status_code=400, details=details)


class InvalidInputError(IdentityError):
    """
    Raised when an operation is called with malformed input (bad email, unknown enum value).
    """
    def __init__(self, message: str = "Invalid input", details: Optional[Any] = None):
        super().__init__(message, code="INVALID_INPUT", status_code=422, details=details)


class StorageFailureError(IdentityError):
    """
    Raised when the persistence layer is unavailable. Not retried.
    """
    def __init__(self, message: str = "Storage unavailable", details: Optional[Any] = None):
        super().__init__(message, code="STORAGE_FAILURE", status_code=503, details=details)


T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """
    Result of an IdentityService call: a value, or the error that stopped it.

    Usage:
        outcome = await identity.login("a@x.com", "pw", remember_me=False)
        if outcome.ok:
            token = outcome.value.token
        else:
            print(outcome.error.code)
    """

    value: Optional[T] = None
    error: Optional[IdentityError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: IdentityError) -> "Outcome[T]":
        return cls(error=error)
