"""
Pydantic schemas for API request/response validation.
"""

from fortas.schemas.common import SuccessResponse, HealthResponse
from fortas.schemas.auth import (
    UserCreate,
    UserLogin,
    SessionResponse,
    OTPRequest,
    OTPConfirm,
    OTPResponse,
    PasswordResetRequest,
    ActivityRequest,
    SessionStatus,
)

__all__ = [
    "SuccessResponse",
    "HealthResponse",
    "UserCreate",
    "UserLogin",
    "SessionResponse",
    "OTPRequest",
    "OTPConfirm",
    "OTPResponse",
    "PasswordResetRequest",
    "ActivityRequest",
    "SessionStatus",
]
