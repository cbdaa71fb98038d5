"""
Authentication schemas.
"""

from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from fortas.kernel.identity.otp import OTPPurpose
from fortas.kernel.identity.profile import MOBILE_PATTERN, ActivityKind, UserProfile


class UserCreate(BaseModel):
    """User registration request."""

    full_name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    mobile: str = Field(..., pattern=MOBILE_PATTERN)
    password: str = Field(..., min_length=1, max_length=128)
    remember_me: bool = False


class UserLogin(BaseModel):
    """User login request. The identifier may be an email or a mobile number."""

    email_or_mobile: str = Field(..., min_length=1, max_length=255)
    password: str
    remember_me: bool = False


class SessionResponse(BaseModel):
    """Authentication token response."""

    session_token: str
    token_type: str = "bearer"
    user: UserProfile


class OTPRequest(BaseModel):
    """Ask for a one-time password."""

    target: str = Field(..., min_length=1, max_length=255)
    purpose: OTPPurpose = OTPPurpose.REGISTER


class OTPConfirm(BaseModel):
    """Submit a one-time password."""

    target: str = Field(..., min_length=1, max_length=255)
    otp: str = Field(..., min_length=1, max_length=12)
    purpose: OTPPurpose = OTPPurpose.REGISTER


class OTPResponse(BaseModel):
    """Result of an OTP request. `otp` is only filled in demo mode."""

    success: bool
    message: str
    otp_sent: bool = True
    otp: Optional[str] = None


class PasswordResetRequest(BaseModel):
    """Password reset with a `reset` OTP."""

    email: str = Field(..., min_length=1, max_length=255)
    otp: str = Field(..., min_length=1, max_length=12)
    new_password: str = Field(..., min_length=1, max_length=128)


class ActivityRequest(BaseModel):
    """Usage counter increment."""

    kind: ActivityKind


class SessionStatus(BaseModel):
    """Whether a client context has a live session."""

    valid: bool
    user: Optional[UserProfile] = None
