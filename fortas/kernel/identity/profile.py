"""
Read-only user projection and the enumerated profile update.

UserProfile is the only view of a user that leaves the kernel; it never
carries the password hash.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, computed_field

from fortas.kernel.models.base import ensure_aware
from fortas.kernel.models.user import MembershipType, PreferredRole, User

MOBILE_PATTERN = r"^\+?[0-9][0-9\s\-().]{6,19}$"


class ActivityKind(str, Enum):
    """Counters tracked per user."""
    CHAT = "chat"
    FILE = "file"
    REPORT = "report"


ACTIVITY_COUNTERS = {
    ActivityKind.CHAT: "total_chats",
    ActivityKind.FILE: "files_uploaded",
    ActivityKind.REPORT: "reports_generated",
}


class ActivityStats(BaseModel):
    """Usage counters."""

    total_chats: int = 0
    files_uploaded: int = 0
    reports_generated: int = 0


class UserProfile(BaseModel):
    """Read-only user projection handed to the rest of the application."""

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    full_name: str
    email: str
    mobile: str
    is_authenticated: bool = True
    registration_date: datetime
    last_login_date: Optional[datetime] = None
    membership_type: MembershipType
    preferred_role: Optional[PreferredRole] = None
    profile_picture: Optional[str] = None
    activity_stats: ActivityStats

    @computed_field  # type: ignore[misc]
    @property
    def is_premium(self) -> bool:
        return self.membership_type == MembershipType.PREMIUM

    @classmethod
    def from_user(cls, user: User) -> "UserProfile":
        return cls(
            id=user.id,
            full_name=user.full_name,
            email=user.email,
            mobile=user.mobile,
            registration_date=ensure_aware(user.registration_date),
            last_login_date=ensure_aware(user.last_login_date) if user.last_login_date else None,
            membership_type=MembershipType(user.membership_type),
            preferred_role=PreferredRole(user.preferred_role) if user.preferred_role else None,
            profile_picture=user.profile_picture,
            activity_stats=ActivityStats(
                total_chats=user.total_chats or 0,
                files_uploaded=user.files_uploaded or 0,
                reports_generated=user.reports_generated or 0,
            ),
        )


class ProfileUpdate(BaseModel):
    """
    The fields a user may change about themselves.

    Only fields explicitly set are applied. Name, email and mobile cannot be
    cleared; preferred_role and profile_picture can be set to None.
    """

    model_config = ConfigDict(extra="forbid")

    full_name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    mobile: Optional[str] = Field(None, pattern=MOBILE_PATTERN)
    preferred_role: Optional[PreferredRole] = None
    profile_picture: Optional[str] = None

    def changes(self) -> dict:
        """Fields to apply, with required fields that were sent as None dropped."""
        data = self.model_dump(exclude_unset=True)
        for required in ("full_name", "email", "mobile"):
            if required in data and data[required] is None:
                del data[required]
        return data

    def apply_to(self, user: User) -> dict:
        """Merge into a stored user. Returns the applied changes."""
        changes = self.changes()
        for name, value in changes.items():
            if name == "full_name":
                value = value.strip()
            elif isinstance(value, Enum):
                value = value.value
            setattr(user, name, value)
        return changes
