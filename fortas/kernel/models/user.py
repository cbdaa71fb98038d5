"""
User model for identity management.

One canonical `users` row per account. Email and mobile are alternate keys
kept in `user_keys`, which maps each key to the owning user id.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fortas.kernel.models.base import Base, TimestampMixin, generate_uuid, utcnow


class MembershipType(str, Enum):
    """Entitlement tiers."""
    FREE = "Free"
    PREMIUM = "Premium"


class PreferredRole(str, Enum):
    """Assistant persona a user may prefer."""
    OPERATIONS = "Operations"
    PROJECT_MANAGEMENT = "Project Management"
    SALES_MARKETING = "Sales & Marketing"
    PROCUREMENT = "Procurement"
    ERECTION_COMMISSIONING = "Erection & Commissioning"
    ENGINEERING_DESIGN = "Engineering & Design"
    GENERAL_AI = "General AI"


class KeyType(str, Enum):
    """Kinds of alternate lookup key."""
    EMAIL = "email"
    MOBILE = "mobile"


class User(Base, TimestampMixin):
    """User account model."""

    __tablename__ = "users"
    # Timestamps are read back right after flush; the record is used detached
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    full_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    mobile: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
    )
    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    registration_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    last_login_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    membership_type: Mapped[MembershipType] = mapped_column(
        String(20),
        default=MembershipType.FREE,
        nullable=False,
    )
    preferred_role: Mapped[Optional[PreferredRole]] = mapped_column(
        String(50),
        nullable=True,
    )
    profile_picture: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    # Activity stats
    total_chats: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    files_uploaded: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    reports_generated: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    keys: Mapped[List["UserKey"]] = relationship(
        "UserKey",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def is_premium(self) -> bool:
        membership = self.membership_type
        return (membership.value if hasattr(membership, "value") else membership) == MembershipType.PREMIUM.value

    def __repr__(self) -> str:
        return f"<User {self.email}>"


class UserKey(Base):
    """Secondary index: alternate key -> owning user id."""

    __tablename__ = "user_keys"

    key: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
    )
    key_type: Mapped[KeyType] = mapped_column(
        String(20),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user: Mapped["User"] = relationship("User", back_populates="keys")

    def __repr__(self) -> str:
        return f"<UserKey {self.key_type}:{self.key} -> {self.user_id}>"
