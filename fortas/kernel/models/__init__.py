"""
Kernel Data Models

Core SQLAlchemy models for the identity kernel.
"""

from fortas.kernel.models.base import Base, TimestampMixin, generate_uuid, utcnow, ensure_aware
from fortas.kernel.models.user import User, UserKey, KeyType, MembershipType, PreferredRole
from fortas.kernel.models.session import SessionPointer
from fortas.kernel.models.event_log import EventLog, EventType

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "generate_uuid",
    "utcnow",
    "ensure_aware",
    # User
    "User",
    "UserKey",
    "KeyType",
    "MembershipType",
    "PreferredRole",
    # Sessions
    "SessionPointer",
    # Event Log
    "EventLog",
    "EventType",
]
