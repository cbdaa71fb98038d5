"""
Identity Kernel

The foundational identity and session layer:
- User Store (canonical records with email/mobile alternate keys)
- Credential hashing
- One-time passwords and session tokens
- Immutable Event Log (identity mutations logged with their transaction)

Invariants:
- Every alternate key resolves to exactly one canonical user id
- Session and OTP expiry is enforced on every read
"""

from fortas.kernel.models import (
    User,
    UserKey,
    MembershipType,
    PreferredRole,
    EventLog,
    EventType,
)

__all__ = [
    "User",
    "UserKey",
    "MembershipType",
    "PreferredRole",
    "EventLog",
    "EventType",
]
