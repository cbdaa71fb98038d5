"""
Audit infrastructure.

Provides append-only logging of identity events.
"""

from fortas.kernel.events.event_store import AuditEntry, EventStore

__all__ = [
    "AuditEntry",
    "EventStore",
]
