"""
Event Store service for append-only audit logging.

Events are added to the caller's session and commit with the mutation
they describe.
"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import select, desc, func
from sqlalchemy.ext.asyncio import AsyncSession

from fortas.kernel.models.event_log import EventLog, EventType


@dataclass
class AuditEntry:
    """An event to be written alongside a mutation the caller has not made yet."""

    event_type: EventType
    entity_type: str = "user"
    payload: Dict[str, Any] = field(default_factory=dict)
    client_id: Optional[str] = None


class EventStore:
    """
    Service for managing the immutable event log.

    Usage:
        event_store = EventStore(session)
        await event_store.log(
            event_type=EventType.USER_REGISTERED,
            entity_type="user",
            entity_id=user.id,
            user_id=user.id,
            payload={"email": user.email},
        )
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def log(
        self,
        event_type: EventType,
        entity_type: str,
        entity_id: Optional[uuid.UUID],
        user_id: Optional[uuid.UUID] = None,
        payload: Optional[Dict[str, Any]] = None,
        client_id: Optional[str] = None,
    ) -> EventLog:
        """
        Log an event to the audit log.

        Args:
            event_type: The type of event
            entity_type: The type of entity (user, session, ...)
            entity_id: The ID of the entity, if one was resolved
            user_id: The ID of the user who triggered the event
            payload: Additional event data
            client_id: Client context the event came from

        Returns:
            The created EventLog record
        """
        if payload:
            payload = self._serialize_payload(payload)

        event = EventLog(
            event_type=EventType(event_type).value,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            payload=payload or {},
            client_id=client_id,
        )

        self.session.add(event)
        # Caller commits
        return event

    async def log_entry(
        self,
        entry: AuditEntry,
        entity_id: Optional[uuid.UUID],
        user_id: Optional[uuid.UUID] = None,
    ) -> EventLog:
        """Log a prepared AuditEntry once its entity id is known."""
        return await self.log(
            event_type=entry.event_type,
            entity_type=entry.entity_type,
            entity_id=entity_id,
            user_id=user_id,
            payload=entry.payload,
            client_id=entry.client_id,
        )

    async def get_user_activity(
        self,
        user_id: uuid.UUID,
        event_types: Optional[List[EventType]] = None,
        limit: int = 100,
    ) -> List[EventLog]:
        """Get events for a user, newest first."""
        query = select(EventLog).where(EventLog.user_id == user_id)
        if event_types:
            query = query.where(EventLog.event_type.in_([e.value for e in event_types]))
        query = query.order_by(desc(EventLog.created_at)).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_events(
        self,
        event_type: Optional[EventType] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> int:
        """Count events matching the given criteria."""
        query = select(func.count(EventLog.id))
        if event_type:
            query = query.where(EventLog.event_type == event_type.value)
        if user_id:
            query = query.where(EventLog.user_id == user_id)

        result = await self.session.execute(query)
        return result.scalar_one()

    @staticmethod
    def _serialize_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
        """Make the payload JSON-serializable."""
        serialized = {}
        for key, value in payload.items():
            if isinstance(value, uuid.UUID):
                serialized[key] = str(value)
            elif hasattr(value, "isoformat"):
                serialized[key] = value.isoformat()
            elif hasattr(value, "value"):
                serialized[key] = value.value
            elif isinstance(value, dict):
                serialized[key] = EventStore._serialize_payload(value)
            elif isinstance(value, list):
                serialized[key] = [
                    str(v) if isinstance(v, uuid.UUID) else v
                    for v in value
                ]
            else:
                serialized[key] = value
        return serialized
