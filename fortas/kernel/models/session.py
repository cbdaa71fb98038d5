"""
Persisted pointer to the active session token of a client context.
"""

from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from fortas.kernel.models.base import Base


class SessionPointer(Base):
    """One remembered token per client context."""

    __tablename__ = "session_pointers"

    client_id: Mapped[str] = mapped_column(
        String(128),
        primary_key=True,
    )
    token: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<SessionPointer {self.client_id}>"
