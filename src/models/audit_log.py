"""Audit log model for tracking consumer billing events."""

from typing import Any

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from src.models import Base, BaseModel


class AuditLog(Base, BaseModel):
    """Audit log entry for a billing event on one consumer.

    Records what happened (action) to which consumer (consumer_number),
    who triggered it (actor, "system" for sweeps) and an optional snapshot
    of the changed billing fields.
    """

    __tablename__ = "audit_logs"

    consumer_number: Mapped[str] = mapped_column(String(50), index=True)
    """Consumer the event belongs to."""

    action: Mapped[str] = mapped_column(String(50), index=False)
    """Action performed: "reading.accept", "fine.apply", "payment.settle", etc."""

    actor: Mapped[str] = mapped_column(String(50), default="system", index=False)
    """Role that triggered the action: "citizen", "admin" or "system"."""

    changes: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True, index=False)
    """Optional JSON snapshot of changed fields: {"amount": "500.00", "deadline": "..."}."""

    def __repr__(self) -> str:
        return (
            f"<AuditLog(id={self.id}, consumer_number={self.consumer_number}, "
            f"action={self.action}, actor={self.actor}, created_at={self.created_at})>"
        )


__all__ = ["AuditLog"]
