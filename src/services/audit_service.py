"""Audit service for logging consumer billing events."""

from sqlalchemy.orm import Session

from src.models.audit_log import AuditLog


class AuditService:
    """Service for audit log operations.

    Provides static method to create minimal audit log entries.
    """

    @staticmethod
    def log(
        db: Session,
        consumer_number: str,
        action: str,
        actor: str = "system",
        changes: dict | None = None,
    ) -> AuditLog:
        """Create audit log entry (one-liner).

        The entry joins the caller's transaction; it is committed together
        with the billing change it describes.

        Args:
            db: Database session
            consumer_number: Consumer the event belongs to
            action: Action performed ("reading.accept", "payment.settle", etc.)
            actor: Role that triggered it ("citizen", "admin", "system")
            changes: Optional JSON snapshot of changed fields

        Returns:
            Created AuditLog object
        """
        audit = AuditLog(
            consumer_number=consumer_number,
            action=action,
            actor=actor,
            changes=changes,
        )
        db.add(audit)
        return audit


__all__ = ["AuditService"]
