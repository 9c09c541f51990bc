"""Audit log model for tracking settlement lifecycle events."""

from typing import Any

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from rentpilot.models import Base, BaseModel


class AuditLog(Base, BaseModel):
    """Audit log entry for money-moving actions.

    Records who (actor_id) did what (action) to which entity (entity_type, entity_id)
    and an optional snapshot of the relevant fields (changes).
    """

    __tablename__ = "audit_logs"

    entity_type: Mapped[str] = mapped_column(String(64))
    """Entity type being audited: "transaction_ledger", "payment", etc."""

    entity_id: Mapped[int] = mapped_column()
    """Primary key of the entity being audited."""

    action: Mapped[str] = mapped_column(String(64))
    """Action performed: "proof_uploaded", "approved", "webhook_settled", etc."""

    actor_id: Mapped[int | None] = mapped_column(nullable=True)
    """User who performed the action. None for gateway and scheduler actions."""

    changes: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    """Optional JSON snapshot: {"amount": "700.00", "reference": "RP_ABC123"}."""

    def __repr__(self) -> str:
        return (
            f"<AuditLog(id={self.id}, entity_type={self.entity_type}, entity_id={self.entity_id}, "
            f"action={self.action}, actor_id={self.actor_id}, created_at={self.created_at})>"
        )


__all__ = ["AuditLog"]
