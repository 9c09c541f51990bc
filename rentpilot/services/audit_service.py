"""Audit trail for settlement state changes.

Rows are added to the caller's session and never committed here, so an audit
entry exists exactly when the settlement it describes committed.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy.orm import Session

from rentpilot.models.audit_log import AuditLog


def _snapshot_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _snapshot_value(item) for key, item in value.items()}
    return value


class AuditService:
    """Writes AuditLog rows for ledger entries and online payment sessions."""

    @staticmethod
    def log(
        db: Session,
        entity_type: str,
        entity_id: int,
        action: str,
        actor_id: int | None = None,
        changes: dict | None = None,
    ) -> AuditLog:
        """Add one audit row. Amounts, enums and dates in changes are stored as strings.

        Args:
            entity_type: "transaction_ledger" or "online_payment"
            entity_id: Primary key of the entity
            action: What happened ("proof_uploaded", "approved", "webhook_settled", ...)
            actor_id: Landlord or tenant who acted; None for the gateway and scheduler
            changes: Fields worth keeping with the event
        """
        audit = AuditLog(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor_id,
            changes=_snapshot_value(changes) if changes is not None else None,
        )
        db.add(audit)
        return audit

    @staticmethod
    def ledger_event(
        db: Session, ledger_id: int, action: str, actor_id: int | None = None, **changes
    ) -> AuditLog:
        """Audit row for a TransactionLedger entry."""
        return AuditService.log(
            db, "transaction_ledger", ledger_id, action, actor_id=actor_id, changes=changes
        )


__all__ = ["AuditService"]
