"""Idempotency guard for settlement keyed on the external payment reference.

The check and the write happen in the same transaction. Two layers keep a
redelivered event from settling twice:
1. Check for a SUCCESS ledger row with the reference before doing any work
2. The unique constraint on transaction_ledger.reference; a concurrent
   duplicate that slipped past the check fails on flush and is reported as
   already processed
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rentpilot.api.errors import AlreadyProcessedError, ValidationError
from rentpilot.models import LedgerStatus, TransactionLedger

logger = logging.getLogger(__name__)


class IdempotencyGuard:
    """Short-circuits settlement for references that already settled."""

    def __init__(self, db: Session):
        self.db = db

    def find_settled(self, reference: str) -> Optional[TransactionLedger]:
        """Return the SUCCESS ledger entry for a reference, if one exists."""
        return self.db.execute(
            select(TransactionLedger).where(
                TransactionLedger.reference == reference,
                TransactionLedger.status == LedgerStatus.SUCCESS,
            )
        ).scalar_one_or_none()

    def find_any(self, reference: str) -> Optional[TransactionLedger]:
        """Return the ledger entry for a reference in any status."""
        return self.db.execute(
            select(TransactionLedger).where(TransactionLedger.reference == reference)
        ).scalar_one_or_none()

    def ensure_not_settled(self, reference: str) -> None:
        """Raise AlreadyProcessedError when the reference has a SUCCESS ledger entry."""
        if self.find_settled(reference) is not None:
            logger.info("idempotency.hit: reference=%s", reference)
            raise AlreadyProcessedError(f"Payment {reference} already processed")

    @contextmanager
    def guard(self, reference: str) -> Iterator[None]:
        """Wrap the settlement writes for one reference.

        Args:
            reference: Idempotency key of the money event

        Raises:
            AlreadyProcessedError: Reference settled before or concurrently
            ValidationError: Reference is taken by an unrelated ledger entry
        """
        self.ensure_not_settled(reference)
        try:
            yield
            self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            existing = self.find_any(reference)
            if existing is not None and existing.status == LedgerStatus.SUCCESS:
                logger.warning("idempotency.race: reference=%s settled concurrently", reference)
                raise AlreadyProcessedError(f"Payment {reference} already processed") from e
            if existing is not None:
                raise ValidationError(f"Reference {reference} is already in use") from e
            raise


__all__ = ["IdempotencyGuard"]
