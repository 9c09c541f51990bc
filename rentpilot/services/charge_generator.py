"""Scheduled rent charge generation.

Creates one UNPAID charge per ACTIVE lease for the target month. Safe to run
repeatedly: a lease that already has a charge for the month is skipped, and
the (lease_id, month) unique constraint catches a concurrent run. Each lease
is committed on its own so a bad lease is reported without stopping the rest.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rentpilot.api.errors import ValidationError
from rentpilot.models import Lease, LeaseStatus, RentCharge
from rentpilot.services.charge_ledger_service import ChargeLedgerService
from rentpilot.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

MONTH_KEY = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


def month_key(day: date) -> str:
    return f"{day.year}-{day.month:02d}"


def parse_month_key(month: str) -> Tuple[int, int]:
    """Split a YYYY-MM key into (year, month).

    Raises:
        ValidationError: If the key is malformed
    """
    match = MONTH_KEY.match(month or "")
    if not match:
        raise ValidationError(f"Invalid month '{month}', expected YYYY-MM")
    return int(match.group(1)), int(match.group(2))


@dataclass
class ChargeGenerationResult:
    """Summary of one generation run."""

    month: str
    processed: int = 0
    created: int = 0
    skipped: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)


class ChargeGenerator:
    """Materializes monthly rent charges for active leases."""

    def __init__(self, db: Session, notifications: Optional[NotificationService] = None):
        self.db = db
        self.notifications = notifications or NotificationService(db)
        self.charge_ledger = ChargeLedgerService(db)

    def generate_rent_charges(
        self, month: Optional[str] = None, today: Optional[date] = None
    ) -> ChargeGenerationResult:
        """Create the month's rent charge for every ACTIVE lease.

        Args:
            month: Target month (YYYY-MM); defaults to the month of `today`
            today: Reference date (default: date.today())

        Returns:
            ChargeGenerationResult with created/skipped counts and per-lease errors
        """
        target = month or month_key(today or date.today())
        year, mon = parse_month_key(target)

        lease_ids = list(
            self.db.execute(
                select(Lease.id).where(Lease.status == LeaseStatus.ACTIVE).order_by(Lease.id)
            ).scalars()
        )
        result = ChargeGenerationResult(month=target, processed=len(lease_ids))

        for lease_id in lease_ids:
            try:
                charge = self._generate_for_lease(lease_id, target, year, mon)
            except Exception as e:
                self.db.rollback()
                logger.error(
                    "charges.generate_failed: lease_id=%d month=%s error=%s",
                    lease_id,
                    target,
                    e,
                    exc_info=True,
                )
                result.errors.append({"lease_id": lease_id, "error": str(e)})
                continue

            if charge is None:
                result.skipped += 1
                continue

            result.created += 1
            self._notify_rent_due(charge)

        logger.info(
            "charges.generated: month=%s processed=%d created=%d skipped=%d errors=%d",
            target,
            result.processed,
            result.created,
            result.skipped,
            len(result.errors),
        )
        return result

    def _generate_for_lease(
        self, lease_id: int, target: str, year: int, mon: int
    ) -> Optional[RentCharge]:
        lease = self.db.get(Lease, lease_id)
        if self.charge_ledger.find_charge(lease.id, target) is not None:
            return None

        if not 1 <= lease.due_day <= 28:
            raise ValueError(f"Invalid due day {lease.due_day} for lease {lease.id}")

        try:
            charge = self.charge_ledger.create_charge(lease, target, date(year, mon, lease.due_day))
            self.db.commit()
        except IntegrityError:
            # Another run created it between our check and insert
            self.db.rollback()
            logger.info("charges.generate_race: lease_id=%d month=%s", lease_id, target)
            return None

        logger.debug(
            "charges.created: lease_id=%d month=%s charge_id=%d", lease_id, target, charge.id
        )
        return charge

    def _notify_rent_due(self, charge: RentCharge) -> None:
        try:
            self.notifications.rent_due(
                charge.lease.tenant_id, charge.amount_due, charge.month, charge.due_date
            )
        except Exception as e:
            self.db.rollback()
            logger.error(
                "charges.notify_failed: charge_id=%d error=%s", charge.id, e, exc_info=True
            )


__all__ = ["ChargeGenerationResult", "ChargeGenerator", "month_key", "parse_month_key"]
