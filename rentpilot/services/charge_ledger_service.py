"""Rent charge ledger operations.

All reads and writes of RentCharge and PaymentAllocation go through here so
the amount_paid / allocation invariants are enforced in one place. Methods
never commit; the caller owns the transaction.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rentpilot.api.errors import ValidationError
from rentpilot.models import Lease, Payment, PaymentAllocation, RentCharge
from rentpilot.models.rent_charge import OUTSTANDING_STATUSES, ChargeStatus
from rentpilot.services.allocation_service import (
    ZERO,
    Allocation,
    AllocationResult,
    derive_charge_status,
    to_money,
)

logger = logging.getLogger(__name__)


@dataclass
class MonthSummary:
    """Rent ledger view for one landlord and month."""

    month: str
    charges: List[RentCharge] = field(default_factory=list)
    total_due: Decimal = ZERO
    total_collected: Decimal = ZERO

    @property
    def outstanding(self) -> Decimal:
        return self.total_due - self.total_collected


class ChargeLedgerService:
    """Reads and mutates the rent charge ledger inside the caller's session."""

    def __init__(self, db: Session):
        """Initialize with database session.

        Args:
            db: SQLAlchemy session whose transaction wraps the mutation
        """
        self.db = db

    def get_outstanding_charges(self, lease_id: int, lock: bool = True) -> List[RentCharge]:
        """Charges still owing money, oldest due date first.

        Args:
            lease_id: Lease whose charges to read
            lock: Take row locks (SELECT ... FOR UPDATE) for the settlement transaction

        Returns:
            Charges with status UNPAID, PARTIAL or OVERDUE sorted by due date, then month
        """
        stmt = (
            select(RentCharge)
            .where(
                RentCharge.lease_id == lease_id,
                RentCharge.status.in_(OUTSTANDING_STATUSES),
            )
            .order_by(RentCharge.due_date.asc(), RentCharge.month.asc(), RentCharge.id.asc())
        )
        if lock:
            stmt = stmt.with_for_update()
        return list(self.db.execute(stmt).scalars().all())

    def apply_allocations(
        self,
        payment: Payment,
        charges: List[RentCharge],
        result: AllocationResult,
    ) -> List[PaymentAllocation]:
        """Persist an allocation run against the charges it was computed from.

        Args:
            payment: Flushed payment the money came from
            charges: The charges passed to the allocation engine
            result: Allocation engine output

        Returns:
            Created PaymentAllocation rows

        Raises:
            ValidationError: If an allocation targets an unknown charge or would overpay it
        """
        by_id = {charge.id: charge for charge in charges}
        created = []

        for allocation in result.allocations:
            charge = by_id.get(allocation.charge_id)
            if charge is None:
                raise ValidationError(
                    f"Allocation targets rent charge {allocation.charge_id} outside this lease"
                )
            self._apply_to_charge(charge, allocation)

            row = PaymentAllocation(
                payment_id=payment.id,
                rent_charge_id=charge.id,
                amount=allocation.amount,
            )
            self.db.add(row)
            created.append(row)

            logger.debug(
                "ledger.allocate: payment_id=%s charge_id=%s month=%s amount=%s status=%s",
                payment.id,
                charge.id,
                charge.month,
                allocation.amount,
                charge.status.value,
            )

        self.db.flush()
        return created

    def _apply_to_charge(self, charge: RentCharge, allocation: Allocation) -> None:
        if allocation.amount <= 0:
            raise ValidationError("Allocation amount must be positive")

        new_paid = to_money(charge.amount_paid) + allocation.amount
        if new_paid > to_money(charge.amount_due):
            raise ValidationError(
                f"Allocation of {allocation.amount} would overpay rent charge {charge.id}"
            )

        charge.amount_paid = new_paid
        charge.status = derive_charge_status(to_money(charge.amount_due), new_paid)

    def find_charge(self, lease_id: int, month: str) -> Optional[RentCharge]:
        """Get the charge for a lease and billing month, if any."""
        return self.db.execute(
            select(RentCharge).where(RentCharge.lease_id == lease_id, RentCharge.month == month)
        ).scalar_one_or_none()

    def create_charge(self, lease: Lease, month: str, due_date: date) -> RentCharge:
        """Create an UNPAID charge for the lease's current rent.

        The (lease_id, month) unique constraint surfaces as IntegrityError on flush.
        """
        charge = RentCharge(
            lease_id=lease.id,
            month=month,
            amount_due=to_money(lease.rent_amount),
            amount_paid=ZERO,
            status=ChargeStatus.UNPAID,
            due_date=due_date,
        )
        self.db.add(charge)
        self.db.flush()
        return charge

    def allocated_total(self, charge_id: int) -> Decimal:
        """Sum of all allocations recorded against one charge."""
        total = self.db.execute(
            select(func.coalesce(func.sum(PaymentAllocation.amount), 0)).where(
                PaymentAllocation.rent_charge_id == charge_id
            )
        ).scalar_one()
        return to_money(total)

    def month_summary(
        self,
        landlord_id: int,
        month: str,
        status: Optional[ChargeStatus] = None,
    ) -> MonthSummary:
        """Charges for a landlord's leases in one month with collection totals.

        Args:
            landlord_id: Owner whose leases to include
            month: Billing month key (YYYY-MM)
            status: Optional status filter

        Returns:
            MonthSummary sorted by due date
        """
        stmt = (
            select(RentCharge)
            .join(Lease, Lease.id == RentCharge.lease_id)
            .where(Lease.landlord_id == landlord_id, RentCharge.month == month)
            .order_by(RentCharge.due_date.asc(), RentCharge.id.asc())
        )
        if status is not None:
            stmt = stmt.where(RentCharge.status == status)

        charges = list(self.db.execute(stmt).scalars().all())
        return MonthSummary(
            month=month,
            charges=charges,
            total_due=sum((to_money(c.amount_due) for c in charges), ZERO),
            total_collected=sum((to_money(c.amount_paid) for c in charges), ZERO),
        )


__all__ = ["ChargeLedgerService", "MonthSummary"]
