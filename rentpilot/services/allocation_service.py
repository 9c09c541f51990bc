"""Allocation engine for distributing a payment across outstanding rent charges.

The engine is pure: it reads amounts from the charges it is given and returns
what should be applied where. Persisting the result is the charge ledger's job.

Rules:
- Charges are consumed in the order given (callers sort oldest due date first)
- Each charge receives at most its outstanding balance
- Whatever is left after the last charge is returned as remainder
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, List, NamedTuple, Protocol

from rentpilot.api.errors import ValidationError
from rentpilot.models.rent_charge import ChargeStatus

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Convert a number to a Decimal rounded to cents."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(value) -> Decimal:
    """Convert an incoming amount to cents, refusing fractions of a cent.

    Raises:
        ValidationError: If the value is not a finite number of whole cents
    """
    try:
        exact = Decimal(str(value))
    except InvalidOperation as e:
        raise ValidationError(f"Invalid amount: {value}") from e
    if not exact.is_finite():
        raise ValidationError(f"Invalid amount: {value}")
    money = exact.quantize(CENT, rounding=ROUND_HALF_UP)
    if money != exact:
        raise ValidationError(f"Amount {value} has fractions of a cent")
    return money


def derive_charge_status(amount_due: Decimal, amount_paid: Decimal) -> ChargeStatus:
    """Status implied by the amounts of a charge.

    OVERDUE is never returned; it is a time-based escalation applied elsewhere.
    """
    if amount_paid >= amount_due:
        return ChargeStatus.PAID
    if amount_paid > 0:
        return ChargeStatus.PARTIAL
    return ChargeStatus.UNPAID


class OutstandingCharge(Protocol):
    """Anything with an id and the two charge amounts (RentCharge satisfies it)."""

    id: int
    amount_due: Decimal
    amount_paid: Decimal


class Allocation(NamedTuple):
    charge_id: int
    amount: Decimal


@dataclass
class AllocationResult:
    """Outcome of one allocation run."""

    allocations: List[Allocation] = field(default_factory=list)
    remainder: Decimal = ZERO

    @property
    def allocated_total(self) -> Decimal:
        return sum((a.amount for a in self.allocations), ZERO)


class FeeSplit(NamedTuple):
    gross: Decimal
    platform_fee: Decimal
    net_amount: Decimal


class AllocationService:
    """Oldest-first payment allocation over a lease's outstanding charges."""

    def allocate(self, amount, charges: Iterable[OutstandingCharge]) -> AllocationResult:
        """Allocate a payment across charges in the given order.

        Ensures: sum(allocations) + remainder == amount (no money lost or created)

        Args:
            amount: Payment amount (non-negative, cents precision)
            charges: Outstanding charges, already sorted by due date ascending

        Returns:
            AllocationResult with (charge_id, amount) pairs and the unallocated remainder

        Raises:
            ValidationError: If amount is negative or not whole cents, or a charge is
                already overpaid
        """
        remaining = to_cents(amount)
        if remaining < 0:
            raise ValidationError("Payment amount must not be negative")

        result = AllocationResult()
        if remaining == 0:
            return result

        for charge in charges:
            if remaining <= 0:
                break

            outstanding = to_money(charge.amount_due) - to_money(charge.amount_paid)
            if outstanding < 0:
                raise ValidationError(f"Rent charge {charge.id} is paid beyond its amount due")
            if outstanding == 0:
                continue

            applied = min(outstanding, remaining)
            result.allocations.append(Allocation(charge.id, applied))
            remaining -= applied

        result.remainder = remaining
        return result

    def calculate_platform_fee(self, gross, percent) -> FeeSplit:
        """Split a gross online payment into platform fee and landlord net.

        Args:
            gross: Gross amount received by the gateway
            percent: Platform fee percentage (2 means 2%)

        Returns:
            FeeSplit where platform_fee + net_amount == gross
        """
        gross_amount = to_money(gross)
        fee = (gross_amount * Decimal(str(percent)) / Decimal("100")).quantize(
            CENT, rounding=ROUND_HALF_UP
        )
        return FeeSplit(gross=gross_amount, platform_fee=fee, net_amount=gross_amount - fee)


__all__ = [
    "Allocation",
    "AllocationResult",
    "AllocationService",
    "FeeSplit",
    "derive_charge_status",
    "to_cents",
    "to_money",
]
