"""Rent charge model - one rent obligation per lease per calendar month."""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentpilot.models import Base, BaseModel


class ChargeStatus(str, Enum):
    """Rent charge status enumeration."""

    UNPAID = "UNPAID"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    """Set by an external escalation job, never by allocation."""


OUTSTANDING_STATUSES = (ChargeStatus.UNPAID, ChargeStatus.PARTIAL, ChargeStatus.OVERDUE)


class RentCharge(Base, BaseModel):
    """Monthly rent charge for a lease.

    amount_due is fixed at generation time. amount_paid only grows, and only
    through payment allocations; status always follows from the two amounts.
    """

    __tablename__ = "rent_charges"

    lease_id: Mapped[int] = mapped_column(
        ForeignKey("leases.id"),
        nullable=False,
        index=True,
    )
    month: Mapped[str] = mapped_column(
        String(7),
        nullable=False,
        comment="Billing month key, YYYY-MM",
    )
    amount_due: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00")
    )
    status: Mapped[ChargeStatus] = mapped_column(
        SQLEnum(ChargeStatus), nullable=False, default=ChargeStatus.UNPAID
    )
    due_date: Mapped[date] = mapped_column(nullable=False)

    # Relationships
    lease: Mapped["Lease"] = relationship(  # noqa: F821
        "Lease",
        back_populates="rent_charges",
    )
    allocations: Mapped[list["PaymentAllocation"]] = relationship(  # noqa: F821
        "PaymentAllocation",
        back_populates="rent_charge",
    )

    __table_args__ = (
        UniqueConstraint("lease_id", "month", name="uq_rent_charge_lease_month"),
        CheckConstraint("amount_paid >= 0", name="ck_rent_charge_paid_non_negative"),
        CheckConstraint("amount_paid <= amount_due", name="ck_rent_charge_not_overpaid"),
        Index("idx_rent_charge_lease_due", "lease_id", "due_date"),
        Index("idx_rent_charge_status", "status"),
    )

    @property
    def outstanding(self) -> Decimal:
        return self.amount_due - self.amount_paid

    def __repr__(self) -> str:
        return (
            f"<RentCharge(id={self.id}, lease_id={self.lease_id}, month={self.month}, "
            f"amount_due={self.amount_due}, amount_paid={self.amount_paid}, "
            f"status={self.status.value})>"
        )


__all__ = ["ChargeStatus", "OUTSTANDING_STATUSES", "RentCharge"]
