"""Lease ORM model - the tenant/unit/rent relationship charges hang off."""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Enum as SQLEnum, Index, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentpilot.models import Base, BaseModel


class LeaseStatus(str, Enum):
    """Lease status enumeration."""

    ACTIVE = "ACTIVE"
    TERMINATED = "TERMINATED"
    ENDED = "ENDED"
    PENDING = "PENDING"


class Lease(Base, BaseModel):
    """Lease between a tenant and a unit.

    Tenants, landlords, properties and units live in the surrounding
    application; only their ids are kept here.

    Attributes:
        tenant_id: Tenant profile id
        landlord_id: Owner of the property (authorizes settlement actions)
        property_id: Property id
        unit_id: Unit id
        rent_amount: Monthly rent copied into each generated charge
        due_day: Day of month rent is due (1-28)
        status: ACTIVE leases get monthly charges
    """

    __tablename__ = "leases"

    tenant_id: Mapped[int] = mapped_column(nullable=False, index=True)
    landlord_id: Mapped[int] = mapped_column(nullable=False, index=True)
    property_id: Mapped[int] = mapped_column(nullable=False)
    unit_id: Mapped[int] = mapped_column(nullable=False)

    rent_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Monthly rent",
    )
    due_day: Mapped[int] = mapped_column(nullable=False, default=1)
    status: Mapped[LeaseStatus] = mapped_column(
        SQLEnum(LeaseStatus), nullable=False, default=LeaseStatus.ACTIVE
    )
    start_date: Mapped[date] = mapped_column(nullable=False)
    end_date: Mapped[date | None] = mapped_column(nullable=True)

    # Relationships
    rent_charges: Mapped[list["RentCharge"]] = relationship(  # noqa: F821
        "RentCharge",
        back_populates="lease",
        order_by="RentCharge.due_date",
    )
    payments: Mapped[list["Payment"]] = relationship(  # noqa: F821
        "Payment",
        back_populates="lease",
    )

    __table_args__ = (Index("idx_lease_status", "status"),)

    def __repr__(self) -> str:
        return (
            f"<Lease(id={self.id}, tenant_id={self.tenant_id}, unit_id={self.unit_id}, "
            f"rent_amount={self.rent_amount}, status={self.status.value})>"
        )


__all__ = ["Lease", "LeaseStatus"]
