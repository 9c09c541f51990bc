"""Payment and payment allocation models."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentpilot.models import Base, BaseModel


class PaymentMethod(str, Enum):
    """How money reached the landlord."""

    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    CARD = "CARD"
    ONLINE = "ONLINE"
    OTHER = "OTHER"


class Payment(Base, BaseModel):
    """Money received from a tenant.

    Payments are written once per settled money event and never edited;
    corrections are new payments.
    """

    __tablename__ = "payments"

    tenant_id: Mapped[int] = mapped_column(nullable=False, index=True)
    lease_id: Mapped[int] = mapped_column(
        ForeignKey("leases.id"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    method: Mapped[PaymentMethod] = mapped_column(SQLEnum(PaymentMethod), nullable=False)
    date_paid: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    proof_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Relationships
    lease: Mapped["Lease"] = relationship(  # noqa: F821
        "Lease",
        back_populates="payments",
    )
    allocations: Mapped[list["PaymentAllocation"]] = relationship(
        "PaymentAllocation",
        back_populates="payment",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, lease_id={self.lease_id}, amount={self.amount}, "
            f"method={self.method.value}, reference={self.reference})>"
        )


class PaymentAllocation(Base, BaseModel):
    """Part of a payment applied to one rent charge."""

    __tablename__ = "payment_allocations"

    payment_id: Mapped[int] = mapped_column(
        ForeignKey("payments.id"),
        nullable=False,
        index=True,
    )
    rent_charge_id: Mapped[int] = mapped_column(
        ForeignKey("rent_charges.id"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Relationships
    payment: Mapped["Payment"] = relationship("Payment", back_populates="allocations")
    rent_charge: Mapped["RentCharge"] = relationship(  # noqa: F821
        "RentCharge",
        back_populates="allocations",
    )

    __table_args__ = (Index("idx_allocation_payment_charge", "payment_id", "rent_charge_id"),)

    def __repr__(self) -> str:
        return (
            f"<PaymentAllocation(payment_id={self.payment_id}, "
            f"rent_charge_id={self.rent_charge_id}, amount={self.amount})>"
        )


__all__ = ["Payment", "PaymentAllocation", "PaymentMethod"]
