"""Transaction ledger model - the financial system of record."""

from decimal import Decimal
from enum import Enum

from sqlalchemy import Enum as SQLEnum, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentpilot.models import Base, BaseModel
from rentpilot.models.payment import PaymentMethod


class LedgerStatus(str, Enum):
    """Ledger entry status enumeration."""

    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class TransactionLedger(Base, BaseModel):
    """One entry per settled (or awaiting review) money event.

    The reference column is unique and doubles as the idempotency key for
    gateway events and proof uploads.

    Attributes:
        amount: Gross amount received
        platform_fee: Platform cut (zero for manual and proof payments)
        net_amount: amount - platform_fee
        status: PENDING until approved or settled, then SUCCESS or FAILED
        payment_id: Payment created on settlement
    """

    __tablename__ = "transaction_ledger"

    tenant_id: Mapped[int] = mapped_column(nullable=False, index=True)
    landlord_id: Mapped[int] = mapped_column(nullable=False, index=True)
    property_id: Mapped[int] = mapped_column(nullable=False)
    lease_id: Mapped[int] = mapped_column(ForeignKey("leases.id"), nullable=False, index=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    platform_fee: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00")
    )
    net_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(SQLEnum(PaymentMethod), nullable=False)
    status: Mapped[LedgerStatus] = mapped_column(
        SQLEnum(LedgerStatus), nullable=False, default=LedgerStatus.PENDING
    )
    reference: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)

    payment_id: Mapped[int | None] = mapped_column(
        ForeignKey("payments.id"), nullable=True, unique=True
    )
    online_payment_id: Mapped[int | None] = mapped_column(
        ForeignKey("online_payments.id"), nullable=True
    )
    document_id: Mapped[int | None] = mapped_column(ForeignKey("documents.id"), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Relationships
    payment: Mapped["Payment | None"] = relationship("Payment")  # noqa: F821
    document: Mapped["Document | None"] = relationship("Document")  # noqa: F821
    payout: Mapped["Payout | None"] = relationship(  # noqa: F821
        "Payout",
        back_populates="ledger",
        uselist=False,
    )

    __table_args__ = (
        Index("idx_ledger_landlord_status", "landlord_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<TransactionLedger(id={self.id}, reference={self.reference}, amount={self.amount}, "
            f"fee={self.platform_fee}, status={self.status.value})>"
        )


__all__ = ["LedgerStatus", "TransactionLedger"]
