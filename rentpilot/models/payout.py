"""Payout model - money owed or sent to the property owner."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentpilot.models import Base, BaseModel


class PayoutStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Payout(Base, BaseModel):
    """Owner payout derived 1:1 from a successful online ledger entry.

    The gateway's split payment moves the money at charge time, so a payout
    here is a record of the transfer rather than an instruction.
    """

    __tablename__ = "payouts"

    ledger_id: Mapped[int] = mapped_column(
        ForeignKey("transaction_ledger.id"),
        nullable=False,
        unique=True,
    )
    landlord_id: Mapped[int] = mapped_column(nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    platform_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[PayoutStatus] = mapped_column(
        SQLEnum(PayoutStatus), nullable=False, default=PayoutStatus.PENDING
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    ledger: Mapped["TransactionLedger"] = relationship(  # noqa: F821
        "TransactionLedger",
        back_populates="payout",
    )

    def __repr__(self) -> str:
        return (
            f"<Payout(id={self.id}, ledger_id={self.ledger_id}, net_amount={self.net_amount}, "
            f"status={self.status.value})>"
        )


__all__ = ["Payout", "PayoutStatus"]
