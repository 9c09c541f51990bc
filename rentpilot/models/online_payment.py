"""Online payment session - bridge between gateway initiation and its webhook."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import JSON, DateTime, Enum as SQLEnum, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from rentpilot.models import Base, BaseModel


class OnlinePaymentStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class OnlinePayment(Base, BaseModel):
    """Payment session opened with the gateway on the tenant's behalf."""

    __tablename__ = "online_payments"

    tenant_id: Mapped[int] = mapped_column(nullable=False, index=True)
    lease_id: Mapped[int] = mapped_column(ForeignKey("leases.id"), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    reference: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    access_code: Mapped[str | None] = mapped_column(String(128), nullable=True)
    authorization_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[OnlinePaymentStatus] = mapped_column(
        SQLEnum(OnlinePaymentStatus), nullable=False, default=OnlinePaymentStatus.PENDING
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    gateway_response: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    """Charge data as validated by ChargeData, stored with mode="json"."""

    def __repr__(self) -> str:
        return (
            f"<OnlinePayment(id={self.id}, reference={self.reference}, amount={self.amount}, "
            f"status={self.status.value})>"
        )


__all__ = ["OnlinePayment", "OnlinePaymentStatus"]
