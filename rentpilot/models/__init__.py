"""SQLAlchemy base model with common fields and model exports."""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

# Base class for all models
Base = declarative_base()


class BaseModel:
    """Base model with common timestamp fields."""

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


# Import models to register them with Base (after Base is defined)
# This must be after Base declaration to avoid circular imports
from rentpilot.models.audit_log import AuditLog  # noqa: E402
from rentpilot.models.document import Document, DocumentType  # noqa: E402
from rentpilot.models.lease import Lease, LeaseStatus  # noqa: E402
from rentpilot.models.notification import Notification, NotificationType  # noqa: E402
from rentpilot.models.online_payment import OnlinePayment, OnlinePaymentStatus  # noqa: E402
from rentpilot.models.payment import Payment, PaymentAllocation, PaymentMethod  # noqa: E402
from rentpilot.models.payout import Payout, PayoutStatus  # noqa: E402
from rentpilot.models.rent_charge import ChargeStatus, RentCharge  # noqa: E402
from rentpilot.models.transaction_ledger import LedgerStatus, TransactionLedger  # noqa: E402

__all__ = [
    "Base",
    "BaseModel",
    "AuditLog",
    "ChargeStatus",
    "Document",
    "DocumentType",
    "Lease",
    "LeaseStatus",
    "LedgerStatus",
    "Notification",
    "NotificationType",
    "OnlinePayment",
    "OnlinePaymentStatus",
    "Payment",
    "PaymentAllocation",
    "PaymentMethod",
    "Payout",
    "PayoutStatus",
    "RentCharge",
    "TransactionLedger",
]
