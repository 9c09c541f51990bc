"""In-app notification model."""

from enum import Enum

from sqlalchemy import Enum as SQLEnum, String
from sqlalchemy.orm import Mapped, mapped_column

from rentpilot.models import Base, BaseModel


class NotificationType(str, Enum):
    RENT_DUE = "RENT_DUE"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    PAYMENT_PROOF_UPLOADED = "PAYMENT_PROOF_UPLOADED"
    PAYMENT_REJECTED = "PAYMENT_REJECTED"


class Notification(Base, BaseModel):
    __tablename__ = "notifications"

    user_id: Mapped[int] = mapped_column(nullable=False, index=True)
    type: Mapped[NotificationType] = mapped_column(SQLEnum(NotificationType), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(String(1000), nullable=False)
    action_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_read: Mapped[bool] = mapped_column(nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, user_id={self.user_id}, type={self.type.value})>"


__all__ = ["Notification", "NotificationType"]
