"""Notification service for tenant and landlord payment events.

Notifications are written after the settlement they describe has committed,
in their own commit. E-mail delivery is a mock that only logs.
"""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from rentpilot.models.notification import Notification, NotificationType

logger = logging.getLogger(__name__)


def format_amount(amount: Decimal, currency_symbol: str = "R") -> str:
    """Format money for messages, e.g. R1,500.00."""
    return f"{currency_symbol}{amount:,.2f}"


class NotificationService:
    """Creates in-app notifications and logs the e-mail that would be sent."""

    def __init__(self, db: Session):
        self.db = db

    def notify(
        self,
        user_id: int,
        type: NotificationType,
        title: str,
        message: str,
        action_url: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Notification:
        """Persist a notification and send the matching e-mail.

        Args:
            user_id: Recipient
            type: Notification type
            title: Short title
            message: Body text
            action_url: Link into the app
            email: Optional address for the e-mail copy

        Returns:
            Committed Notification
        """
        notification = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            action_url=action_url,
        )
        self.db.add(notification)
        self.db.commit()
        logger.info("notification.created: user_id=%d type=%s", user_id, type.value)

        if email:
            self.send_email(email, title, message)
        return notification

    def send_email(self, to: str, subject: str, body: str) -> None:
        logger.info("[MOCK EMAIL] To: %s | Subject: %s | %s", to, subject, body[:100])

    def rent_due(self, tenant_id: int, amount: Decimal, month: str, due_date) -> Notification:
        return self.notify(
            tenant_id,
            NotificationType.RENT_DUE,
            "Rent Invoice Generated",
            f"Rent of {format_amount(amount)} for {month} has been generated. "
            f"Due on {due_date.isoformat()}.",
            action_url="/tenant",
        )

    def payment_received(self, tenant_id: int, amount: Decimal, reference: str) -> Notification:
        return self.notify(
            tenant_id,
            NotificationType.PAYMENT_RECEIVED,
            "Payment Received",
            f"Your payment of {format_amount(amount)} (Ref: {reference}) has been applied "
            f"to your account.",
            action_url="/tenant/payments",
        )

    def proof_uploaded(self, landlord_id: int, amount: Decimal, reference: str) -> Notification:
        return self.notify(
            landlord_id,
            NotificationType.PAYMENT_PROOF_UPLOADED,
            "Proof of Payment Uploaded",
            f"A tenant uploaded proof of a {format_amount(amount)} payment (Ref: {reference}) "
            f"awaiting your approval.",
            action_url="/payments",
        )

    def payment_rejected(
        self, tenant_id: int, amount: Decimal, reference: str, reason: Optional[str]
    ) -> Notification:
        message = f"Your payment of {format_amount(amount)} (Ref: {reference}) was rejected."
        if reason:
            message += f" Reason: {reason}"
        return self.notify(
            tenant_id,
            NotificationType.PAYMENT_REJECTED,
            "Payment Rejected",
            message,
            action_url="/tenant/payments",
        )


__all__ = ["NotificationService", "format_amount"]
