"""Online payment sessions: opening them with the gateway and checking their status."""

import logging
from typing import Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from rentpilot.api.errors import ExternalServiceError, NotFoundError, ValidationError
from rentpilot.api.schemas import ChargeData
from rentpilot.models import OnlinePayment, OnlinePaymentStatus
from rentpilot.services.allocation_service import ZERO, to_money
from rentpilot.services.gateway import PaystackClient, generate_reference
from rentpilot.services.settlement_service import (
    GatewaySettlement,
    SettlementOutcome,
    SettlementResult,
    SettlementService,
)

logger = logging.getLogger(__name__)


class OnlinePaymentService:
    """Initiates gateway payments and reconciles them with the gateway's view."""

    def __init__(self, db: Session, gateway: PaystackClient, settlement: SettlementService):
        self.db = db
        self.gateway = gateway
        self.settlement = settlement
        self.settings = settlement.settings

    def initiate(self, tenant_id: int, email: str, amount=None) -> OnlinePayment:
        """Open a payment session for the tenant's active lease.

        Args:
            tenant_id: Paying tenant
            email: Address the gateway sends the receipt to
            amount: Amount to pay; defaults to the lease's total outstanding balance

        Returns:
            Stored PENDING OnlinePayment with the gateway authorization URL

        Raises:
            ValidationError: No active lease, nothing outstanding, or non-positive amount
            ExternalServiceError: Gateway unavailable or refused the session
        """
        lease = self.settlement.get_active_lease(tenant_id)

        if amount is None:
            charges = self.settlement.charge_ledger.get_outstanding_charges(lease.id, lock=False)
            if not charges:
                raise ValidationError("No outstanding balance")
            amount = sum((to_money(c.amount_due) - to_money(c.amount_paid) for c in charges), ZERO)

        amount = self.settlement.validate_amount(amount)
        reference = generate_reference()
        callback_url = f"{self.settings.app_base_url}/tenant/pay/callback?reference={reference}"

        data = self.gateway.initialize_transaction(
            email=email,
            amount=amount,
            reference=reference,
            callback_url=callback_url,
            metadata={
                "tenant_id": tenant_id,
                "lease_id": lease.id,
                "landlord_id": lease.landlord_id,
            },
        )

        online = OnlinePayment(
            tenant_id=tenant_id,
            lease_id=lease.id,
            amount=amount,
            reference=reference,
            access_code=data.get("access_code"),
            authorization_url=data.get("authorization_url"),
            status=OnlinePaymentStatus.PENDING,
        )
        self.db.add(online)
        self.db.commit()
        self.db.refresh(online)

        logger.info(
            "online_payment.initiated: reference=%s lease_id=%d amount=%s",
            reference,
            lease.id,
            amount,
        )
        return online

    def get_by_reference(self, reference: str) -> Optional[OnlinePayment]:
        return self.db.execute(
            select(OnlinePayment).where(OnlinePayment.reference == reference)
        ).scalar_one_or_none()

    def verify(self, reference: str) -> SettlementResult:
        """Ask the gateway how a session ended and settle or fail it accordingly.

        A gateway "success" settles through the same idempotent path as the
        webhook, so whichever arrives second is a no-op. "failed" closes the
        session. Anything else (abandoned, ongoing) leaves it pending.

        Raises:
            NotFoundError: Unknown reference
            ExternalServiceError: Gateway unreachable (retry later)
        """
        online = self.get_by_reference(reference)
        if online is None:
            raise NotFoundError(f"Payment {reference} not found")
        if online.status == OnlinePaymentStatus.SUCCESS:
            return SettlementResult(
                outcome=SettlementOutcome.ALREADY_PROCESSED,
                ledger=self.settlement.guard.find_settled(reference),
            )
        if online.status == OnlinePaymentStatus.FAILED:
            return SettlementResult(outcome=SettlementOutcome.FAILED)

        data = self.gateway.verify_transaction(reference)
        status = data.get("status")
        logger.info("online_payment.verified: reference=%s gateway_status=%s", reference, status)

        if status == "success":
            try:
                charge = ChargeData.model_validate(data)
            except PydanticValidationError as e:
                raise ExternalServiceError(
                    "Payment gateway returned an incomplete transaction", retryable=False
                ) from e
            if charge.reference != reference:
                raise ExternalServiceError(
                    "Payment gateway returned a different transaction", retryable=False
                )
            return self.settlement.settle(GatewaySettlement.from_charge(charge))

        if status == "failed":
            return self.settlement.mark_online_payment_failed(reference, gateway_response=data)

        return SettlementResult(outcome=SettlementOutcome.PENDING)


__all__ = ["OnlinePaymentService"]
