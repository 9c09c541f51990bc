"""Request/response schemas and webhook event decoding."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from rentpilot.api.errors import ValidationError
from rentpilot.models import (
    ChargeStatus,
    LedgerStatus,
    OnlinePaymentStatus,
    PaymentMethod,
    PayoutStatus,
)

CHARGE_SUCCESS = "charge.success"


# Gateway webhook events


class ChargeData(BaseModel):
    """The `data` object of a charge event (also returned by transaction verify)."""

    reference: str = Field(min_length=1)
    amount: int = Field(gt=0, description="Gross amount in minor currency units")
    paid_at: datetime
    channel: str | None = None
    currency: str | None = None
    status: str | None = None

    model_config = ConfigDict(extra="ignore")


class ChargeSuccessEvent(BaseModel):
    event: Literal["charge.success"]
    data: ChargeData


class UnhandledEvent(BaseModel):
    """Any other event type; accepted and ignored."""

    event: str
    data: dict[str, Any] = Field(default_factory=dict)


WebhookEvent = Union[ChargeSuccessEvent, UnhandledEvent]


class _Envelope(BaseModel):
    event: str
    data: dict[str, Any] = Field(default_factory=dict)


def parse_webhook_event(payload: bytes) -> WebhookEvent:
    """Decode a raw webhook body into a typed event.

    Raises:
        ValidationError: Body is not JSON or a charge.success event lacks required fields
    """
    try:
        envelope = _Envelope.model_validate_json(payload)
        if envelope.event == CHARGE_SUCCESS:
            return ChargeSuccessEvent.model_validate(envelope.model_dump())
        return UnhandledEvent.model_validate(envelope.model_dump())
    except PydanticValidationError as e:
        raise ValidationError(f"Malformed webhook payload: {e.error_count()} error(s)") from e


# Landlord / tenant requests


class ManualPaymentRequest(BaseModel):
    lease_id: int
    amount: Decimal
    method: PaymentMethod
    tenant_id: int | None = None
    date_paid: datetime | None = None
    reference: str | None = Field(default=None, max_length=128)


class LedgerActionRequest(BaseModel):
    ledger_id: int


class RejectRequest(LedgerActionRequest):
    reason: str | None = Field(default=None, max_length=500)


class InitiatePaymentRequest(BaseModel):
    email: str = Field(min_length=3)
    amount: Decimal | None = None


# Responses


class PaymentResponse(BaseModel):
    id: int
    tenant_id: int
    lease_id: int
    amount: Decimal
    method: PaymentMethod
    date_paid: datetime
    reference: str | None
    proof_url: str | None = None

    model_config = ConfigDict(from_attributes=True)


class AllocationResponse(BaseModel):
    rent_charge_id: int
    amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class LedgerResponse(BaseModel):
    id: int
    lease_id: int
    amount: Decimal
    platform_fee: Decimal
    net_amount: Decimal
    payment_method: PaymentMethod
    status: LedgerStatus
    reference: str
    payment_id: int | None
    document_id: int | None = None
    failure_reason: str | None = None

    model_config = ConfigDict(from_attributes=True)


class PayoutResponse(BaseModel):
    id: int
    amount: Decimal
    platform_fee: Decimal
    net_amount: Decimal
    status: PayoutStatus
    processed_at: datetime | None

    model_config = ConfigDict(from_attributes=True)


class SettlementResponse(BaseModel):
    """Outcome of a settlement action."""

    outcome: str
    payment: PaymentResponse | None = None
    ledger: LedgerResponse | None = None
    payout: PayoutResponse | None = None
    allocations: list[AllocationResponse] = Field(default_factory=list)
    unallocated: Decimal = Decimal("0.00")


class OnlinePaymentResponse(BaseModel):
    reference: str
    amount: Decimal
    status: OnlinePaymentStatus
    authorization_url: str | None
    access_code: str | None

    model_config = ConfigDict(from_attributes=True)


class RentChargeResponse(BaseModel):
    id: int
    lease_id: int
    month: str
    amount_due: Decimal
    amount_paid: Decimal
    status: ChargeStatus
    due_date: date

    model_config = ConfigDict(from_attributes=True)


class RentLedgerResponse(BaseModel):
    month: str
    rent_charges: list[RentChargeResponse]
    total_due: Decimal
    total_collected: Decimal
    outstanding: Decimal


class ChargeGenerationResponse(BaseModel):
    month: str
    processed: int
    created: int
    skipped: int
    errors: list[dict[str, Any]]


__all__ = [
    "CHARGE_SUCCESS",
    "ChargeData",
    "ChargeSuccessEvent",
    "UnhandledEvent",
    "WebhookEvent",
    "parse_webhook_event",
    "ManualPaymentRequest",
    "LedgerActionRequest",
    "RejectRequest",
    "InitiatePaymentRequest",
    "PaymentResponse",
    "AllocationResponse",
    "LedgerResponse",
    "PayoutResponse",
    "SettlementResponse",
    "OnlinePaymentResponse",
    "RentChargeResponse",
    "RentLedgerResponse",
    "ChargeGenerationResponse",
]
