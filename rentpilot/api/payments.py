"""Payment routes: manual entry, proof review, online payments and the gateway webhook."""

import logging

from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.responses import JSONResponse

from rentpilot.api.deps import get_current_user_id, get_gateway, get_settlement_service
from rentpilot.api.errors import (
    AppError,
    ConfigurationError,
    InvalidSignatureError,
    error_response,
)
from rentpilot.api.schemas import (
    AllocationResponse,
    ChargeSuccessEvent,
    InitiatePaymentRequest,
    LedgerActionRequest,
    LedgerResponse,
    ManualPaymentRequest,
    OnlinePaymentResponse,
    PaymentResponse,
    PayoutResponse,
    RejectRequest,
    SettlementResponse,
    parse_webhook_event,
)
from rentpilot.config import Settings, get_settings
from rentpilot.models import PaymentMethod
from rentpilot.services.gateway import PaystackClient, verify_webhook_signature
from rentpilot.services.online_payment_service import OnlinePaymentService
from rentpilot.services.settlement_service import (
    GatewaySettlement,
    ManualSettlement,
    ProofApproval,
    SettlementOutcome,
    SettlementResult,
    SettlementService,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])


def to_settlement_response(result: SettlementResult) -> SettlementResponse:
    return SettlementResponse(
        outcome=result.outcome.value,
        payment=PaymentResponse.model_validate(result.payment) if result.payment else None,
        ledger=LedgerResponse.model_validate(result.ledger) if result.ledger else None,
        payout=PayoutResponse.model_validate(result.payout) if result.payout else None,
        allocations=[AllocationResponse.model_validate(a) for a in result.allocations],
        unallocated=result.remainder,
    )


@router.post("", response_model=SettlementResponse, status_code=status.HTTP_201_CREATED)
async def record_manual_payment(
    payload: ManualPaymentRequest,
    landlord_id: int = Depends(get_current_user_id),  # noqa: B008
    service: SettlementService = Depends(get_settlement_service),  # noqa: B008
) -> SettlementResponse:
    """Landlord records cash, transfer or other money received off-platform.

    Returns:
        201: SettlementResponse (outcome SETTLED or ALREADY_PROCESSED)
        400: Invalid amount or tenant mismatch
        403: Lease belongs to another landlord
        404: Lease not found
    """
    result = service.settle(
        ManualSettlement(
            landlord_id=landlord_id,
            lease_id=payload.lease_id,
            amount=payload.amount,
            method=payload.method,
            tenant_id=payload.tenant_id,
            date_paid=payload.date_paid,
            reference=payload.reference,
        )
    )
    return to_settlement_response(result)


@router.get("", response_model=list[PaymentResponse])
async def list_payments(
    method: PaymentMethod | None = None,
    landlord_id: int = Depends(get_current_user_id),  # noqa: B008
    service: SettlementService = Depends(get_settlement_service),  # noqa: B008
) -> list[PaymentResponse]:
    """Payments on the caller's leases, optionally filtered by method."""
    return [PaymentResponse.model_validate(p) for p in service.list_payments(landlord_id, method)]


@router.post("/approve", response_model=SettlementResponse)
async def approve_payment_proof(
    payload: LedgerActionRequest,
    landlord_id: int = Depends(get_current_user_id),  # noqa: B008
    service: SettlementService = Depends(get_settlement_service),  # noqa: B008
) -> SettlementResponse:
    """Approve a pending proof of payment; creates the Payment and allocates it.

    Returns:
        200: SettlementResponse with outcome SETTLED
        403: Ledger entry belongs to another landlord
        404: Ledger entry not found
        409: Entry is no longer pending
    """
    result = service.settle(ProofApproval(landlord_id=landlord_id, ledger_id=payload.ledger_id))
    return to_settlement_response(result)


@router.post("/reject", response_model=SettlementResponse)
async def reject_payment_proof(
    payload: RejectRequest,
    landlord_id: int = Depends(get_current_user_id),  # noqa: B008
    service: SettlementService = Depends(get_settlement_service),  # noqa: B008
) -> SettlementResponse:
    """Reject a pending proof of payment. No Payment is created."""
    result = service.reject_payment_proof(landlord_id, payload.ledger_id, payload.reason)
    return to_settlement_response(result)


@router.post("/initiate", response_model=OnlinePaymentResponse, status_code=status.HTTP_201_CREATED)
def initiate_online_payment(
    payload: InitiatePaymentRequest,
    tenant_id: int = Depends(get_current_user_id),  # noqa: B008
    service: SettlementService = Depends(get_settlement_service),  # noqa: B008
    gateway: PaystackClient = Depends(get_gateway),  # noqa: B008
) -> OnlinePaymentResponse:
    """Tenant opens a gateway payment session for their active lease.

    Plain def: the gateway client blocks and must run in the threadpool.
    """
    online = OnlinePaymentService(service.db, gateway, service).initiate(
        tenant_id, payload.email, payload.amount
    )
    return OnlinePaymentResponse.model_validate(online)


@router.post("/webhook")
async def paystack_webhook(
    request: Request,
    x_paystack_signature: str | None = Header(None),  # noqa: B008
    settings: Settings = Depends(get_settings),  # noqa: B008
    service: SettlementService = Depends(get_settlement_service),  # noqa: B008
):
    """Receive gateway events.

    The signature is checked against the raw body before anything is parsed.
    4xx tells the gateway not to retry, 5xx asks it to retry later.

    Returns:
        200: {"message": "Webhook received"} or {"message": "Already processed"}
        400: Malformed payload
        401: Missing or invalid signature
        404: Unknown payment reference
        503: Webhook secret not configured or gateway dependency failed
        500: Unexpected failure
    """
    payload = await request.body()

    secret = settings.paystack_webhook_secret
    if not secret:
        logger.error("webhook.misconfigured: PAYSTACK_WEBHOOK_SECRET is not set")
        raise ConfigurationError("Webhook secret not configured")

    if not verify_webhook_signature(payload, x_paystack_signature, secret):
        logger.warning(
            "webhook.invalid_signature: client=%s",
            request.client.host if request.client else None,
        )
        raise InvalidSignatureError()

    event = parse_webhook_event(payload)
    if not isinstance(event, ChargeSuccessEvent):
        logger.info("webhook.ignored: event=%s", event.event)
        return {"message": "Webhook received"}

    try:
        result = service.settle(GatewaySettlement.from_charge(event.data))
    except AppError:
        raise
    except Exception as e:
        logger.error(
            "webhook.failed: reference=%s error=%s", event.data.reference, e, exc_info=True
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_response(
                AppError(
                    "Webhook processing failed",
                    "internal_error",
                    status.HTTP_500_INTERNAL_SERVER_ERROR,
                )
            ),
        )

    if result.outcome == SettlementOutcome.ALREADY_PROCESSED:
        return {"message": "Already processed"}
    return {"message": "Webhook received"}


@router.get("/webhook", response_model=SettlementResponse)
def verify_online_payment(
    reference: str,
    service: SettlementService = Depends(get_settlement_service),  # noqa: B008
    gateway: PaystackClient = Depends(get_gateway),  # noqa: B008
) -> SettlementResponse:
    """Callback after the gateway checkout: ask the gateway and settle if it succeeded."""
    result = OnlinePaymentService(service.db, gateway, service).verify(reference)
    return to_settlement_response(result)


__all__ = ["router", "to_settlement_response"]
