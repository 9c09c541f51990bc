"""Tenant routes."""

from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from rentpilot.api.deps import get_current_user_id, get_document_storage, get_settlement_service
from rentpilot.api.errors import ValidationError
from rentpilot.api.payments import to_settlement_response
from rentpilot.api.schemas import SettlementResponse
from rentpilot.services.document_storage import DocumentStorage
from rentpilot.services.settlement_service import SettlementService

router = APIRouter(prefix="/api/tenant", tags=["tenant"])


@router.post(
    "/payments/proof", response_model=SettlementResponse, status_code=status.HTTP_201_CREATED
)
async def upload_payment_proof(
    file: UploadFile = File(...),  # noqa: B008
    amount: str = Form(...),  # noqa: B008
    reference: str | None = Form(None),  # noqa: B008
    month: str | None = Form(None),  # noqa: B008
    tenant_id: int = Depends(get_current_user_id),  # noqa: B008
    service: SettlementService = Depends(get_settlement_service),  # noqa: B008
    storage: DocumentStorage = Depends(get_document_storage),  # noqa: B008
) -> SettlementResponse:
    """Upload proof of an out-of-band transfer for landlord review.

    Returns:
        201: SettlementResponse with outcome PENDING_REVIEW (or the current
             state when the same reference was already submitted)
        400: Bad amount, file type, size, or no active lease
    """
    limit = service.settings.max_upload_bytes
    if file.size is not None and file.size > limit:
        raise ValidationError(f"File size exceeds {limit // (1024 * 1024)}MB limit")
    # One byte past the limit is enough for the size check to reject it
    content = await file.read(limit + 1)
    result = service.submit_payment_proof(
        tenant_id=tenant_id,
        amount=amount,
        filename=file.filename or "proof",
        content_type=file.content_type or "",
        content=content,
        storage=storage,
        reference=reference,
        month=month,
    )
    return to_settlement_response(result)


__all__ = ["router"]
