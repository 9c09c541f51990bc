"""Rent ledger routes."""

from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from rentpilot.api.deps import get_current_user_id
from rentpilot.api.schemas import RentChargeResponse, RentLedgerResponse
from rentpilot.models import ChargeStatus
from rentpilot.services import get_db
from rentpilot.services.charge_generator import month_key, parse_month_key
from rentpilot.services.charge_ledger_service import ChargeLedgerService

router = APIRouter(prefix="/api/rent-ledger", tags=["rent-ledger"])


@router.get("", response_model=RentLedgerResponse)
async def get_rent_ledger(
    month: str | None = None,
    status: ChargeStatus | None = None,
    landlord_id: int = Depends(get_current_user_id),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
) -> RentLedgerResponse:
    """Charges on the caller's leases for one month (default: current month)."""
    target = month or month_key(date.today())
    parse_month_key(target)

    summary = ChargeLedgerService(db).month_summary(landlord_id, target, status)
    return RentLedgerResponse(
        month=summary.month,
        rent_charges=[RentChargeResponse.model_validate(c) for c in summary.charges],
        total_due=summary.total_due,
        total_collected=summary.total_collected,
        outstanding=summary.outstanding,
    )


__all__ = ["router"]
