"""Integration tests for the idempotency guard's unique-reference fallback."""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from rentpilot.api.errors import AlreadyProcessedError, ValidationError
from rentpilot.models import (
    ChargeStatus,
    LedgerStatus,
    Payment,
    PaymentAllocation,
    PaymentMethod,
    RentCharge,
    TransactionLedger,
)
from rentpilot.services.idempotency import IdempotencyGuard
from rentpilot.services.settlement_service import (
    ManualSettlement,
    SettlementOutcome,
    SettlementService,
)

pytestmark = pytest.mark.integration

LANDLORD_ID = 201


def count(db_session, model) -> int:
    return db_session.execute(select(func.count(model.id))).scalar_one()


@pytest.fixture
def service(db_session, test_settings):
    return SettlementService(db_session, settings=test_settings)


def manual(lease, amount: str, reference: str) -> ManualSettlement:
    return ManualSettlement(
        landlord_id=LANDLORD_ID,
        lease_id=lease.id,
        amount=Decimal(amount),
        method=PaymentMethod.BANK_TRANSFER,
        reference=reference,
    )


class TestConcurrentDuplicate:
    """A duplicate that slipped past the SUCCESS check is stopped by the unique reference."""

    @pytest.fixture
    def skip_precheck(self, monkeypatch):
        # Both requests read "not settled" before either commits
        monkeypatch.setattr(IdempotencyGuard, "ensure_not_settled", lambda self, reference: None)

    def test_second_writer_gets_already_processed(
        self, db_session, service, make_lease, make_charge, skip_precheck
    ):
        lease = make_lease(rent_amount="1000.00")
        jan = make_charge(lease, "2024-01", "1000.00")

        first = service.settle(manual(lease, "400", "BANK-RACE-1"))
        second = service.settle(manual(lease, "400", "BANK-RACE-1"))

        assert first.outcome == SettlementOutcome.SETTLED
        assert second.outcome == SettlementOutcome.ALREADY_PROCESSED
        assert second.ledger.id == first.ledger.id
        assert count(db_session, Payment) == 1
        assert count(db_session, PaymentAllocation) == 1
        assert count(db_session, TransactionLedger) == 1

        db_session.expire_all()
        charge = db_session.get(RentCharge, jan.id)
        assert (charge.amount_paid, charge.status) == (Decimal("400.00"), ChargeStatus.PARTIAL)

    def test_guard_converts_integrity_error(self, db_session, make_lease, skip_precheck):
        lease = make_lease()
        db_session.add(
            TransactionLedger(
                tenant_id=lease.tenant_id,
                landlord_id=lease.landlord_id,
                property_id=lease.property_id,
                lease_id=lease.id,
                amount=Decimal("10.00"),
                platform_fee=Decimal("0.00"),
                net_amount=Decimal("10.00"),
                payment_method=PaymentMethod.CASH,
                status=LedgerStatus.SUCCESS,
                reference="REF-TAKEN",
            )
        )
        db_session.commit()

        guard = IdempotencyGuard(db_session)
        with pytest.raises(AlreadyProcessedError):
            with guard.guard("REF-TAKEN"):
                db_session.add(
                    TransactionLedger(
                        tenant_id=lease.tenant_id,
                        landlord_id=lease.landlord_id,
                        property_id=lease.property_id,
                        lease_id=lease.id,
                        amount=Decimal("10.00"),
                        platform_fee=Decimal("0.00"),
                        net_amount=Decimal("10.00"),
                        payment_method=PaymentMethod.CASH,
                        status=LedgerStatus.SUCCESS,
                        reference="REF-TAKEN",
                    )
                )

        assert count(db_session, TransactionLedger) == 1


class TestReferenceClash:
    """A reference held by an entry that is not SUCCESS is refused, not settled twice."""

    def test_manual_reference_taken_by_pending_proof(
        self, db_session, service, storage, make_lease, make_charge
    ):
        lease = make_lease()
        make_charge(lease, "2024-01", "1500.00")
        service.submit_payment_proof(
            tenant_id=lease.tenant_id,
            amount="1500.00",
            filename="slip.pdf",
            content_type="application/pdf",
            content=b"%PDF-1.4 proof",
            storage=storage,
            reference="EFT-SHARED",
        )

        with pytest.raises(ValidationError, match="already in use"):
            service.settle(manual(lease, "1500", "EFT-SHARED"))

        assert count(db_session, Payment) == 0
        ledger = db_session.execute(select(TransactionLedger)).scalar_one()
        assert ledger.status == LedgerStatus.PENDING
