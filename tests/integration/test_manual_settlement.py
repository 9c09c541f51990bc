"""Integration tests for landlord-recorded manual payments."""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from rentpilot.api.errors import NotFoundError, UnauthorizedError, ValidationError
from rentpilot.models import (
    AuditLog,
    ChargeStatus,
    LedgerStatus,
    Notification,
    NotificationType,
    Payment,
    PaymentAllocation,
    PaymentMethod,
    RentCharge,
    TransactionLedger,
)
from rentpilot.services.charge_ledger_service import ChargeLedgerService
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


@pytest.fixture
def lease_with_arrears(make_lease, make_charge):
    """Lease with Jan (500 outstanding) and Feb (1000 outstanding)."""
    lease = make_lease(rent_amount="1000.00")
    jan = make_charge(lease, "2024-01", "500.00")
    feb = make_charge(lease, "2024-02", "1000.00")
    return lease, jan, feb


def manual(lease, amount: str, **kwargs) -> ManualSettlement:
    return ManualSettlement(
        landlord_id=LANDLORD_ID,
        lease_id=lease.id,
        amount=Decimal(amount),
        method=kwargs.pop("method", PaymentMethod.CASH),
        **kwargs,
    )


class TestManualSettlement:
    """Manual payment entry settles immediately."""

    def test_allocates_oldest_charge_first(self, db_session, service, lease_with_arrears):
        lease, jan, feb = lease_with_arrears

        result = service.settle(manual(lease, "700"))

        assert result.outcome == SettlementOutcome.SETTLED
        assert result.remainder == Decimal("0.00")
        db_session.expire_all()
        jan = db_session.get(RentCharge, jan.id)
        feb = db_session.get(RentCharge, feb.id)
        assert (jan.amount_paid, jan.status) == (Decimal("500.00"), ChargeStatus.PAID)
        assert (feb.amount_paid, feb.status) == (Decimal("200.00"), ChargeStatus.PARTIAL)

    def test_writes_payment_ledger_and_audit(self, db_session, service, lease_with_arrears):
        lease, _, _ = lease_with_arrears

        result = service.settle(manual(lease, "700", method=PaymentMethod.BANK_TRANSFER))

        ledger = result.ledger
        assert ledger.status == LedgerStatus.SUCCESS
        assert ledger.reference.startswith("MAN_")
        assert ledger.platform_fee == Decimal("0.00")
        assert ledger.net_amount == Decimal("700.00")
        assert ledger.payment_id == result.payment.id
        assert result.payment.method == PaymentMethod.BANK_TRANSFER

        audit = db_session.execute(select(AuditLog)).scalar_one()
        assert audit.action == "manual_payment_recorded"
        assert audit.actor_id == LANDLORD_ID

    def test_allocations_match_amount_paid(self, db_session, service, lease_with_arrears):
        lease, jan, feb = lease_with_arrears

        service.settle(manual(lease, "300"))
        service.settle(manual(lease, "650"))

        ledger_store = ChargeLedgerService(db_session)
        for charge_id in (jan.id, feb.id):
            charge = db_session.get(RentCharge, charge_id)
            assert ledger_store.allocated_total(charge_id) == charge.amount_paid
            assert Decimal("0") <= charge.amount_paid <= charge.amount_due

    def test_overpayment_remainder_is_reported(self, db_session, service, make_lease, make_charge):
        lease = make_lease()
        charge = make_charge(lease, "2024-01", "500.00")

        result = service.settle(manual(lease, "800"))

        assert result.remainder == Decimal("300.00")
        assert [a.amount for a in result.allocations] == [Decimal("500.00")]
        assert db_session.get(RentCharge, charge.id).status == ChargeStatus.PAID

    def test_same_reference_settles_once(self, db_session, service, lease_with_arrears):
        lease, _, _ = lease_with_arrears

        first = service.settle(manual(lease, "100", reference="BANK-REF-1"))
        second = service.settle(manual(lease, "100", reference="BANK-REF-1"))

        assert first.outcome == SettlementOutcome.SETTLED
        assert second.outcome == SettlementOutcome.ALREADY_PROCESSED
        assert second.ledger.id == first.ledger.id
        assert count(db_session, Payment) == 1

    def test_payment_received_notification(self, db_session, service, lease_with_arrears):
        lease, _, _ = lease_with_arrears

        service.settle(manual(lease, "100"))

        notification = db_session.execute(select(Notification)).scalar_one()
        assert notification.user_id == lease.tenant_id
        assert notification.type == NotificationType.PAYMENT_RECEIVED


class TestManualSettlementRejections:
    """Requests rejected before anything is written."""

    def test_other_landlords_lease(self, db_session, service, lease_with_arrears):
        lease, _, _ = lease_with_arrears
        request = ManualSettlement(
            landlord_id=999, lease_id=lease.id, amount=Decimal("100"), method=PaymentMethod.CASH
        )

        with pytest.raises(UnauthorizedError):
            service.settle(request)
        assert count(db_session, Payment) == 0

    def test_tenant_mismatch(self, db_session, service, lease_with_arrears):
        lease, _, _ = lease_with_arrears

        with pytest.raises(ValidationError):
            service.settle(manual(lease, "100", tenant_id=lease.tenant_id + 1))

    @pytest.mark.parametrize("amount", ["0", "-50"])
    def test_non_positive_amount(self, db_session, service, lease_with_arrears, amount):
        lease, _, _ = lease_with_arrears

        with pytest.raises(ValidationError):
            service.settle(manual(lease, amount))
        assert count(db_session, TransactionLedger) == 0

    def test_fraction_of_a_cent_is_not_rounded(self, db_session, service, lease_with_arrears):
        lease, jan, _ = lease_with_arrears

        with pytest.raises(ValidationError, match="fractions of a cent"):
            service.settle(manual(lease, "100.005"))

        assert count(db_session, Payment) == 0
        assert count(db_session, TransactionLedger) == 0
        assert db_session.get(RentCharge, jan.id).amount_paid == Decimal("0.00")

    def test_unknown_lease(self, db_session, service):
        request = ManualSettlement(
            landlord_id=LANDLORD_ID, lease_id=12345, amount=Decimal("10"), method=PaymentMethod.CASH
        )

        with pytest.raises(NotFoundError):
            service.settle(request)


class TestAtomicity:
    """A failure after validation leaves no partial financial records."""

    def test_ledger_failure_rolls_back_payment_and_allocations(
        self, db_session, service, lease_with_arrears, monkeypatch
    ):
        lease, jan, feb = lease_with_arrears

        def broken_write_ledger(self, *args, **kwargs):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(SettlementService, "_write_ledger", broken_write_ledger)

        with pytest.raises(RuntimeError, match="ledger unavailable"):
            service.settle(manual(lease, "700"))

        db_session.expire_all()
        assert count(db_session, Payment) == 0
        assert count(db_session, PaymentAllocation) == 0
        assert count(db_session, TransactionLedger) == 0
        for charge_id in (jan.id, feb.id):
            charge = db_session.get(RentCharge, charge_id)
            assert charge.amount_paid == Decimal("0.00")
            assert charge.status == ChargeStatus.UNPAID

    def test_notification_failure_keeps_settlement(
        self, db_session, test_settings, lease_with_arrears
    ):
        lease, _, _ = lease_with_arrears

        class BrokenNotifications:
            def payment_received(self, *args):
                raise RuntimeError("mail server down")

        service = SettlementService(
            db_session, settings=test_settings, notifications=BrokenNotifications()
        )

        result = service.settle(manual(lease, "100"))

        assert result.outcome == SettlementOutcome.SETTLED
        assert count(db_session, Payment) == 1
        assert count(db_session, TransactionLedger) == 1
