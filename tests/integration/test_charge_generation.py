"""Integration tests for scheduled rent charge generation."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from rentpilot.api.errors import ValidationError
from rentpilot.models import ChargeStatus, LeaseStatus, Notification, NotificationType, RentCharge
from rentpilot.services.charge_generator import ChargeGenerator, parse_month_key

pytestmark = pytest.mark.integration


def charge_count(db_session) -> int:
    return db_session.execute(select(func.count(RentCharge.id))).scalar_one()


class TestGenerateRentCharges:
    """Charge generation for active leases."""

    def test_creates_unpaid_charge_per_active_lease(self, db_session, make_lease):
        first = make_lease(tenant_id=1, rent_amount="1500.00", due_day=5)
        make_lease(tenant_id=2, rent_amount="900.00", due_day=1)
        make_lease(tenant_id=3, status=LeaseStatus.TERMINATED)

        result = ChargeGenerator(db_session).generate_rent_charges(month="2024-03")

        assert result.processed == 2
        assert result.created == 2
        assert result.skipped == 0
        assert result.errors == []

        charge = db_session.execute(
            select(RentCharge).where(RentCharge.lease_id == first.id)
        ).scalar_one()
        assert charge.month == "2024-03"
        assert charge.amount_due == Decimal("1500.00")
        assert charge.amount_paid == Decimal("0.00")
        assert charge.status == ChargeStatus.UNPAID
        assert charge.due_date == date(2024, 3, 5)

    def test_rerun_is_idempotent(self, db_session, make_lease):
        make_lease(tenant_id=1)
        make_lease(tenant_id=2)
        generator = ChargeGenerator(db_session)

        generator.generate_rent_charges(month="2024-03")
        second = generator.generate_rent_charges(month="2024-03")

        assert second.created == 0
        assert second.skipped == 2
        assert charge_count(db_session) == 2

    def test_bad_due_day_does_not_stop_other_leases(self, db_session, make_lease):
        bad = make_lease(tenant_id=1, due_day=31)
        make_lease(tenant_id=2, due_day=10)

        result = ChargeGenerator(db_session).generate_rent_charges(month="2024-02")

        assert result.created == 1
        assert len(result.errors) == 1
        assert result.errors[0]["lease_id"] == bad.id
        assert "due day" in result.errors[0]["error"].lower()
        assert charge_count(db_session) == 1

    def test_defaults_to_current_month(self, db_session, make_lease):
        make_lease()

        result = ChargeGenerator(db_session).generate_rent_charges(today=date(2024, 11, 20))

        assert result.month == "2024-11"
        assert result.created == 1

    def test_invalid_month_rejected(self, db_session):
        with pytest.raises(ValidationError):
            ChargeGenerator(db_session).generate_rent_charges(month="2024-13")

    def test_rent_due_notification_sent(self, db_session, make_lease):
        lease = make_lease(tenant_id=42)

        ChargeGenerator(db_session).generate_rent_charges(month="2024-03")

        notification = db_session.execute(select(Notification)).scalar_one()
        assert notification.user_id == lease.tenant_id
        assert notification.type == NotificationType.RENT_DUE
        assert "2024-03" in notification.message


class TestMonthKey:
    def test_parse(self):
        assert parse_month_key("2024-01") == (2024, 1)

    @pytest.mark.parametrize("value", ["2024-1", "24-01", "2024/01", "", "2024-00"])
    def test_parse_rejects_malformed(self, value):
        with pytest.raises(ValidationError):
            parse_month_key(value)
