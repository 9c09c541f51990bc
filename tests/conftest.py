"""Pytest configuration and shared fixtures."""

import hashlib
import hmac
import json
import os
from datetime import date
from decimal import Decimal

# Point the app at an in-memory database BEFORE anything reads settings
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from rentpilot.api.app import app  # noqa: E402
from rentpilot.api.deps import get_document_storage, get_gateway  # noqa: E402
from rentpilot.config import Settings, get_settings  # noqa: E402
from rentpilot.models import (  # noqa: E402
    Base,
    ChargeStatus,
    Lease,
    LeaseStatus,
    OnlinePayment,
    OnlinePaymentStatus,
    RentCharge,
)
from rentpilot.services import engine, get_db  # noqa: E402
from rentpilot.services.gateway import PaystackClient  # noqa: E402

WEBHOOK_SECRET = "whsec_test_secret"
CRON_SECRET = "cron_test_secret"

TENANT_ID = 101
LANDLORD_ID = 201


class InMemoryStorage:
    """DocumentStorage that keeps files in a dict."""

    def __init__(self):
        self.files = {}

    def save(self, filename: str, content: bytes) -> str:
        self.files[filename] = content
        return f"/uploads/{filename}"

    def delete(self, file_url: str) -> None:
        self.files.pop(file_url.rsplit("/", 1)[-1], None)


def sign(payload: bytes, secret: str = WEBHOOK_SECRET) -> str:
    """HMAC-SHA512 signature the gateway would send for a body."""
    return hmac.new(secret.encode(), payload, hashlib.sha512).hexdigest()


def charge_success_body(reference: str, amount_minor: int, **extra) -> bytes:
    """Raw charge.success webhook body."""
    data = {
        "reference": reference,
        "amount": amount_minor,
        "paid_at": "2024-02-10T09:30:00Z",
        "channel": "card",
        "currency": "ZAR",
        "status": "success",
    }
    data.update(extra)
    return json.dumps({"event": "charge.success", "data": data}).encode()


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings with secrets configured and uploads under a temp dir."""
    return Settings(
        environment="production",
        database_url="sqlite:///:memory:",
        paystack_secret_key="sk_test",
        paystack_webhook_secret=WEBHOOK_SECRET,
        paystack_base_url="https://gateway.test",
        cron_secret=CRON_SECRET,
        upload_dir=str(tmp_path / "uploads"),
        platform_fee_percent=Decimal("2"),
    )


@pytest.fixture(scope="function")
def db_session():
    """Provide a database session with all tables created."""
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def gateway_handler():
    """Mutable holder for the mocked gateway's request handler.

    Tests set `gateway_handler["handler"]` to a function taking an
    httpx.Request and returning an httpx.Response.
    """

    def default(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"status": False, "message": "No handler configured"})

    return {"handler": default}


@pytest.fixture
def client(db_session, test_settings, storage, gateway_handler):
    """Provide a FastAPI test client bound to the test session and mocks."""

    def override_get_db():
        yield db_session

    def override_get_gateway():
        transport = httpx.MockTransport(lambda request: gateway_handler["handler"](request))
        gateway = PaystackClient(test_settings, transport=transport)
        try:
            yield gateway
        finally:
            gateway.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_gateway] = override_get_gateway
    app.dependency_overrides[get_document_storage] = lambda: storage

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def make_lease(db_session):
    """Factory for committed leases."""

    def _make(
        tenant_id: int = TENANT_ID,
        landlord_id: int = LANDLORD_ID,
        rent_amount: str = "1500.00",
        due_day: int = 1,
        status: LeaseStatus = LeaseStatus.ACTIVE,
    ) -> Lease:
        lease = Lease(
            tenant_id=tenant_id,
            landlord_id=landlord_id,
            property_id=1,
            unit_id=1,
            rent_amount=Decimal(rent_amount),
            due_day=due_day,
            status=status,
            start_date=date(2024, 1, 1),
        )
        db_session.add(lease)
        db_session.commit()
        return lease

    return _make


@pytest.fixture
def make_charge(db_session):
    """Factory for committed rent charges."""

    def _make(
        lease: Lease,
        month: str,
        amount_due: str,
        amount_paid: str = "0.00",
        status: ChargeStatus = ChargeStatus.UNPAID,
    ) -> RentCharge:
        year, mon = (int(part) for part in month.split("-"))
        charge = RentCharge(
            lease_id=lease.id,
            month=month,
            amount_due=Decimal(amount_due),
            amount_paid=Decimal(amount_paid),
            status=status,
            due_date=date(year, mon, lease.due_day),
        )
        db_session.add(charge)
        db_session.commit()
        return charge

    return _make


@pytest.fixture
def make_online_payment(db_session):
    """Factory for a PENDING online payment session."""

    def _make(lease: Lease, reference: str, amount: str) -> OnlinePayment:
        online = OnlinePayment(
            tenant_id=lease.tenant_id,
            lease_id=lease.id,
            amount=Decimal(amount),
            reference=reference,
            status=OnlinePaymentStatus.PENDING,
        )
        db_session.add(online)
        db_session.commit()
        return online

    return _make
