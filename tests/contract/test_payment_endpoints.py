"""Contract tests for landlord and tenant payment endpoints."""

import asyncio
from decimal import Decimal

import httpx
import pytest

from rentpilot.api.app import app
from rentpilot.config import get_settings

pytestmark = pytest.mark.contract

TENANT_ID = 101
LANDLORD_ID = 201
LANDLORD = {"X-User-Id": str(LANDLORD_ID)}
TENANT = {"X-User-Id": str(TENANT_ID)}
PDF = b"%PDF-1.4 proof"


@pytest.fixture
def lease(make_lease, make_charge):
    lease = make_lease(tenant_id=TENANT_ID, landlord_id=LANDLORD_ID, rent_amount="1000.00")
    make_charge(lease, "2024-01", "500.00")
    make_charge(lease, "2024-02", "1000.00")
    return lease


def upload_proof(client, amount="700.00", reference="EFT-001", content_type="application/pdf"):
    return client.post(
        "/api/tenant/payments/proof",
        headers=TENANT,
        files={"file": ("slip.pdf", PDF, content_type)},
        data={"amount": amount, "reference": reference, "month": "2024-01"},
    )


class TestManualPaymentEndpoint:
    """POST /api/payments"""

    def test_requires_identity(self, client, lease):
        response = client.post(
            "/api/payments", json={"lease_id": lease.id, "amount": "700", "method": "CASH"}
        )

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "unauthenticated"

    def test_records_and_allocates(self, client, lease):
        response = client.post(
            "/api/payments",
            headers=LANDLORD,
            json={"lease_id": lease.id, "amount": "700", "method": "CASH"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["outcome"] == "SETTLED"
        assert Decimal(body["payment"]["amount"]) == Decimal("700")
        assert body["payment"]["method"] == "CASH"
        assert [Decimal(a["amount"]) for a in body["allocations"]] == [
            Decimal("500"),
            Decimal("200"),
        ]
        assert body["ledger"]["status"] == "SUCCESS"

    def test_other_landlord_forbidden(self, client, lease):
        response = client.post(
            "/api/payments",
            headers={"X-User-Id": "999"},
            json={"lease_id": lease.id, "amount": "700", "method": "CASH"},
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "unauthorized"

    def test_unknown_lease(self, client, db_session):
        response = client.post(
            "/api/payments",
            headers=LANDLORD,
            json={"lease_id": 9999, "amount": "10", "method": "CASH"},
        )

        assert response.status_code == 404

    def test_zero_amount(self, client, lease):
        response = client.post(
            "/api/payments",
            headers=LANDLORD,
            json={"lease_id": lease.id, "amount": "0", "method": "CASH"},
        )

        assert response.status_code == 400
        assert "greater than zero" in response.json()["error"]["message"]

    def test_fraction_of_a_cent(self, client, lease):
        response = client.post(
            "/api/payments",
            headers=LANDLORD,
            json={"lease_id": lease.id, "amount": "100.005", "method": "CASH"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation_error"

    def test_list_filters_by_method(self, client, lease):
        for method in ("CASH", "BANK_TRANSFER"):
            client.post(
                "/api/payments",
                headers=LANDLORD,
                json={"lease_id": lease.id, "amount": "100", "method": method},
            )

        everything = client.get("/api/payments", headers=LANDLORD)
        cash = client.get("/api/payments", headers=LANDLORD, params={"method": "CASH"})
        other_landlord = client.get("/api/payments", headers={"X-User-Id": "999"})

        assert len(everything.json()) == 2
        assert [p["method"] for p in cash.json()] == ["CASH"]
        assert other_landlord.json() == []


class TestProofEndpoints:
    """Proof upload, approval and rejection over HTTP."""

    def test_upload_then_approve(self, client, lease, storage):
        uploaded = upload_proof(client)

        assert uploaded.status_code == 201
        assert uploaded.json()["outcome"] == "PENDING_REVIEW"
        assert uploaded.json()["payment"] is None
        assert len(storage.files) == 1
        ledger_id = uploaded.json()["ledger"]["id"]

        approved = client.post(
            "/api/payments/approve", headers=LANDLORD, json={"ledger_id": ledger_id}
        )

        assert approved.status_code == 200
        assert approved.json()["outcome"] == "SETTLED"
        assert approved.json()["ledger"]["status"] == "SUCCESS"
        assert approved.json()["payment"]["reference"] == "EFT-001"

    def test_approve_twice_conflicts(self, client, lease):
        ledger_id = upload_proof(client).json()["ledger"]["id"]
        client.post("/api/payments/approve", headers=LANDLORD, json={"ledger_id": ledger_id})

        again = client.post(
            "/api/payments/approve", headers=LANDLORD, json={"ledger_id": ledger_id}
        )

        assert again.status_code == 409
        assert again.json()["error"]["code"] == "already_processed"

    def test_reject(self, client, lease):
        ledger_id = upload_proof(client).json()["ledger"]["id"]

        response = client.post(
            "/api/payments/reject",
            headers=LANDLORD,
            json={"ledger_id": ledger_id, "reason": "Not in bank statement"},
        )

        assert response.status_code == 200
        assert response.json()["outcome"] == "FAILED"
        assert response.json()["ledger"]["failure_reason"] == "Not in bank statement"

    def test_invalid_file_type(self, client, lease):
        response = upload_proof(client, content_type="text/plain")

        assert response.status_code == 400
        assert "Invalid file type" in response.json()["error"]["message"]

    def test_oversized_file_is_not_stored(self, client, lease, storage, test_settings):
        small_limit = test_settings.model_copy(update={"max_upload_bytes": 4})
        app.dependency_overrides[get_settings] = lambda: small_limit

        response = upload_proof(client)

        assert response.status_code == 400
        assert "File size exceeds" in response.json()["error"]["message"]
        assert storage.files == {}


class TestInitiateEndpoint:
    """POST /api/payments/initiate"""

    def test_opens_gateway_session(self, client, lease, gateway_handler):
        gateway_handler["handler"] = lambda request: httpx.Response(
            200,
            json={
                "status": True,
                "data": {"authorization_url": "https://checkout.test/s", "access_code": "s"},
            },
        )

        response = client.post(
            "/api/payments/initiate", headers=TENANT, json={"email": "tenant@example.com"}
        )

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "PENDING"
        assert Decimal(body["amount"]) == Decimal("1500.00")
        assert body["authorization_url"] == "https://checkout.test/s"

    def test_gateway_failure(self, client, lease, gateway_handler):
        gateway_handler["handler"] = lambda request: httpx.Response(502, json={})

        response = client.post(
            "/api/payments/initiate", headers=TENANT, json={"email": "tenant@example.com"}
        )

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "external_service_error"

    def test_gateway_refusal_is_not_retryable(self, client, lease, gateway_handler):
        gateway_handler["handler"] = lambda request: httpx.Response(
            400, json={"status": False, "message": "Invalid email"}
        )

        response = client.post(
            "/api/payments/initiate", headers=TENANT, json={"email": "tenant@example.com"}
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "external_service_rejected"

    def test_gateway_call_runs_off_the_event_loop(self, client, lease, gateway_handler):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            try:
                asyncio.get_running_loop()
                seen.append("event_loop")
            except RuntimeError:
                seen.append("worker_thread")
            return httpx.Response(
                200,
                json={
                    "status": True,
                    "data": {"authorization_url": "https://checkout.test/s", "access_code": "s"},
                },
            )

        gateway_handler["handler"] = handler

        response = client.post(
            "/api/payments/initiate", headers=TENANT, json={"email": "tenant@example.com"}
        )

        assert response.status_code == 201
        assert seen == ["worker_thread"]
