"""Settlement service: turns reported money events into payments and ledger entries.

Three channels feed one state machine:
- Manual entry by the landlord:        INITIATED -> SETTLED
- Proof-of-payment upload + approval:  INITIATED -> PENDING_REVIEW -> SETTLED | FAILED
- Gateway webhook (online payment):    INITIATED -> SETTLED | FAILED

Every settling request goes through settle(), which dispatches on the request
type and ends in _record_payment(), the single place a Payment is created and
allocated against the lease's outstanding charges. Each attempt is one
database transaction: payment, allocations, charge updates, ledger, payout
and audit rows commit together or not at all.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator, List, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rentpilot.api.errors import (
    AlreadyProcessedError,
    InvalidTransitionError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from rentpilot.api.schemas import ChargeData
from rentpilot.config import Settings, get_settings
from rentpilot.models import (
    Document,
    DocumentType,
    Lease,
    LeaseStatus,
    LedgerStatus,
    OnlinePayment,
    OnlinePaymentStatus,
    Payment,
    PaymentAllocation,
    PaymentMethod,
    Payout,
    PayoutStatus,
    TransactionLedger,
)
from rentpilot.services.allocation_service import (
    ZERO,
    AllocationService,
    to_cents,
    to_money,
)
from rentpilot.services.audit_service import AuditService
from rentpilot.services.charge_ledger_service import ChargeLedgerService
from rentpilot.services.document_storage import DocumentStorage
from rentpilot.services.gateway import generate_reference
from rentpilot.services.idempotency import IdempotencyGuard
from rentpilot.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

ALLOWED_PROOF_TYPES = ("image/jpeg", "image/png", "application/pdf")


class SettlementState(str, Enum):
    INITIATED = "INITIATED"
    PENDING_REVIEW = "PENDING_REVIEW"
    SETTLED = "SETTLED"
    FAILED = "FAILED"


ALLOWED_TRANSITIONS = {
    SettlementState.INITIATED: {
        SettlementState.PENDING_REVIEW,
        SettlementState.SETTLED,
        SettlementState.FAILED,
    },
    SettlementState.PENDING_REVIEW: {SettlementState.SETTLED, SettlementState.FAILED},
    SettlementState.SETTLED: set(),
    SettlementState.FAILED: set(),
}


def transition(current: SettlementState, target: SettlementState) -> SettlementState:
    """Validate a state change and return the new state.

    Raises:
        InvalidTransitionError: If target is not reachable from current
    """
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Cannot move settlement from {current.value} to {target.value}"
        )
    return target


def ledger_state(ledger: TransactionLedger) -> SettlementState:
    return {
        LedgerStatus.PENDING: SettlementState.PENDING_REVIEW,
        LedgerStatus.SUCCESS: SettlementState.SETTLED,
        LedgerStatus.FAILED: SettlementState.FAILED,
    }[ledger.status]


def online_payment_state(online: OnlinePayment) -> SettlementState:
    return {
        OnlinePaymentStatus.PENDING: SettlementState.INITIATED,
        OnlinePaymentStatus.SUCCESS: SettlementState.SETTLED,
        OnlinePaymentStatus.FAILED: SettlementState.FAILED,
    }[online.status]


# Settlement requests


@dataclass(frozen=True)
class ManualSettlement:
    """Landlord records money received outside the platform."""

    landlord_id: int
    lease_id: int
    amount: Decimal
    method: PaymentMethod
    tenant_id: Optional[int] = None
    date_paid: Optional[datetime] = None
    reference: Optional[str] = None


@dataclass(frozen=True)
class ProofApproval:
    """Landlord approves a pending proof-of-payment ledger entry."""

    landlord_id: int
    ledger_id: int


@dataclass(frozen=True)
class GatewaySettlement:
    """Gateway reports a completed charge for a payment session we opened."""

    reference: str
    amount_minor: int
    paid_at: datetime
    channel: Optional[str] = None
    gateway_response: Optional[dict[str, Any]] = None

    @classmethod
    def from_charge(cls, charge: ChargeData) -> "GatewaySettlement":
        return cls(
            reference=charge.reference,
            amount_minor=charge.amount,
            paid_at=charge.paid_at,
            channel=charge.channel,
            gateway_response=charge.model_dump(mode="json"),
        )


SettlementRequest = Union[ManualSettlement, ProofApproval, GatewaySettlement]


class SettlementOutcome(str, Enum):
    SETTLED = "SETTLED"
    ALREADY_PROCESSED = "ALREADY_PROCESSED"
    PENDING_REVIEW = "PENDING_REVIEW"
    PENDING = "PENDING"
    FAILED = "FAILED"


@dataclass
class SettlementResult:
    outcome: SettlementOutcome
    payment: Optional[Payment] = None
    ledger: Optional[TransactionLedger] = None
    payout: Optional[Payout] = None
    allocations: List[PaymentAllocation] = field(default_factory=list)
    remainder: Decimal = ZERO


@dataclass
class _RecordedPayment:
    payment: Payment
    allocations: List[PaymentAllocation]
    remainder: Decimal


class SettlementService:
    """Runs settlement for all payment channels."""

    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        notifications: Optional[NotificationService] = None,
        allocator: Optional[AllocationService] = None,
    ):
        """Initialize settlement service.

        Args:
            db: SQLAlchemy session; this service owns its transactions
            settings: Application settings (platform fee, upload limits)
            notifications: Post-commit notification sink (defaults to one on db)
            allocator: Allocation engine
        """
        self.db = db
        self.settings = settings or get_settings()
        self.notifications = notifications or NotificationService(db)
        self.allocator = allocator or AllocationService()
        self.charge_ledger = ChargeLedgerService(db)
        self.guard = IdempotencyGuard(db)

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    # Entry point

    def settle(self, request: SettlementRequest) -> SettlementResult:
        """Settle one money event.

        Manual and gateway requests whose reference already settled return an
        ALREADY_PROCESSED result. An approval of a ledger entry that is no
        longer pending raises AlreadyProcessedError for the landlord to see.

        Args:
            request: ManualSettlement, ProofApproval or GatewaySettlement

        Returns:
            SettlementResult describing what was (or was not) written
        """
        if isinstance(request, ProofApproval):
            result = self._settle_proof_approval(request)
        elif isinstance(request, (ManualSettlement, GatewaySettlement)):
            try:
                if isinstance(request, ManualSettlement):
                    result = self._settle_manual(request)
                else:
                    result = self._settle_gateway(request)
            except AlreadyProcessedError:
                reference = request.reference
                return SettlementResult(
                    outcome=SettlementOutcome.ALREADY_PROCESSED,
                    ledger=self.guard.find_settled(reference) if reference else None,
                )
        else:
            raise TypeError(f"Unsupported settlement request: {type(request).__name__}")

        if result.outcome == SettlementOutcome.SETTLED:
            self._after_commit(
                self.notifications.payment_received,
                result.payment.tenant_id,
                result.payment.amount,
                result.ledger.reference,
            )
        return result

    # Channels

    def _settle_manual(self, request: ManualSettlement) -> SettlementResult:
        amount = self.validate_amount(request.amount)
        lease = self._get_lease(request.lease_id)
        if lease.landlord_id != request.landlord_id:
            raise UnauthorizedError("Lease does not belong to this landlord")
        if request.tenant_id is not None and request.tenant_id != lease.tenant_id:
            raise ValidationError("Tenant does not hold this lease")

        reference = request.reference or generate_reference("MAN")
        date_paid = request.date_paid or datetime.now(timezone.utc)

        with self._transaction(), self.guard.guard(reference):
            transition(SettlementState.INITIATED, SettlementState.SETTLED)
            recorded = self._record_payment(
                lease, amount, request.method, date_paid, request.reference
            )
            ledger = self._write_ledger(
                lease,
                amount=amount,
                platform_fee=ZERO,
                method=request.method,
                reference=reference,
                payment=recorded.payment,
            )
            AuditService.ledger_event(
                self.db,
                ledger.id,
                "manual_payment_recorded",
                actor_id=request.landlord_id,
                amount=amount,
                reference=reference,
            )

        logger.info(
            "settlement.manual: lease_id=%d payment_id=%d amount=%s reference=%s",
            lease.id,
            recorded.payment.id,
            amount,
            reference,
        )
        return SettlementResult(
            outcome=SettlementOutcome.SETTLED,
            payment=recorded.payment,
            ledger=ledger,
            allocations=recorded.allocations,
            remainder=recorded.remainder,
        )

    def _settle_proof_approval(self, request: ProofApproval) -> SettlementResult:
        with self._transaction():
            ledger = self._lock_ledger_for_review(request.ledger_id, request.landlord_id)
            transition(ledger_state(ledger), SettlementState.SETTLED)

            lease = self._get_lease(ledger.lease_id)
            proof_url = ledger.document.file_url if ledger.document else None
            recorded = self._record_payment(
                lease,
                to_money(ledger.amount),
                ledger.payment_method,
                ledger.created_at,
                ledger.reference,
                proof_url=proof_url,
            )
            ledger.status = LedgerStatus.SUCCESS
            ledger.payment_id = recorded.payment.id
            AuditService.ledger_event(
                self.db,
                ledger.id,
                "approved",
                actor_id=request.landlord_id,
                payment_id=recorded.payment.id,
                status=LedgerStatus.SUCCESS,
            )
            self.db.flush()

        logger.info(
            "settlement.approved: ledger_id=%d payment_id=%d amount=%s",
            ledger.id,
            recorded.payment.id,
            ledger.amount,
        )
        return SettlementResult(
            outcome=SettlementOutcome.SETTLED,
            payment=recorded.payment,
            ledger=ledger,
            allocations=recorded.allocations,
            remainder=recorded.remainder,
        )

    def _settle_gateway(self, request: GatewaySettlement) -> SettlementResult:
        if request.amount_minor <= 0:
            raise ValidationError("Gateway amount must be greater than zero")
        split = self.allocator.calculate_platform_fee(
            Decimal(request.amount_minor) / 100, self.settings.platform_fee_percent
        )

        with self._transaction():
            online = self.db.execute(
                select(OnlinePayment)
                .where(OnlinePayment.reference == request.reference)
                .with_for_update()
            ).scalar_one_or_none()
            if online is None:
                # A charge we never initiated: surface it, never swallow it
                logger.error(
                    "settlement.webhook.unknown_reference: reference=%s amount_minor=%d",
                    request.reference,
                    request.amount_minor,
                )
                raise NotFoundError(f"Payment {request.reference} not found")

            if online.status == OnlinePaymentStatus.SUCCESS:
                logger.info("settlement.webhook.duplicate: reference=%s", request.reference)
                raise AlreadyProcessedError(f"Payment {request.reference} already processed")

            transition(online_payment_state(online), SettlementState.SETTLED)
            if to_money(online.amount) != split.gross:
                logger.warning(
                    "settlement.webhook.amount_mismatch: reference=%s expected=%s received=%s",
                    request.reference,
                    online.amount,
                    split.gross,
                )

            lease = self._get_lease(online.lease_id)
            with self.guard.guard(request.reference):
                online.status = OnlinePaymentStatus.SUCCESS
                online.paid_at = request.paid_at
                online.gateway_response = request.gateway_response

                recorded = self._record_payment(
                    lease, split.gross, PaymentMethod.ONLINE, request.paid_at, request.reference
                )
                ledger = self._write_ledger(
                    lease,
                    amount=split.gross,
                    platform_fee=split.platform_fee,
                    method=PaymentMethod.ONLINE,
                    reference=request.reference,
                    payment=recorded.payment,
                    online_payment=online,
                )
                payout = Payout(
                    ledger_id=ledger.id,
                    landlord_id=lease.landlord_id,
                    amount=split.gross,
                    platform_fee=split.platform_fee,
                    net_amount=split.net_amount,
                    status=PayoutStatus.COMPLETED,
                    processed_at=datetime.now(timezone.utc),
                )
                self.db.add(payout)
                AuditService.ledger_event(
                    self.db,
                    ledger.id,
                    "webhook_settled",
                    reference=request.reference,
                    gross=split.gross,
                    platform_fee=split.platform_fee,
                    channel=request.channel,
                )

        logger.info(
            "settlement.webhook: reference=%s payment_id=%d gross=%s fee=%s net=%s",
            request.reference,
            recorded.payment.id,
            split.gross,
            split.platform_fee,
            split.net_amount,
        )
        return SettlementResult(
            outcome=SettlementOutcome.SETTLED,
            payment=recorded.payment,
            ledger=ledger,
            payout=payout,
            allocations=recorded.allocations,
            remainder=recorded.remainder,
        )

    # Proof of payment (pending review)

    def submit_payment_proof(
        self,
        tenant_id: int,
        amount,
        filename: str,
        content_type: str,
        content: bytes,
        storage: DocumentStorage,
        reference: Optional[str] = None,
        month: Optional[str] = None,
    ) -> SettlementResult:
        """Record a tenant's proof of an out-of-band bank transfer.

        Creates a Document and a PENDING ledger entry only. Money is applied to
        charges when the landlord approves.

        Args:
            tenant_id: Uploading tenant
            amount: Claimed amount
            filename: Original file name
            content_type: MIME type of the upload
            content: File bytes
            storage: Backend that keeps the file
            reference: Bank reference (defaults to PROOF-<timestamp>)
            month: Optional billing month the tenant says this covers

        Returns:
            SettlementResult with outcome PENDING_REVIEW (or the existing state of a
            ledger entry already submitted under this reference)

        Raises:
            ValidationError: Bad amount or file, no active lease, reference owned by someone else
        """
        amount = self.validate_amount(amount)
        if not content:
            raise ValidationError("File is required")
        if len(content) > self.settings.max_upload_bytes:
            raise ValidationError(
                f"File size exceeds {self.settings.max_upload_bytes // (1024 * 1024)}MB limit"
            )
        if content_type not in ALLOWED_PROOF_TYPES:
            raise ValidationError("Invalid file type. Only JPEG, PNG and PDF are allowed.")

        lease = self.get_active_lease(tenant_id)
        reference = (reference or "").strip() or f"PROOF-{int(time.time() * 1000)}"

        existing = self.guard.find_any(reference)
        if existing is not None:
            return self._resubmitted_proof(existing, tenant_id)

        suffix = filename.rsplit(".", 1)[-1] if "." in filename else "bin"
        stored_name = f"proof_{tenant_id}_{int(time.time() * 1000)}.{suffix}"
        file_url = storage.save(stored_name, content)
        label = month or datetime.now(timezone.utc).strftime("%Y-%m")

        try:
            with self._transaction():
                transition(SettlementState.INITIATED, SettlementState.PENDING_REVIEW)
                document = Document(
                    filename=f"Proof of Payment - {label}",
                    file_url=file_url,
                    content_type=content_type,
                    size_bytes=len(content),
                    doc_type=DocumentType.RECEIPT,
                    lease_id=lease.id,
                    uploaded_by_id=tenant_id,
                )
                self.db.add(document)
                self.db.flush()
                ledger = self._write_ledger(
                    lease,
                    amount=amount,
                    platform_fee=ZERO,
                    method=PaymentMethod.BANK_TRANSFER,
                    reference=reference,
                    status=LedgerStatus.PENDING,
                    document=document,
                )
                AuditService.ledger_event(
                    self.db,
                    ledger.id,
                    "proof_uploaded",
                    actor_id=tenant_id,
                    document_id=document.id,
                    amount=amount,
                    file_url=file_url,
                )
        except Exception as e:
            # No ledger row points at the stored file any more
            self._discard_upload(storage, file_url)
            if isinstance(e, IntegrityError) and self.guard.find_any(reference) is not None:
                # Same reference submitted concurrently
                logger.warning("settlement.proof.race: reference=%s", reference)
                raise ValidationError(f"Reference {reference} is already in use") from e
            raise

        logger.info(
            "settlement.proof_uploaded: ledger_id=%d lease_id=%d amount=%s reference=%s",
            ledger.id,
            lease.id,
            amount,
            reference,
        )
        self._after_commit(self.notifications.proof_uploaded, lease.landlord_id, amount, reference)
        return SettlementResult(outcome=SettlementOutcome.PENDING_REVIEW, ledger=ledger)

    @staticmethod
    def _discard_upload(storage: DocumentStorage, file_url: str) -> None:
        try:
            storage.delete(file_url)
        except OSError as e:
            logger.error("settlement.proof.orphaned_file: file_url=%s error=%s", file_url, e)

    def _resubmitted_proof(self, existing: TransactionLedger, tenant_id: int) -> SettlementResult:
        if existing.tenant_id != tenant_id:
            raise ValidationError(f"Reference {existing.reference} is already in use")
        outcome = {
            LedgerStatus.PENDING: SettlementOutcome.PENDING_REVIEW,
            LedgerStatus.SUCCESS: SettlementOutcome.ALREADY_PROCESSED,
            LedgerStatus.FAILED: SettlementOutcome.FAILED,
        }[existing.status]
        logger.info(
            "settlement.proof.resubmitted: reference=%s status=%s",
            existing.reference,
            existing.status.value,
        )
        return SettlementResult(outcome=outcome, ledger=existing)

    def reject_payment_proof(
        self, landlord_id: int, ledger_id: int, reason: Optional[str] = None
    ) -> SettlementResult:
        """Reject a pending proof. The ledger entry ends FAILED and no Payment is created.

        Raises:
            NotFoundError, UnauthorizedError, AlreadyProcessedError
        """
        with self._transaction():
            ledger = self._lock_ledger_for_review(ledger_id, landlord_id)
            transition(ledger_state(ledger), SettlementState.FAILED)
            ledger.status = LedgerStatus.FAILED
            ledger.failure_reason = reason or "Rejected by landlord"
            AuditService.ledger_event(
                self.db, ledger.id, "rejected", actor_id=landlord_id, reason=ledger.failure_reason
            )

        logger.info("settlement.rejected: ledger_id=%d reason=%s", ledger.id, ledger.failure_reason)
        self._after_commit(
            self.notifications.payment_rejected,
            ledger.tenant_id,
            ledger.amount,
            ledger.reference,
            reason,
        )
        return SettlementResult(outcome=SettlementOutcome.FAILED, ledger=ledger)

    # Online payment failure

    def mark_online_payment_failed(
        self, reference: str, gateway_response: Optional[dict[str, Any]] = None
    ) -> SettlementResult:
        """Move a pending online payment to FAILED after the gateway reports failure."""
        with self._transaction():
            online = self._lock_online_payment(reference)
            if online.status == OnlinePaymentStatus.SUCCESS:
                raise AlreadyProcessedError(f"Payment {reference} already processed")
            if online.status == OnlinePaymentStatus.PENDING:
                transition(online_payment_state(online), SettlementState.FAILED)
                online.status = OnlinePaymentStatus.FAILED
                online.gateway_response = gateway_response
                AuditService.log(
                    self.db, "online_payment", online.id, "failed", changes=gateway_response
                )

        logger.info("settlement.online_failed: reference=%s", reference)
        return SettlementResult(outcome=SettlementOutcome.FAILED)

    def list_payments(
        self, landlord_id: int, method: Optional[PaymentMethod] = None
    ) -> List[Payment]:
        """Payments on the landlord's leases, newest first."""
        stmt = (
            select(Payment)
            .join(Lease, Lease.id == Payment.lease_id)
            .where(Lease.landlord_id == landlord_id)
            .order_by(Payment.date_paid.desc(), Payment.id.desc())
        )
        if method is not None:
            stmt = stmt.where(Payment.method == method)
        return list(self.db.execute(stmt).scalars().all())

    # Shared steps

    def _record_payment(
        self,
        lease: Lease,
        amount: Decimal,
        method: PaymentMethod,
        date_paid: datetime,
        reference: Optional[str],
        proof_url: Optional[str] = None,
    ) -> _RecordedPayment:
        """Create the Payment and allocate it oldest charge first."""
        payment = Payment(
            tenant_id=lease.tenant_id,
            lease_id=lease.id,
            amount=amount,
            method=method,
            date_paid=date_paid,
            reference=reference,
            proof_url=proof_url,
        )
        self.db.add(payment)
        self.db.flush()

        charges = self.charge_ledger.get_outstanding_charges(lease.id)
        result = self.allocator.allocate(amount, charges)
        allocations = self.charge_ledger.apply_allocations(payment, charges, result)

        if result.remainder > 0:
            # Not credited forward; kept visible in logs until product decides
            logger.warning(
                "settlement.overpayment: lease_id=%d payment_id=%d remainder=%s not allocated",
                lease.id,
                payment.id,
                result.remainder,
            )
        return _RecordedPayment(payment, allocations, result.remainder)

    def _write_ledger(
        self,
        lease: Lease,
        amount: Decimal,
        platform_fee: Decimal,
        method: PaymentMethod,
        reference: str,
        status: LedgerStatus = LedgerStatus.SUCCESS,
        payment: Optional[Payment] = None,
        online_payment: Optional[OnlinePayment] = None,
        document: Optional[Document] = None,
    ) -> TransactionLedger:
        ledger = TransactionLedger(
            tenant_id=lease.tenant_id,
            landlord_id=lease.landlord_id,
            property_id=lease.property_id,
            lease_id=lease.id,
            amount=amount,
            platform_fee=platform_fee,
            net_amount=amount - platform_fee,
            payment_method=method,
            status=status,
            reference=reference,
            payment_id=payment.id if payment else None,
            online_payment_id=online_payment.id if online_payment else None,
            document_id=document.id if document else None,
        )
        self.db.add(ledger)
        self.db.flush()
        return ledger

    def _lock_ledger_for_review(self, ledger_id: int, landlord_id: int) -> TransactionLedger:
        ledger = self.db.execute(
            select(TransactionLedger).where(TransactionLedger.id == ledger_id).with_for_update()
        ).scalar_one_or_none()
        if ledger is None:
            raise NotFoundError("Transaction not found")
        if ledger.landlord_id != landlord_id:
            raise UnauthorizedError("Transaction does not belong to this landlord")
        if ledger.status != LedgerStatus.PENDING:
            raise AlreadyProcessedError("Transaction is not pending")
        return ledger

    def _lock_online_payment(self, reference: str) -> OnlinePayment:
        online = self.db.execute(
            select(OnlinePayment).where(OnlinePayment.reference == reference).with_for_update()
        ).scalar_one_or_none()
        if online is None:
            raise NotFoundError(f"Payment {reference} not found")
        return online

    def _get_lease(self, lease_id: int) -> Lease:
        lease = self.db.get(Lease, lease_id)
        if lease is None:
            raise NotFoundError("Lease not found")
        return lease

    def get_active_lease(self, tenant_id: int) -> Lease:
        lease = self.db.execute(
            select(Lease)
            .where(Lease.tenant_id == tenant_id, Lease.status == LeaseStatus.ACTIVE)
            .order_by(Lease.start_date.desc(), Lease.id.desc())
        ).scalars().first()
        if lease is None:
            raise ValidationError("No active lease found")
        return lease

    @staticmethod
    def validate_amount(amount) -> Decimal:
        if amount is None:
            raise ValidationError("Amount is required")
        value = to_cents(amount)
        if value <= 0:
            raise ValidationError("Payment amount must be greater than zero")
        return value

    def _after_commit(self, notify, *args) -> None:
        """Send a notification for a committed settlement; failures are logged only."""
        try:
            notify(*args)
        except Exception as e:
            self.db.rollback()
            logger.error("settlement.notify_failed: %s error=%s", notify.__name__, e, exc_info=True)


__all__ = [
    "ALLOWED_TRANSITIONS",
    "GatewaySettlement",
    "ManualSettlement",
    "ProofApproval",
    "SettlementOutcome",
    "SettlementRequest",
    "SettlementResult",
    "SettlementService",
    "SettlementState",
    "transition",
]
