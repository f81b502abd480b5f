"""In-memory backing store used for local scaffolding and tests."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import uuid4

from scribedesk.adapters.backend.base import JobBackend, MutationRequest, MutationResponse
from scribedesk.domain.status_catalog import action_target, check_action
from scribedesk.errors import BackendConflictError, BackendError
from scribedesk.schemas.job import (
    ActorRole,
    ClientCompletionPayload,
    CounterOfferPayload,
    DirectUploadStatus,
    JobOrigin,
    JobStatus,
    LifecycleAction,
    NegotiationStatus,
    TranscriberCompletionPayload,
)
from scribedesk.schemas.payment import (
    Gateway,
    PaymentCustomer,
    PaymentLaunch,
    PaymentVerification,
    WidgetCredentials,
)


@dataclass(slots=True)
class JobRecord:
    id: str
    origin: JobOrigin
    status: JobStatus
    price: Decimal
    client_id: str
    transcriber_id: str | None
    created_at: datetime
    updated_at: datetime
    deadline_hours: int | None = None
    file_name: str | None = None
    currency: str = "USD"
    feedback_comment: str | None = None
    feedback_rating: int | None = None
    transcriber_comment: str | None = None
    last_message_text: str | None = None
    last_message_timestamp: datetime | None = None
    hidden_for: set[str] = field(default_factory=set)


@dataclass(slots=True)
class PaymentRecord:
    reference: str
    job_id: str
    origin: JobOrigin
    gateway: Gateway
    amount: Decimal
    verified: bool = False


@dataclass(slots=True)
class InMemoryStore:
    """Deterministic backing store with failure injection for lifecycle tests."""

    jobs: dict[str, JobRecord] = field(default_factory=dict)
    payments: dict[str, PaymentRecord] = field(default_factory=dict)
    files: dict[tuple[str, str], bytes] = field(default_factory=dict)
    snapshot_failures: dict[JobOrigin, BackendError] = field(default_factory=dict)
    next_mutation_failure: BackendError | None = None
    next_payment_failure: BackendError | None = None
    declined_references: set[str] = field(default_factory=set)
    snapshot_gate: asyncio.Event | None = None
    snapshot_calls: int = 0
    mutation_calls: int = 0
    initiate_calls: int = 0
    verify_calls: int = 0
    download_calls: int = 0

    def create_negotiation(
        self,
        *,
        client_id: str,
        transcriber_id: str,
        price: Decimal | str,
        deadline_hours: int = 24,
        status: NegotiationStatus = NegotiationStatus.PENDING,
        file_name: str | None = "interview.mp3",
    ) -> JobRecord:
        return self._add(
            origin=JobOrigin.NEGOTIATION,
            status=status,
            price=Decimal(str(price)),
            client_id=client_id,
            transcriber_id=transcriber_id,
            deadline_hours=deadline_hours,
            file_name=file_name,
        )

    def create_direct_upload(
        self,
        *,
        client_id: str,
        price: Decimal | str,
        file_name: str = "upload.mp3",
        status: DirectUploadStatus = DirectUploadStatus.AVAILABLE_FOR_TRANSCRIBER,
        transcriber_id: str | None = None,
        deadline_hours: int = 48,
    ) -> JobRecord:
        return self._add(
            origin=JobOrigin.DIRECT_UPLOAD,
            status=status,
            price=Decimal(str(price)),
            client_id=client_id,
            transcriber_id=transcriber_id,
            deadline_hours=deadline_hours,
            file_name=file_name,
        )

    def force_status(self, job_id: str, status: JobStatus, *, transcriber_id: str | None = None) -> JobRecord:
        """Apply a change made by another actor or by the store itself."""
        record = self.jobs[job_id]
        record.status = status
        if transcriber_id is not None:
            record.transcriber_id = transcriber_id
        record.updated_at = datetime.now(UTC)
        return record

    def backend_for(self, user_id: str, role: ActorRole) -> "InMemoryJobBackend":
        return InMemoryJobBackend(self, user_id=user_id, role=role)

    def to_wire(self, record: JobRecord) -> dict[str, Any]:
        """Render a record using the backing store's field names."""
        wire: dict[str, Any] = {
            "id": record.id,
            "status": record.status.value,
            "client_id": record.client_id,
            "transcriber_id": record.transcriber_id,
            "currency": record.currency,
            "client_feedback_comment": record.feedback_comment,
            "client_feedback_rating": record.feedback_rating,
            "last_message_text": record.last_message_text,
            "last_message_timestamp": (
                record.last_message_timestamp.isoformat() if record.last_message_timestamp else None
            ),
            "created_at": record.created_at.isoformat(),
        }
        if record.origin is JobOrigin.NEGOTIATION:
            wire.update(
                agreed_price_usd=str(record.price),
                deadline_hours=record.deadline_hours,
                negotiation_files=record.file_name,
            )
        else:
            wire.update(
                quote_amount=str(record.price),
                agreed_deadline_hours=record.deadline_hours,
                file_name=record.file_name,
                transcriber_comment=record.transcriber_comment,
            )
        return wire

    def _add(self, **values: Any) -> JobRecord:
        now = datetime.now(UTC)
        record = JobRecord(id=str(uuid4()), created_at=now, updated_at=now, **values)
        self.jobs[record.id] = record
        return record


class InMemoryJobBackend(JobBackend):
    """One actor's authenticated view of an ``InMemoryStore``."""

    def __init__(self, store: InMemoryStore, *, user_id: str, role: ActorRole) -> None:
        self._store = store
        self._user_id = user_id
        self._role = role

    async def list_jobs(self, origin: JobOrigin, role: ActorRole) -> list[Any]:
        self._store.snapshot_calls += 1
        await self._suspend()
        failure = self._store.snapshot_failures.get(origin)
        if failure is not None:
            raise failure
        return [
            self._store.to_wire(record)
            for record in self._store.jobs.values()
            if record.origin is origin and self._visible(record)
        ]

    async def list_available_jobs(self) -> list[Any]:
        self._store.snapshot_calls += 1
        await self._suspend()
        failure = self._store.snapshot_failures.get(JobOrigin.DIRECT_UPLOAD)
        if failure is not None:
            raise failure
        return [
            self._store.to_wire(record)
            for record in self._store.jobs.values()
            if record.origin is JobOrigin.DIRECT_UPLOAD
            and record.status is DirectUploadStatus.AVAILABLE_FOR_TRANSCRIBER
        ]

    async def perform_action(self, request: MutationRequest) -> MutationResponse:
        self._store.mutation_calls += 1
        await asyncio.sleep(0)
        if self._store.next_mutation_failure is not None:
            failure = self._store.next_mutation_failure
            self._store.next_mutation_failure = None
            raise failure

        record = self._record_for(request.job_id, request.origin, allow_pool=request.action is LifecycleAction.TAKE)
        if check_action(record.origin, record.status, request.role, request.action) is not None:
            raise BackendConflictError(
                "Action is no longer allowed for this job",
                status_code=409,
                details={"current_status": record.status.value},
            )

        target = action_target(record.origin, record.status, request.role, request.action)
        self._apply_side_effects(record, request)
        if target is None:
            record.hidden_for.add(self._user_id)
        else:
            record.status = target
        record.updated_at = datetime.now(UTC)
        # The body echoes a status the way the real store does; callers must not trust it.
        return MutationResponse(
            message=f"{request.action.value} applied",
            body={"message": f"{request.action.value} applied", "status": record.status.value},
        )

    async def initiate_payment(
        self,
        *,
        origin: JobOrigin,
        job_id: str,
        gateway: Gateway,
        amount: Decimal,
        currency: str,
        customer: PaymentCustomer,
    ) -> PaymentLaunch:
        self._store.initiate_calls += 1
        await asyncio.sleep(0)
        self._raise_payment_failure()
        record = self._record_for(job_id, origin)
        if check_action(record.origin, record.status, self._role, LifecycleAction.INITIATE_PAYMENT) is not None:
            raise BackendConflictError("Job is not awaiting payment", status_code=400)

        reference = f"ref-{uuid4().hex[:16]}"
        self._store.payments[reference] = PaymentRecord(
            reference=reference,
            job_id=job_id,
            origin=origin,
            gateway=gateway,
            amount=amount,
        )
        if gateway is Gateway.PAYSTACK:
            return PaymentLaunch(
                gateway=gateway,
                redirect_url=f"https://checkout.paystack.test/{reference}",
                reference=reference,
            )
        return PaymentLaunch(
            gateway=gateway,
            reference=reference,
            widget=WidgetCredentials(
                key="pk_test_memory",
                reference=reference,
                amount=amount,
                currency=currency,
                customer={"email": customer.email, "name": customer.full_name},
            ),
        )

    async def verify_payment(
        self,
        *,
        origin: JobOrigin,
        job_id: str,
        reference: str,
        gateway: Gateway,
    ) -> PaymentVerification:
        self._store.verify_calls += 1
        await asyncio.sleep(0)
        self._raise_payment_failure()
        payment = self._store.payments.get(reference)
        if payment is None or payment.job_id != job_id or payment.origin is not origin:
            raise BackendConflictError("Payment reference not recognized", status_code=400)
        if reference in self._store.declined_references:
            return PaymentVerification(verified=False, message="Payment was declined by the gateway")
        if payment.verified:
            raise BackendConflictError("Job is not awaiting payment", status_code=400)

        record = self._store.jobs[job_id]
        target = action_target(record.origin, record.status, ActorRole.CLIENT, LifecycleAction.INITIATE_PAYMENT)
        if target is None:
            raise BackendConflictError("Job is not awaiting payment", status_code=400)
        payment.verified = True
        record.status = target
        record.updated_at = datetime.now(UTC)
        return PaymentVerification(verified=True, message="Payment verified")

    async def download_file(self, *, origin: JobOrigin, job_id: str, file_name: str) -> bytes:
        self._store.download_calls += 1
        await asyncio.sleep(0)
        self._record_for(job_id, origin)
        content = self._store.files.get((job_id, file_name))
        if content is None:
            raise BackendConflictError("File not found", status_code=404)
        return content

    def _raise_payment_failure(self) -> None:
        failure = self._store.next_payment_failure
        if failure is not None:
            self._store.next_payment_failure = None
            raise failure

    async def _suspend(self) -> None:
        await asyncio.sleep(0)
        gate = self._store.snapshot_gate
        if gate is not None:
            await gate.wait()

    def _visible(self, record: JobRecord) -> bool:
        if self._user_id in record.hidden_for:
            return False
        if self._role is ActorRole.CLIENT:
            return record.client_id == self._user_id
        return record.transcriber_id == self._user_id

    def _record_for(self, job_id: str, origin: JobOrigin, *, allow_pool: bool = False) -> JobRecord:
        record = self._store.jobs.get(job_id)
        if record is None or record.origin is not origin:
            raise BackendConflictError("Job not found", status_code=404)
        if self._visible(record):
            return record
        if allow_pool and record.status is DirectUploadStatus.AVAILABLE_FOR_TRANSCRIBER:
            return record
        raise BackendConflictError("Job not found", status_code=404)

    def _apply_side_effects(self, record: JobRecord, request: MutationRequest) -> None:
        payload = request.payload
        if isinstance(payload, CounterOfferPayload):
            record.price = payload.proposed_price
            if payload.deadline_hours is not None:
                record.deadline_hours = payload.deadline_hours
        elif isinstance(payload, ClientCompletionPayload):
            record.feedback_comment = payload.comment
            record.feedback_rating = payload.rating
        elif isinstance(payload, TranscriberCompletionPayload):
            record.transcriber_comment = payload.comment

        if request.action is LifecycleAction.TAKE:
            record.transcriber_id = self._user_id
        elif request.action is LifecycleAction.RELEASE:
            record.transcriber_id = None
