"""Job schemas shared by both job origins."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from scribedesk.schemas.error import LifecycleError


class JobOrigin(str, Enum):
    NEGOTIATION = "negotiation"
    DIRECT_UPLOAD = "direct_upload"


class ActorRole(str, Enum):
    CLIENT = "client"
    TRANSCRIBER = "transcriber"


class NegotiationStatus(str, Enum):
    PENDING = "pending"
    TRANSCRIBER_COUNTER = "transcriber_counter"
    CLIENT_COUNTER = "client_counter"
    ACCEPTED_AWAITING_PAYMENT = "accepted_awaiting_payment"
    HIRED = "hired"
    COMPLETED = "completed"
    CLIENT_COMPLETED = "client_completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class DirectUploadStatus(str, Enum):
    PENDING_PAYMENT = "pending_payment"
    AVAILABLE_FOR_TRANSCRIBER = "available_for_transcriber"
    TAKEN = "taken"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CLIENT_COMPLETED = "client_completed"
    CANCELLED = "cancelled"


JobStatus = NegotiationStatus | DirectUploadStatus


class LifecycleAction(str, Enum):
    ACCEPT = "accept"
    COUNTER = "counter"
    REJECT = "reject"
    MARK_COMPLETE = "mark-complete"
    INITIATE_PAYMENT = "initiate-payment"
    DELETE = "delete"
    TAKE = "take"
    RELEASE = "release"


class Counterparties(BaseModel):
    model_config = ConfigDict(frozen=True)

    client_id: str
    transcriber_id: str | None = None
    # Invited transcriber of a negotiation that has not been hired yet.
    proposed_transcriber_id: str | None = None


class LastActivity(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    timestamp: datetime


class Feedback(BaseModel):
    model_config = ConfigDict(frozen=True)

    comment: str = ""
    rating: int = Field(ge=1, le=5)


class Job(BaseModel):
    """Normalized job snapshot, discriminated by ``origin``."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    origin: JobOrigin
    status: NegotiationStatus | DirectUploadStatus
    price_amount: Decimal
    currency: str = "USD"
    deadline_hours: int | None = None
    counterparties: Counterparties
    file_name: str | None = None
    last_activity: LastActivity | None = None
    feedback: Feedback | None = None

    @model_validator(mode="before")
    @classmethod
    def _coerce_status_for_origin(cls, data: Any) -> Any:
        # Both origins share "completed", "client_completed" and "cancelled".
        if not isinstance(data, dict):
            return data
        origin = data.get("origin")
        status = data.get("status")
        if origin is None or not isinstance(status, str):
            return data
        status_type = NegotiationStatus if JobOrigin(origin) is JobOrigin.NEGOTIATION else DirectUploadStatus
        return {**data, "status": status_type(status)}


class FetchNotice(BaseModel):
    """Non-fatal report that one origin's snapshot could not be loaded."""

    model_config = ConfigDict(frozen=True)

    origin: JobOrigin
    error: LifecycleError


class JobList(BaseModel):
    model_config = ConfigDict(frozen=True)

    jobs: tuple[Job, ...] = ()
    notices: tuple[FetchNotice, ...] = ()

    @property
    def complete(self) -> bool:
        return not self.notices

    def get(self, job_id: str) -> Job | None:
        for job in self.jobs:
            if job.id == job_id:
                return job
        return None


class CounterOfferPayload(BaseModel):
    proposed_price: Decimal = Field(gt=0)
    deadline_hours: int | None = Field(default=None, gt=0)
    response: str = ""


class RejectPayload(BaseModel):
    reason: str = Field(min_length=1)


class ClientCompletionPayload(BaseModel):
    comment: str = ""
    rating: int = Field(ge=1, le=5)


class TranscriberCompletionPayload(BaseModel):
    comment: str = ""
