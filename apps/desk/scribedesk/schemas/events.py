"""Push-channel event schemas."""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

STATUS_EVENT_NAMES: frozenset[str] = frozenset(
    {
        "new_negotiation_request",
        "negotiation_accepted",
        "negotiation_rejected",
        "negotiation_countered",
        "negotiation_cancelled",
        "job_completed",
        "job_hired",
        "payment_successful",
        "direct_job_taken",
        "direct_upload_job_taken",
        "direct_job_completed",
        "direct_job_completed_transcriber_side",
        "direct_job_client_completed",
        "direct_job_cancelled",
        "direct_job_status_update",
        "new_direct_job_available",
    }
)
ACTIVITY_EVENT_NAMES: frozenset[str] = frozenset({"newChatMessage", "receiveMessage"})

# Payload keys that name the affected job, in lookup order.
JOB_ID_KEYS: tuple[str, ...] = (
    "jobId",
    "negotiationId",
    "negotiation_id",
    "direct_upload_job_id",
    "relatedJobId",
)
_TEXT_KEYS: tuple[str, ...] = ("content", "message", "text")
_TIMESTAMP_KEYS: tuple[str, ...] = ("timestamp", "createdAt", "created_at")

# Shown when an activity event carries an attachment but no message text.
FILE_UPLOAD_ACTIVITY_TEXT = "New file uploaded."


class PushEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    job_id: str = Field(min_length=1)
    text: str | None = None
    timestamp: datetime | None = None

    @property
    def affects_status(self) -> bool:
        return self.name in STATUS_EVENT_NAMES

    @property
    def is_activity(self) -> bool:
        return self.name in ACTIVITY_EVENT_NAMES

    @classmethod
    def from_payload(cls, name: str, payload: Any) -> "PushEvent":
        """Build an event from a raw channel payload; raises ``ValueError`` if it names no job."""
        if not isinstance(payload, dict):
            raise ValueError("push payload must be an object")

        job_id = next((payload[key] for key in JOB_ID_KEYS if payload.get(key)), None)
        if job_id is None and isinstance(payload.get("job"), dict):
            job_id = payload["job"].get("id")
        if job_id is None:
            raise ValueError("push payload does not identify a job")

        text = next((payload[key] for key in _TEXT_KEYS if isinstance(payload.get(key), str)), None)
        timestamp = next((payload[key] for key in _TIMESTAMP_KEYS if payload.get(key)), None)
        event = cls.model_validate({"name": name, "job_id": str(job_id), "text": text, "timestamp": timestamp})
        if event.timestamp is not None and event.timestamp.tzinfo is None:
            event = event.model_copy(update={"timestamp": event.timestamp.replace(tzinfo=UTC)})
        return event
