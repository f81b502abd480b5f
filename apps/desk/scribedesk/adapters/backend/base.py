"""Backing-store interfaces used by lifecycle services."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from pydantic import BaseModel

from scribedesk.schemas.job import ActorRole, JobOrigin, LifecycleAction
from scribedesk.schemas.payment import Gateway, PaymentCustomer, PaymentLaunch, PaymentVerification


@dataclass(slots=True)
class MutationRequest:
    origin: JobOrigin
    job_id: str
    role: ActorRole
    action: LifecycleAction
    payload: BaseModel | None = None


@dataclass(slots=True)
class MutationResponse:
    message: str | None
    # Raw response body; its embedded status is never trusted by callers.
    body: dict[str, Any]


class JobBackend(ABC):
    """Authenticated view of the backing store for one actor.

    Implementations raise ``scribedesk.errors.BackendError`` subclasses on failure.
    """

    @abstractmethod
    async def list_jobs(self, origin: JobOrigin, role: ActorRole) -> list[Any]:
        """Return raw job records of one origin visible to the actor."""

    @abstractmethod
    async def list_available_jobs(self) -> list[Any]:
        """Return raw direct-upload records open for any transcriber to take."""

    @abstractmethod
    async def perform_action(self, request: MutationRequest) -> MutationResponse:
        """Issue one lifecycle mutation."""

    @abstractmethod
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
        """Create a server-side payment attempt and return its launch data."""

    @abstractmethod
    async def verify_payment(
        self,
        *,
        origin: JobOrigin,
        job_id: str,
        reference: str,
        gateway: Gateway,
    ) -> PaymentVerification:
        """Verify a gateway reference; safe to repeat."""

    @abstractmethod
    async def download_file(self, *, origin: JobOrigin, job_id: str, file_name: str) -> bytes:
        """Fetch one job file by name."""

    async def aclose(self) -> None:
        return None


__all__ = ["JobBackend", "MutationRequest", "MutationResponse"]
