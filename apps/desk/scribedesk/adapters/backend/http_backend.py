"""HTTP adapter for the transcription backing store."""

from __future__ import annotations

from decimal import Decimal
import logging
from typing import Any

import httpx

from scribedesk.adapters.backend.base import JobBackend, MutationRequest, MutationResponse
from scribedesk.errors import (
    BackendAuthError,
    BackendConflictError,
    BackendPaymentError,
    BackendUnavailableError,
)
from scribedesk.schemas.job import (
    ActorRole,
    ClientCompletionPayload,
    CounterOfferPayload,
    JobOrigin,
    LifecycleAction,
    RejectPayload,
    TranscriberCompletionPayload,
)
from scribedesk.schemas.payment import (
    Gateway,
    PaymentCustomer,
    PaymentLaunch,
    PaymentVerification,
    WidgetCredentials,
)

logger = logging.getLogger(__name__)

_N = JobOrigin.NEGOTIATION
_D = JobOrigin.DIRECT_UPLOAD
_CLIENT = ActorRole.CLIENT
_TRANSCRIBER = ActorRole.TRANSCRIBER
_A = LifecycleAction

_CONFLICT_STATUS_CODES = frozenset({400, 403, 404, 409, 422})

# (origin, role) -> (path, collection key in the response body)
_SNAPSHOT_ROUTES: dict[tuple[JobOrigin, ActorRole], tuple[str, str]] = {
    (_N, _CLIENT): ("/api/negotiations/client", "negotiations"),
    (_D, _CLIENT): ("/api/client/direct-jobs", "jobs"),
    (_N, _TRANSCRIBER): ("/api/transcriber/negotiations", "negotiations"),
    (_D, _TRANSCRIBER): ("/api/transcriber/direct-jobs/all", "jobs"),
}
_AVAILABLE_ROUTE = ("/api/transcriber/direct-jobs/available", "jobs")

_MUTATION_ROUTES: dict[tuple[JobOrigin, ActorRole, LifecycleAction], tuple[str, str]] = {
    (_N, _TRANSCRIBER, _A.ACCEPT): ("PUT", "/api/negotiations/{job_id}/accept"),
    (_N, _TRANSCRIBER, _A.COUNTER): ("PUT", "/api/negotiations/{job_id}/counter"),
    (_N, _TRANSCRIBER, _A.REJECT): ("PUT", "/api/negotiations/{job_id}/reject"),
    (_N, _TRANSCRIBER, _A.MARK_COMPLETE): ("PUT", "/api/transcriber/negotiations/{job_id}/complete"),
    (_N, _CLIENT, _A.ACCEPT): ("PUT", "/api/negotiations/{job_id}/client/accept-counter"),
    (_N, _CLIENT, _A.COUNTER): ("PUT", "/api/negotiations/{job_id}/client/counter-back"),
    (_N, _CLIENT, _A.REJECT): ("PUT", "/api/negotiations/{job_id}/client/reject-counter"),
    (_N, _CLIENT, _A.MARK_COMPLETE): ("PUT", "/api/negotiations/{job_id}/complete"),
    (_N, _CLIENT, _A.DELETE): ("DELETE", "/api/negotiations/{job_id}"),
    (_D, _TRANSCRIBER, _A.TAKE): ("PUT", "/api/transcriber/direct-jobs/{job_id}/take"),
    (_D, _TRANSCRIBER, _A.MARK_COMPLETE): ("PUT", "/api/transcriber/direct-jobs/{job_id}/complete"),
    (_D, _TRANSCRIBER, _A.RELEASE): ("PUT", "/api/transcriber/direct-jobs/{job_id}/cancel"),
    (_D, _TRANSCRIBER, _A.DELETE): ("DELETE", "/api/direct-jobs/{job_id}"),
    (_D, _CLIENT, _A.MARK_COMPLETE): ("PUT", "/api/client/direct-jobs/{job_id}/complete"),
    (_D, _CLIENT, _A.DELETE): ("DELETE", "/api/direct-jobs/{job_id}"),
}

_PAYMENT_PREFIXES: dict[JobOrigin, str] = {
    _N: "/api/negotiations",
    _D: "/api/direct-uploads",
}
_DOWNLOAD_PREFIXES: dict[JobOrigin, str] = {
    _N: "/api/negotiations",
    _D: "/api/direct-jobs",
}


def encode_mutation_body(request: MutationRequest) -> dict[str, Any] | None:
    """Translate a validated payload into the backing store's field names."""
    payload = request.payload
    speaker = "client" if request.role is _CLIENT else "transcriber"
    if isinstance(payload, CounterOfferPayload):
        body: dict[str, Any] = {
            "proposed_price_usd": float(payload.proposed_price),
            f"{speaker}_response": payload.response,
        }
        if payload.deadline_hours is not None:
            body["deadline_hours"] = payload.deadline_hours
        return body
    if isinstance(payload, RejectPayload):
        if request.role is _CLIENT:
            return {"client_response": payload.reason}
        return {"reason": payload.reason}
    if isinstance(payload, ClientCompletionPayload):
        return {
            "clientFeedbackComment": payload.comment,
            "clientFeedbackRating": payload.rating,
        }
    if isinstance(payload, TranscriberCompletionPayload):
        return {"transcriberComment": payload.comment}
    return None


class HttpJobBackend(JobBackend):
    """Talks to the backing store with the actor's bearer token."""

    def __init__(
        self,
        *,
        base_url: str,
        token: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpJobBackend":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def list_jobs(self, origin: JobOrigin, role: ActorRole) -> list[Any]:
        path, key = _SNAPSHOT_ROUTES[(origin, role)]
        body = await self._send_json("GET", path)
        return self._collection(body, key)

    async def list_available_jobs(self) -> list[Any]:
        path, key = _AVAILABLE_ROUTE
        body = await self._send_json("GET", path)
        return self._collection(body, key)

    async def perform_action(self, request: MutationRequest) -> MutationResponse:
        route = _MUTATION_ROUTES.get((request.origin, request.role, request.action))
        if route is None:
            raise BackendConflictError(
                "No backing-store endpoint for this action",
                code="ACTION_NOT_ROUTABLE",
                details={"action": request.action.value, "origin": request.origin.value},
            )
        method, template = route
        body = await self._send_json(method, template.format(job_id=request.job_id), json=encode_mutation_body(request))
        body = body if isinstance(body, dict) else {}
        message = body.get("message")
        return MutationResponse(message=message if isinstance(message, str) else None, body=body)

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
        payload: dict[str, Any] = {
            "negotiationId" if origin is _N else "jobId": job_id,
            "amount": float(amount),
            "currency": currency,
            "email": customer.email,
            "fullName": customer.full_name,
            "paymentMethod": gateway.value,
        }
        if gateway is Gateway.KORAPAY and customer.mobile_number:
            payload["mobileNumber"] = customer.mobile_number.strip()

        path = f"{_PAYMENT_PREFIXES[origin]}/{job_id}/payment/initialize"
        body = await self._send_json("POST", path, json=payload)
        return self._parse_launch(gateway, body)

    async def verify_payment(
        self,
        *,
        origin: JobOrigin,
        job_id: str,
        reference: str,
        gateway: Gateway,
    ) -> PaymentVerification:
        path = f"{_PAYMENT_PREFIXES[origin]}/{job_id}/payment/verify/{reference}"
        body = await self._send_json("GET", path, params={"paymentMethod": gateway.value})
        body = body if isinstance(body, dict) else {}
        message = body.get("message") if isinstance(body.get("message"), str) else None
        return PaymentVerification(verified=body.get("verified", True) is not False, message=message)

    async def download_file(self, *, origin: JobOrigin, job_id: str, file_name: str) -> bytes:
        path = f"{_DOWNLOAD_PREFIXES[origin]}/{job_id}/download/{file_name}"
        response = await self._send("GET", path)
        return response.content

    @staticmethod
    def _collection(body: Any, key: str) -> list[Any]:
        if not isinstance(body, dict):
            raise BackendUnavailableError("Malformed backing-store snapshot", code="MALFORMED_RESPONSE")
        items = body.get(key)
        if items is None:
            return []
        if not isinstance(items, list):
            raise BackendUnavailableError("Malformed backing-store snapshot", code="MALFORMED_RESPONSE")
        return items

    @staticmethod
    def _parse_launch(gateway: Gateway, body: Any) -> PaymentLaunch:
        body = body if isinstance(body, dict) else {}
        if gateway is Gateway.PAYSTACK:
            data = body.get("data") if isinstance(body.get("data"), dict) else {}
            url = data.get("authorization_url")
            if not isinstance(url, str) or not url:
                raise BackendPaymentError("Gateway did not return a redirect target", code="PAYMENT_LAUNCH_MISSING")
            reference = data.get("reference")
            return PaymentLaunch(
                gateway=gateway,
                redirect_url=url,
                reference=reference if isinstance(reference, str) else None,
            )

        widget = body.get("korapayData")
        if not isinstance(widget, dict):
            raise BackendPaymentError("Gateway did not return widget credentials", code="PAYMENT_LAUNCH_MISSING")
        try:
            credentials = WidgetCredentials.model_validate(widget)
        except ValueError as exc:
            raise BackendPaymentError("Gateway returned malformed widget credentials", code="PAYMENT_LAUNCH_MISSING") from exc
        return PaymentLaunch(gateway=gateway, widget=credentials, reference=credentials.reference)

    async def _send_json(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        response = await self._send(method, path, json=json, params=params)
        try:
            return response.json()
        except ValueError as exc:
            raise BackendUnavailableError(
                "Backing store returned a malformed response",
                code="MALFORMED_RESPONSE",
                status_code=response.status_code,
            ) from exc

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.TimeoutException as exc:
            logger.warning("backend.timeout method=%s path=%s", method, path)
            raise BackendUnavailableError("Backing store request timed out", code="BACKEND_TIMEOUT") from exc
        except httpx.HTTPError as exc:
            logger.warning("backend.unreachable method=%s path=%s reason=%s", method, path, type(exc).__name__)
            raise BackendUnavailableError("Backing store is unreachable") from exc

        if response.is_success:
            return response

        message = self._error_message(response)
        logger.warning("backend.rejected method=%s path=%s status_code=%s", method, path, response.status_code)
        if response.status_code == 401:
            raise BackendAuthError(message, status_code=401)
        if response.status_code in _CONFLICT_STATUS_CODES:
            raise BackendConflictError(message, status_code=response.status_code)
        raise BackendUnavailableError(message, status_code=response.status_code)

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return f"Backing store responded with HTTP {response.status_code}"
        if isinstance(body, dict):
            for key in ("error", "message"):
                value = body.get(key)
                if isinstance(value, str) and value:
                    return value
        return f"Backing store responded with HTTP {response.status_code}"


__all__ = ["HttpJobBackend", "encode_mutation_body"]
