"""HTTP backing-store adapter tests."""

from __future__ import annotations

from decimal import Decimal
import json
import unittest

import httpx

from scribedesk.adapters.backend import HttpJobBackend, MutationRequest
from scribedesk.adapters.backend.http_backend import encode_mutation_body
from scribedesk.errors import (
    BackendAuthError,
    BackendConflictError,
    BackendPaymentError,
    BackendUnavailableError,
)
from scribedesk.schemas.error import ErrorKind
from scribedesk.schemas.job import (
    ActorRole,
    ClientCompletionPayload,
    CounterOfferPayload,
    JobOrigin,
    LifecycleAction,
    RejectPayload,
)
from scribedesk.schemas.payment import Gateway, PaymentCustomer


class _Recorder:
    def __init__(self, responder) -> None:
        self.requests: list[httpx.Request] = []
        self._responder = responder

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._responder(request)


def _backend(responder) -> tuple[HttpJobBackend, _Recorder]:
    recorder = _Recorder(responder)
    backend = HttpJobBackend(
        base_url="http://store.test",
        token="token-123",
        transport=httpx.MockTransport(recorder),
    )
    return backend, recorder


class SnapshotTests(unittest.IsolatedAsyncioTestCase):
    async def test_lists_client_negotiations_with_bearer_token(self) -> None:
        backend, recorder = _backend(lambda _: httpx.Response(200, json={"negotiations": [{"id": "n1"}]}))
        async with backend:
            items = await backend.list_jobs(JobOrigin.NEGOTIATION, ActorRole.CLIENT)

        self.assertEqual(items, [{"id": "n1"}])
        self.assertEqual(recorder.requests[0].url.path, "/api/negotiations/client")
        self.assertEqual(recorder.requests[0].headers["Authorization"], "Bearer token-123")

    async def test_transcriber_direct_jobs_use_all_endpoint(self) -> None:
        backend, recorder = _backend(lambda _: httpx.Response(200, json={"jobs": []}))
        async with backend:
            items = await backend.list_jobs(JobOrigin.DIRECT_UPLOAD, ActorRole.TRANSCRIBER)

        self.assertEqual(items, [])
        self.assertEqual(recorder.requests[0].url.path, "/api/transcriber/direct-jobs/all")

    async def test_missing_collection_key_is_an_empty_list(self) -> None:
        backend, _ = _backend(lambda _: httpx.Response(200, json={"message": "none"}))
        async with backend:
            self.assertEqual(await backend.list_available_jobs(), [])

    async def test_non_json_body_is_a_network_error(self) -> None:
        backend, _ = _backend(lambda _: httpx.Response(200, text="<html>oops</html>"))
        async with backend:
            with self.assertRaises(BackendUnavailableError) as ctx:
                await backend.list_jobs(JobOrigin.NEGOTIATION, ActorRole.CLIENT)

        self.assertEqual(ctx.exception.code, "MALFORMED_RESPONSE")
        self.assertIs(ctx.exception.to_lifecycle_error().kind, ErrorKind.NETWORK)


class StatusMappingTests(unittest.IsolatedAsyncioTestCase):
    async def _raise_for(self, status_code: int) -> BaseException:
        backend, _ = _backend(lambda _: httpx.Response(status_code, json={"error": "nope"}))
        async with backend:
            with self.assertRaises(Exception) as ctx:
                await backend.list_jobs(JobOrigin.NEGOTIATION, ActorRole.CLIENT)
        return ctx.exception

    async def test_401_is_auth(self) -> None:
        exc = await self._raise_for(401)
        self.assertIsInstance(exc, BackendAuthError)
        self.assertEqual(str(exc), "nope")

    async def test_client_errors_are_conflicts(self) -> None:
        for status_code in (400, 403, 404, 409, 422):
            with self.subTest(status_code=status_code):
                exc = await self._raise_for(status_code)
                self.assertIsInstance(exc, BackendConflictError)
                self.assertEqual(exc.status_code, status_code)

    async def test_server_errors_are_network(self) -> None:
        exc = await self._raise_for(503)
        self.assertIsInstance(exc, BackendUnavailableError)

    async def test_timeouts_are_network_errors(self) -> None:
        def timeout(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        backend, _ = _backend(timeout)
        async with backend:
            with self.assertRaises(BackendUnavailableError) as ctx:
                await backend.list_jobs(JobOrigin.NEGOTIATION, ActorRole.CLIENT)
        self.assertEqual(ctx.exception.code, "BACKEND_TIMEOUT")

    async def test_transport_failures_are_network_errors(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        backend, _ = _backend(refuse)
        async with backend:
            with self.assertRaises(BackendUnavailableError):
                await backend.list_jobs(JobOrigin.NEGOTIATION, ActorRole.CLIENT)


class MutationTests(unittest.IsolatedAsyncioTestCase):
    async def test_transcriber_counter_uses_store_field_names(self) -> None:
        backend, recorder = _backend(lambda _: httpx.Response(200, json={"message": "Countered", "status": "hired"}))
        request = MutationRequest(
            origin=JobOrigin.NEGOTIATION,
            job_id="n1",
            role=ActorRole.TRANSCRIBER,
            action=LifecycleAction.COUNTER,
            payload=CounterOfferPayload(proposed_price=Decimal("25.50"), deadline_hours=12, response="Busy week"),
        )
        async with backend:
            response = await backend.perform_action(request)

        sent = recorder.requests[0]
        self.assertEqual(sent.method, "PUT")
        self.assertEqual(sent.url.path, "/api/negotiations/n1/counter")
        self.assertEqual(
            json.loads(sent.content),
            {"proposed_price_usd": 25.5, "transcriber_response": "Busy week", "deadline_hours": 12},
        )
        self.assertEqual(response.message, "Countered")

    async def test_client_delete_is_a_delete_request(self) -> None:
        backend, recorder = _backend(lambda _: httpx.Response(200, json={"message": "Deleted"}))
        request = MutationRequest(
            origin=JobOrigin.DIRECT_UPLOAD,
            job_id="d1",
            role=ActorRole.CLIENT,
            action=LifecycleAction.DELETE,
        )
        async with backend:
            await backend.perform_action(request)

        self.assertEqual(recorder.requests[0].method, "DELETE")
        self.assertEqual(recorder.requests[0].url.path, "/api/direct-jobs/d1")

    async def test_unroutable_action_raises_without_request(self) -> None:
        backend, recorder = _backend(lambda _: httpx.Response(200, json={}))
        request = MutationRequest(
            origin=JobOrigin.NEGOTIATION,
            job_id="n1",
            role=ActorRole.TRANSCRIBER,
            action=LifecycleAction.TAKE,
        )
        async with backend:
            with self.assertRaises(BackendConflictError):
                await backend.perform_action(request)
        self.assertEqual(recorder.requests, [])

    def test_reject_and_feedback_bodies(self) -> None:
        client_reject = MutationRequest(
            origin=JobOrigin.NEGOTIATION,
            job_id="n1",
            role=ActorRole.CLIENT,
            action=LifecycleAction.REJECT,
            payload=RejectPayload(reason="Too expensive"),
        )
        feedback = MutationRequest(
            origin=JobOrigin.DIRECT_UPLOAD,
            job_id="d1",
            role=ActorRole.CLIENT,
            action=LifecycleAction.MARK_COMPLETE,
            payload=ClientCompletionPayload(comment="", rating=4),
        )
        self.assertEqual(encode_mutation_body(client_reject), {"client_response": "Too expensive"})
        self.assertEqual(encode_mutation_body(feedback), {"clientFeedbackComment": "", "clientFeedbackRating": 4})


class PaymentTests(unittest.IsolatedAsyncioTestCase):
    customer = PaymentCustomer(email="ada@example.test", full_name="Ada", mobile_number=" 0801 ")

    async def test_paystack_returns_redirect_target(self) -> None:
        backend, recorder = _backend(
            lambda _: httpx.Response(
                200,
                json={"data": {"authorization_url": "https://paystack.test/abc", "reference": "ref-1"}},
            )
        )
        async with backend:
            launch = await backend.initiate_payment(
                origin=JobOrigin.NEGOTIATION,
                job_id="n1",
                gateway=Gateway.PAYSTACK,
                amount=Decimal("40"),
                currency="USD",
                customer=self.customer,
            )

        self.assertEqual(launch.redirect_url, "https://paystack.test/abc")
        self.assertEqual(launch.reference, "ref-1")
        body = json.loads(recorder.requests[0].content)
        self.assertEqual(recorder.requests[0].url.path, "/api/negotiations/n1/payment/initialize")
        self.assertEqual(body["negotiationId"], "n1")
        self.assertNotIn("mobileNumber", body)

    async def test_korapay_returns_widget_credentials(self) -> None:
        widget = {
            "key": "pk_test",
            "reference": "kora-1",
            "amount": 40,
            "currency": "KES",
            "customer": {"email": "ada@example.test"},
            "notification_url": "https://store.test/hook",
        }
        backend, recorder = _backend(lambda _: httpx.Response(200, json={"korapayData": widget}))
        async with backend:
            launch = await backend.initiate_payment(
                origin=JobOrigin.DIRECT_UPLOAD,
                job_id="d1",
                gateway=Gateway.KORAPAY,
                amount=Decimal("40"),
                currency="KES",
                customer=self.customer,
            )

        self.assertEqual(launch.reference, "kora-1")
        self.assertEqual(launch.widget.key, "pk_test")
        body = json.loads(recorder.requests[0].content)
        self.assertEqual(recorder.requests[0].url.path, "/api/direct-uploads/d1/payment/initialize")
        self.assertEqual(body["mobileNumber"], "0801")

    async def test_missing_launch_data_is_a_payment_error(self) -> None:
        backend, _ = _backend(lambda _: httpx.Response(200, json={"data": {}}))
        async with backend:
            with self.assertRaises(BackendPaymentError):
                await backend.initiate_payment(
                    origin=JobOrigin.NEGOTIATION,
                    job_id="n1",
                    gateway=Gateway.PAYSTACK,
                    amount=Decimal("40"),
                    currency="USD",
                    customer=self.customer,
                )

    async def test_verify_sends_gateway_and_reads_outcome(self) -> None:
        backend, recorder = _backend(lambda _: httpx.Response(200, json={"verified": False, "message": "Declined"}))
        async with backend:
            verification = await backend.verify_payment(
                origin=JobOrigin.NEGOTIATION,
                job_id="n1",
                reference="ref-1",
                gateway=Gateway.PAYSTACK,
            )

        self.assertFalse(verification.verified)
        self.assertEqual(verification.message, "Declined")
        self.assertEqual(recorder.requests[0].url.path, "/api/negotiations/n1/payment/verify/ref-1")
        self.assertEqual(recorder.requests[0].url.params["paymentMethod"], "paystack")


if __name__ == "__main__":
    unittest.main()
