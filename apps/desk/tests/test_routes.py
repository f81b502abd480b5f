"""HTTP surface tests: job listing, file access and the payment return point."""

from __future__ import annotations

from decimal import Decimal
import os
import unittest

from fastapi.testclient import TestClient

from scribedesk.core.config import get_settings
from scribedesk.errors import BackendUnavailableError
from scribedesk.main import create_app
from scribedesk.repositories.memory import InMemoryStore, PaymentRecord
from scribedesk.schemas.job import DirectUploadStatus, JobOrigin, NegotiationStatus
from scribedesk.schemas.payment import Gateway

CLIENT_AUTH = {"Authorization": "Bearer test:client-1"}
OTHER_CLIENT_AUTH = {"Authorization": "Bearer test:client-2"}
TRANSCRIBER_AUTH = {"Authorization": "Bearer test:tx-1:transcriber"}


class _RouteCase(unittest.TestCase):
    _env_keys = ("SCRIBEDESK_AUTH_PROVIDER", "SCRIBEDESK_POST_PAYMENT_PATH")

    def setUp(self) -> None:
        self._old_env = {k: os.environ.get(k) for k in self._env_keys}
        os.environ["SCRIBEDESK_AUTH_PROVIDER"] = "mock"
        os.environ.pop("SCRIBEDESK_POST_PAYMENT_PATH", None)
        get_settings.cache_clear()

        self.store = InMemoryStore()
        app = create_app(backend_factory=lambda principal, _token: self.store.backend_for(principal.user_id, principal.role))
        self.client = TestClient(app)

    def tearDown(self) -> None:
        for key, value in self._old_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        get_settings.cache_clear()


class JobListRouteTests(_RouteCase):
    def test_requires_bearer_token(self) -> None:
        response = self.client.get("/api/v1/jobs")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "UNAUTHORIZED")

    def test_lists_both_origins(self) -> None:
        negotiation = self.store.create_negotiation(client_id="client-1", transcriber_id="tx-1", price="30")
        upload = self.store.create_direct_upload(client_id="client-1", price="12")

        response = self.client.get("/api/v1/jobs", headers=CLIENT_AUTH)

        self.assertEqual(response.status_code, 200)
        body = response.json()
        origins = {job["id"]: job["origin"] for job in body["jobs"]}
        self.assertEqual(origins, {negotiation.id: "negotiation", upload.id: "direct_upload"})
        self.assertEqual(body["notices"], [])

    def test_partial_failure_is_reported_as_notice(self) -> None:
        self.store.create_negotiation(client_id="client-1", transcriber_id="tx-1", price="30")
        self.store.snapshot_failures[JobOrigin.DIRECT_UPLOAD] = BackendUnavailableError("down", status_code=503)

        body = self.client.get("/api/v1/jobs", headers=CLIENT_AUTH).json()

        self.assertEqual(len(body["jobs"]), 1)
        self.assertEqual(body["notices"][0]["origin"], "direct_upload")
        self.assertEqual(body["notices"][0]["error"]["kind"], "network")

    def test_available_pool_is_transcriber_only(self) -> None:
        upload = self.store.create_direct_upload(client_id="client-1", price="12")

        self.assertEqual(self.client.get("/api/v1/jobs/available", headers=CLIENT_AUTH).status_code, 403)
        response = self.client.get("/api/v1/jobs/available", headers=TRANSCRIBER_AUTH)
        self.assertEqual([job["id"] for job in response.json()["jobs"]], [upload.id])


class FileRouteTests(_RouteCase):
    def test_downloads_file_for_job_in_snapshot(self) -> None:
        record = self.store.create_negotiation(client_id="client-1", transcriber_id="tx-1", price="30")
        self.store.files[(record.id, "interview.mp3")] = b"ID3-audio"

        response = self.client.get(f"/api/v1/jobs/negotiation/{record.id}/files/interview.mp3", headers=CLIENT_AUTH)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.content, b"ID3-audio")

    def test_foreign_job_is_not_found_without_contacting_file_endpoint(self) -> None:
        record = self.store.create_negotiation(client_id="client-1", transcriber_id="tx-1", price="30")
        self.store.files[(record.id, "interview.mp3")] = b"ID3-audio"

        response = self.client.get(
            f"/api/v1/jobs/negotiation/{record.id}/files/interview.mp3",
            headers=OTHER_CLIENT_AUTH,
        )

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"code": "RESOURCE_NOT_FOUND", "message": "Resource not found"})
        self.assertEqual(self.store.download_calls, 0)

    def test_wrong_origin_is_not_found(self) -> None:
        record = self.store.create_negotiation(client_id="client-1", transcriber_id="tx-1", price="30")

        response = self.client.get(
            f"/api/v1/jobs/direct_upload/{record.id}/files/interview.mp3",
            headers=CLIENT_AUTH,
        )

        self.assertEqual(response.status_code, 404)
        self.assertEqual(self.store.download_calls, 0)


class PaymentCallbackRouteTests(_RouteCase):
    def setUp(self) -> None:
        super().setUp()
        self.record = self.store.create_negotiation(
            client_id="client-1",
            transcriber_id="tx-1",
            price="30",
            status=NegotiationStatus.ACCEPTED_AWAITING_PAYMENT,
        )
        self.store.payments["ref-1"] = PaymentRecord(
            reference="ref-1",
            job_id=self.record.id,
            origin=JobOrigin.NEGOTIATION,
            gateway=Gateway.PAYSTACK,
            amount=Decimal("30"),
        )

    def _callback(self, **params: str):
        return self.client.get(
            "/api/v1/payments/callback",
            params=params,
            headers=CLIENT_AUTH,
            follow_redirects=False,
        )

    def test_verified_return_redirects_to_post_payment_view(self) -> None:
        response = self._callback(reference="ref-1", jobId=self.record.id, origin="negotiation", gateway="paystack")

        self.assertEqual(response.status_code, 303)
        self.assertEqual(response.headers["location"], "/client-dashboard")
        self.assertEqual(self.store.jobs[self.record.id].status, NegotiationStatus.HIRED)

    def test_repeat_return_is_still_verified(self) -> None:
        params = {"reference": "ref-1", "jobId": self.record.id, "origin": "negotiation", "gateway": "paystack"}

        self._callback(**params)
        response = self._callback(**params)

        self.assertEqual(response.headers["location"], "/client-dashboard")
        self.assertEqual(self.store.verify_calls, 2)

    def test_post_payment_path_is_configurable(self) -> None:
        os.environ["SCRIBEDESK_POST_PAYMENT_PATH"] = "/dashboard?paid=1"
        get_settings.cache_clear()

        response = self._callback(reference="ref-1", jobId=self.record.id, origin="negotiation", gateway="paystack")

        self.assertEqual(response.headers["location"], "/dashboard?paid=1")

    def test_missing_parameters_count_as_cancelled(self) -> None:
        response = self._callback(jobId=self.record.id, origin="direct_upload", gateway="paystack")

        self.assertEqual(response.status_code, 303)
        self.assertEqual(response.headers["location"], "/client-direct-upload")
        self.assertEqual(self.store.verify_calls, 0)

    def test_unknown_reference_redirects_to_failure_view(self) -> None:
        response = self._callback(reference="ref-404", jobId=self.record.id, origin="negotiation", gateway="paystack")

        self.assertEqual(response.headers["location"], "/client-negotiations")
        self.assertEqual(self.store.verify_calls, 1)
        self.assertEqual(self.store.jobs[self.record.id].status, NegotiationStatus.ACCEPTED_AWAITING_PAYMENT)

    def test_direct_upload_return_lists_job(self) -> None:
        upload = self.store.create_direct_upload(
            client_id="client-1",
            price="18",
            status=DirectUploadStatus.PENDING_PAYMENT,
        )
        self.store.payments["ref-2"] = PaymentRecord(
            reference="ref-2",
            job_id=upload.id,
            origin=JobOrigin.DIRECT_UPLOAD,
            gateway=Gateway.PAYSTACK,
            amount=Decimal("18"),
        )

        response = self._callback(reference="ref-2", jobId=upload.id, origin="direct_upload", gateway="paystack")

        self.assertEqual(response.headers["location"], "/client-dashboard")
        self.assertEqual(self.store.jobs[upload.id].status, DirectUploadStatus.AVAILABLE_FOR_TRANSCRIBER)


if __name__ == "__main__":
    unittest.main()
