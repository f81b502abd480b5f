"""Job repository client tests."""

from __future__ import annotations

from decimal import Decimal
import unittest

from scribedesk.errors import BackendAuthError, BackendUnavailableError
from scribedesk.repositories.memory import InMemoryStore
from scribedesk.schemas.error import ErrorKind
from scribedesk.schemas.job import ActorRole, DirectUploadStatus, JobOrigin, NegotiationStatus
from scribedesk.services.repository_client import JobRepositoryClient, MalformedJobError, normalize_job


class _StaticBackend:
    """Minimal backend returning canned raw collections."""

    def __init__(self, collections: dict[JobOrigin, list]) -> None:
        self._collections = collections

    async def list_jobs(self, origin: JobOrigin, role: ActorRole) -> list:
        return self._collections[origin]


class FetchActiveJobsTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.store = InMemoryStore()
        self.negotiation = self.store.create_negotiation(client_id="client-1", transcriber_id="tx-1", price="30")
        self.upload = self.store.create_direct_upload(client_id="client-1", price="12.5")
        self.client = JobRepositoryClient(self.store.backend_for("client-1", ActorRole.CLIENT))

    async def test_returns_union_tagged_by_source_collection(self) -> None:
        jobs = await self.client.fetch_active_jobs("client-1", ActorRole.CLIENT)

        self.assertTrue(jobs.complete)
        self.assertEqual(jobs.get(self.negotiation.id).origin, JobOrigin.NEGOTIATION)
        self.assertEqual(jobs.get(self.upload.id).origin, JobOrigin.DIRECT_UPLOAD)
        self.assertEqual(jobs.get(self.upload.id).price_amount, Decimal("12.5"))

    async def test_fetches_origins_concurrently(self) -> None:
        await self.client.fetch_active_jobs("client-1", ActorRole.CLIENT)
        self.assertEqual(self.store.snapshot_calls, 2)

    async def test_partial_failure_keeps_other_origin_and_reports_notice(self) -> None:
        self.store.snapshot_failures[JobOrigin.DIRECT_UPLOAD] = BackendUnavailableError("down", status_code=503)

        jobs = await self.client.fetch_active_jobs("client-1", ActorRole.CLIENT)

        self.assertEqual([job.id for job in jobs.jobs], [self.negotiation.id])
        self.assertFalse(jobs.complete)
        self.assertEqual(len(jobs.notices), 1)
        self.assertEqual(jobs.notices[0].origin, JobOrigin.DIRECT_UPLOAD)
        self.assertIs(jobs.notices[0].error.kind, ErrorKind.NETWORK)

    async def test_auth_failure_is_reported_as_notice(self) -> None:
        self.store.snapshot_failures[JobOrigin.NEGOTIATION] = BackendAuthError("expired", status_code=401)

        jobs = await self.client.fetch_active_jobs("client-1", ActorRole.CLIENT)

        self.assertIs(jobs.notices[0].error.kind, ErrorKind.AUTH)

    async def test_malformed_entries_are_dropped_not_fatal(self) -> None:
        good = self.store.to_wire(self.negotiation)
        backend = _StaticBackend(
            {
                JobOrigin.NEGOTIATION: [good, "garbage", {"id": "n2", "status": "unknown", "client_id": "c"}, good],
                JobOrigin.DIRECT_UPLOAD: [{"status": "taken"}],
            }
        )
        with self.assertLogs("scribedesk.services.repository_client", level="WARNING") as logs:
            jobs = await JobRepositoryClient(backend).fetch_active_jobs("client-1", ActorRole.CLIENT)

        self.assertEqual([job.id for job in jobs.jobs], [self.negotiation.id])
        self.assertTrue(any("snapshot.entry_dropped" in line for line in logs.output))
        self.assertTrue(any("snapshot.duplicate_dropped" in line for line in logs.output))

    async def test_available_pool_is_normalized_as_direct_upload(self) -> None:
        self.store.create_direct_upload(client_id="client-2", price="9", status=DirectUploadStatus.TAKEN, transcriber_id="tx-9")
        client = JobRepositoryClient(self.store.backend_for("tx-1", ActorRole.TRANSCRIBER))

        pool = await client.fetch_available_jobs()

        self.assertEqual([job.id for job in pool.jobs], [self.upload.id])
        self.assertEqual(pool.jobs[0].status, DirectUploadStatus.AVAILABLE_FOR_TRANSCRIBER)


class NormalizeJobTests(unittest.TestCase):
    def _raw(self, **overrides):
        raw = {
            "id": "n1",
            "status": "pending",
            "client_id": "client-1",
            "transcriber_id": "tx-1",
            "agreed_price_usd": "30.00",
            "deadline_hours": 24,
            "negotiation_files": "audio.mp3",
        }
        raw.update(overrides)
        return raw

    def test_invited_transcriber_is_not_assigned_before_hire(self) -> None:
        job = normalize_job(JobOrigin.NEGOTIATION, self._raw())

        self.assertIsNone(job.counterparties.transcriber_id)
        self.assertEqual(job.counterparties.proposed_transcriber_id, "tx-1")
        self.assertEqual(job.file_name, "audio.mp3")

    def test_hired_job_carries_assigned_transcriber(self) -> None:
        job = normalize_job(JobOrigin.NEGOTIATION, self._raw(status="hired"))

        self.assertEqual(job.status, NegotiationStatus.HIRED)
        self.assertEqual(job.counterparties.transcriber_id, "tx-1")

    def test_assigned_status_without_transcriber_is_malformed(self) -> None:
        with self.assertRaises(MalformedJobError):
            normalize_job(JobOrigin.NEGOTIATION, self._raw(status="hired", transcriber_id=None))

    def test_status_is_read_in_the_source_origin(self) -> None:
        raw = {
            "id": "d1",
            "status": "completed",
            "client_id": "client-1",
            "transcriber_id": "tx-1",
            "quote_amount": 15,
            "agreed_deadline_hours": 48,
            "file_name": "upload.wav",
            "client_feedback_rating": 4,
            "client_feedback_comment": None,
            "last_message_text": "done",
            "last_message_timestamp": "2026-01-02T03:04:05Z",
        }
        job = normalize_job(JobOrigin.DIRECT_UPLOAD, raw)

        self.assertIs(job.status, DirectUploadStatus.COMPLETED)
        self.assertEqual(job.deadline_hours, 48)
        self.assertEqual(job.feedback.rating, 4)
        self.assertEqual(job.feedback.comment, "")
        self.assertEqual(job.last_activity.text, "done")
        self.assertIsNotNone(job.last_activity.timestamp.tzinfo)

    def test_missing_price_is_malformed(self) -> None:
        with self.assertRaises(MalformedJobError):
            normalize_job(JobOrigin.NEGOTIATION, self._raw(agreed_price_usd=None))


if __name__ == "__main__":
    unittest.main()
