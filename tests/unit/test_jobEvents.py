"""
Unit tests for the job / cleaner event publishers.

The socket broadcast and the push service are patched; the tests check
payload shape, room routing and that delivery failures never propagate.
"""

from unittest.mock import AsyncMock, patch

import pytest

from washpro.events import jobEvents
from washpro.models import CleanerStatus, JobStatus
from washpro.realtime import socketServer


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


class TestBuildJobPayload:
    def test_unassigned_job(self, sample_job):
        payload = jobEvents.build_job_payload(sample_job)
        assert payload["id"] == str(sample_job.id)
        assert payload["status"] == "paid"
        assert payload["cleanerId"] is None
        assert payload["cleanerName"] is None
        assert payload["totalAmount"] == "55.65"
        assert payload["locationLatitude"] == pytest.approx(25.0805)
        assert payload["paidAt"] == "2026-03-01T09:05:00+00:00"
        assert payload["startedAt"] is None

    def test_assigned_job_carries_cleaner_name(self, sample_job, sample_cleaner):
        sample_job.cleaner = sample_cleaner
        sample_job.cleaner_id = sample_cleaner.id
        payload = jobEvents.build_job_payload(sample_job)
        assert payload["cleanerId"] == str(sample_cleaner.id)
        assert payload["cleanerName"] == "Ali Cleaner"


class TestBuildCleanerPayload:
    def test_fields(self, sample_cleaner):
        payload = jobEvents.build_cleaner_payload(sample_cleaner)
        assert payload["status"] == CleanerStatus.ON_DUTY.value
        assert payload["latitude"] == pytest.approx(25.0805)
        assert payload["companyId"] == str(sample_cleaner.company_id)


# ---------------------------------------------------------------------------
# Publishers
# ---------------------------------------------------------------------------


class TestPublishJobUpdate:
    @pytest.mark.asyncio
    async def test_emits_to_every_room(self, mock_db, sample_job):
        with patch.object(socketServer.sio, "emit", new_callable=AsyncMock) as emit, \
                patch.object(
                    jobEvents.notificationService,
                    "notify_job_status_change",
                    new_callable=AsyncMock,
                ) as notify:
            await jobEvents.publish_job_update(
                mock_db, sample_job, previous_status=JobStatus.PENDING_PAYMENT
            )

        event, data = emit.await_args.args
        assert event == "job_update"
        assert data["type"] == "job_update"
        assert data["job"]["id"] == str(sample_job.id)
        rooms = emit.await_args.kwargs["room"]
        assert f"job_{sample_job.id}" in rooms
        assert f"customer_{sample_job.customer_id}" in rooms
        assert f"company_{sample_job.company_id}" in rooms
        notify.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unchanged_status_sends_no_push(self, mock_db, sample_job):
        with patch.object(socketServer.sio, "emit", new_callable=AsyncMock), \
                patch.object(
                    jobEvents.notificationService,
                    "notify_job_status_change",
                    new_callable=AsyncMock,
                ) as notify:
            await jobEvents.publish_job_update(
                mock_db, sample_job, previous_status=JobStatus.PAID
            )
        notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_broadcast_failure_is_swallowed(self, mock_db, sample_job):
        with patch.object(
            socketServer.sio,
            "emit",
            new_callable=AsyncMock,
            side_effect=ConnectionError("redis down"),
        ), patch.object(
            jobEvents.notificationService,
            "notify_job_status_change",
            new_callable=AsyncMock,
            side_effect=RuntimeError("fcm down"),
        ):
            await jobEvents.publish_job_update(
                mock_db, sample_job, previous_status=JobStatus.PENDING_PAYMENT
            )


class TestPublishNewJob:
    @pytest.mark.asyncio
    async def test_no_cleaners_no_push(self, mock_db, sample_job):
        with patch.object(
            jobEvents.notificationService, "notify_new_job", new_callable=AsyncMock
        ) as notify:
            await jobEvents.publish_new_job(mock_db, sample_job, [])
        notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_alerts_on_duty_cleaners(self, mock_db, sample_job, sample_cleaner):
        with patch.object(
            jobEvents.notificationService, "notify_new_job", new_callable=AsyncMock
        ) as notify:
            await jobEvents.publish_new_job(mock_db, sample_job, [sample_cleaner.user_id])
        notify.assert_awaited_once_with(mock_db, sample_job, [sample_cleaner.user_id])


class TestPublishCleanerUpdate:
    @pytest.mark.asyncio
    async def test_rooms_and_skip_sid(self, sample_cleaner):
        with patch.object(socketServer.sio, "emit", new_callable=AsyncMock) as emit:
            await jobEvents.publish_cleaner_update(sample_cleaner, skip_sid="sid-1")

        assert emit.await_args.args[0] == "cleaner_update"
        assert emit.await_args.kwargs["room"] == [
            f"cleaner_{sample_cleaner.id}",
            f"company_{sample_cleaner.company_id}",
        ]
        assert emit.await_args.kwargs["skip_sid"] == "sid-1"
