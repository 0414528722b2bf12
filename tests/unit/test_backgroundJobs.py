"""
Unit tests for the scheduled maintenance jobs: unattended auto-refund and
the shift inactivity timeout.
"""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from washpro.core.config import settings
from washpro.jobs import autoRefund, shiftTimeout
from washpro.models import CleanerStatus, ShiftSession

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Auto-refund
# ---------------------------------------------------------------------------


class TestAutoRefund:
    @pytest.mark.asyncio
    async def test_cutoff_uses_configured_minutes(self, mock_db):
        with patch.object(
            autoRefund.jobService,
            "find_expired_paid_jobs",
            new_callable=AsyncMock,
            return_value=[],
        ) as find:
            result = await autoRefund.run_auto_refund(mock_db, now=NOW)

        find.assert_awaited_once_with(
            mock_db, NOW - timedelta(minutes=settings.auto_refund_minutes)
        )
        assert result.checked == 0
        assert result.refunded == []

    @pytest.mark.asyncio
    async def test_refunds_each_expired_job(self, mock_db, sample_job):
        with patch.object(
            autoRefund.jobService,
            "find_expired_paid_jobs",
            new_callable=AsyncMock,
            return_value=[sample_job],
        ), patch.object(
            autoRefund.jobService,
            "refund_unattended_job",
            new_callable=AsyncMock,
        ) as refund:
            result = await autoRefund.run_auto_refund(mock_db, now=NOW)

        refund.assert_awaited_once_with(mock_db, sample_job)
        assert result.refunded == [sample_job.id]
        assert result.failed == []

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_run(self, mock_db):
        broken = MagicMock(id=uuid.uuid4())
        fine = MagicMock(id=uuid.uuid4())
        with patch.object(
            autoRefund.jobService,
            "find_expired_paid_jobs",
            new_callable=AsyncMock,
            return_value=[broken, fine],
        ), patch.object(
            autoRefund.jobService,
            "refund_unattended_job",
            new_callable=AsyncMock,
            side_effect=[RuntimeError("stripe down"), fine],
        ):
            result = await autoRefund.run_auto_refund(mock_db, now=NOW)

        assert result.checked == 2
        assert result.failed == [broken.id]
        assert result.refunded == [fine.id]
        assert mock_db.begin_nested.call_count == 2


# ---------------------------------------------------------------------------
# Shift timeout
# ---------------------------------------------------------------------------


class TestShiftTimeout:
    @pytest.mark.asyncio
    async def test_closes_open_shift_and_goes_off_duty(self, mock_db, sample_cleaner):
        shift = ShiftSession(
            id=uuid.uuid4(),
            cleaner_id=sample_cleaner.id,
            company_id=sample_cleaner.company_id,
            shift_start=datetime.now(timezone.utc) - timedelta(hours=2),
        )
        with patch.object(
            shiftTimeout,
            "find_inactive_cleaners",
            new_callable=AsyncMock,
            return_value=[sample_cleaner],
        ) as find, patch.object(
            shiftTimeout.cleanerService,
            "get_open_shift",
            new_callable=AsyncMock,
            return_value=shift,
        ), patch.object(
            shiftTimeout.jobEvents, "publish_shift_change", new_callable=AsyncMock
        ) as publish:
            result = await shiftTimeout.run_shift_timeout(mock_db, now=NOW)

        find.assert_awaited_once_with(
            mock_db, NOW - timedelta(minutes=settings.shift_inactivity_minutes)
        )
        assert result.closed == [sample_cleaner.id]
        assert sample_cleaner.status == CleanerStatus.OFF_DUTY
        assert shift.end_reason == shiftTimeout.TIMEOUT_REASON
        assert shift.shift_end is not None
        assert shift.duration_minutes >= 120
        publish.assert_awaited_once_with(mock_db, sample_cleaner, on_duty=False)

    @pytest.mark.asyncio
    async def test_without_open_shift_still_goes_off_duty(self, mock_db, sample_cleaner):
        with patch.object(
            shiftTimeout,
            "find_inactive_cleaners",
            new_callable=AsyncMock,
            return_value=[sample_cleaner],
        ), patch.object(
            shiftTimeout.cleanerService,
            "get_open_shift",
            new_callable=AsyncMock,
            return_value=None,
        ), patch.object(
            shiftTimeout.jobEvents, "publish_shift_change", new_callable=AsyncMock
        ):
            result = await shiftTimeout.run_shift_timeout(mock_db, now=NOW)

        assert result.checked == 1
        assert sample_cleaner.status == CleanerStatus.OFF_DUTY

    @pytest.mark.asyncio
    async def test_failure_is_reported_and_next_cleaner_handled(self, mock_db):
        stuck = MagicMock(id=uuid.uuid4(), status=CleanerStatus.ON_DUTY)
        fine = MagicMock(id=uuid.uuid4(), status=CleanerStatus.ON_DUTY)
        with patch.object(
            shiftTimeout,
            "find_inactive_cleaners",
            new_callable=AsyncMock,
            return_value=[stuck, fine],
        ), patch.object(
            shiftTimeout.cleanerService,
            "get_open_shift",
            new_callable=AsyncMock,
            side_effect=[RuntimeError("db gone"), None],
        ), patch.object(
            shiftTimeout.jobEvents, "publish_shift_change", new_callable=AsyncMock
        ) as publish:
            result = await shiftTimeout.run_shift_timeout(mock_db, now=NOW)

        assert result.failed == [stuck.id]
        assert result.closed == [fine.id]
        assert stuck.status == CleanerStatus.ON_DUTY
        publish.assert_awaited_once_with(mock_db, fine, on_duty=False)
