"""
Unit tests for offline (cash) jobs: package gating, pricing with VAT and
completion rules.  The session is mocked.
"""

import uuid
from datetime import date
from decimal import Decimal

import pytest

from washpro.models import FeePackageType, OfflineJob, OfflineJobStatus
from washpro.services.offlineJobService import (
    OfflineJobError,
    OfflineJobNotFoundError,
    complete_offline_job,
    create_offline_job,
    list_company_offline_jobs,
)


pytestmark = pytest.mark.asyncio


@pytest.fixture
def offline_company(sample_company):
    sample_company.fee_package_type = FeePackageType.PACKAGE2
    return sample_company


class TestCreateOfflineJob:
    async def test_defaults_to_company_price_plus_vat(
        self, mock_db, offline_company, sample_cleaner
    ):
        mock_db.get.return_value = offline_company

        job = await create_offline_job(mock_db, sample_cleaner, car_plate_number="k 4411")

        assert job.car_plate_number == "K4411"
        assert job.service_price == Decimal("50.00")
        assert job.vat_amount == Decimal("2.50")
        assert job.total_amount == Decimal("52.50")
        assert job.status == OfflineJobStatus.IN_PROGRESS
        assert job.company_id == offline_company.id
        mock_db.add.assert_called_once_with(job)

    async def test_explicit_price(self, mock_db, offline_company, sample_cleaner):
        mock_db.get.return_value = offline_company

        job = await create_offline_job(
            mock_db, sample_cleaner, car_plate_number="K1", service_price="35.50"
        )

        assert job.vat_amount == Decimal("1.78")
        assert job.total_amount == Decimal("37.28")

    @pytest.mark.parametrize(
        "package", [FeePackageType.CUSTOM, FeePackageType.PACKAGE1]
    )
    async def test_online_packages_are_rejected(
        self, mock_db, sample_company, sample_cleaner, package
    ):
        sample_company.fee_package_type = package
        mock_db.get.return_value = sample_company

        with pytest.raises(OfflineJobError):
            await create_offline_job(mock_db, sample_cleaner, car_plate_number="K1")
        mock_db.add.assert_not_called()

    async def test_blank_plate_is_rejected(self, mock_db, offline_company, sample_cleaner):
        mock_db.get.return_value = offline_company

        with pytest.raises(OfflineJobError, match="plate"):
            await create_offline_job(mock_db, sample_cleaner, car_plate_number="  ")

    async def test_deactivated_cleaner_is_rejected(
        self, mock_db, offline_company, sample_cleaner
    ):
        sample_cleaner.is_active = False
        mock_db.get.return_value = offline_company

        with pytest.raises(OfflineJobError):
            await create_offline_job(mock_db, sample_cleaner, car_plate_number="K1")


class TestCompleteOfflineJob:
    def _job(self, cleaner, status=OfflineJobStatus.IN_PROGRESS) -> OfflineJob:
        return OfflineJob(
            id=uuid.uuid4(),
            cleaner_id=cleaner.id,
            company_id=cleaner.company_id,
            car_plate_number="K1",
            service_price=Decimal("50.00"),
            vat_amount=Decimal("2.50"),
            total_amount=Decimal("52.50"),
            status=status,
        )

    async def test_stores_photo_and_time(self, mock_db, sample_cleaner):
        job = self._job(sample_cleaner)
        mock_db.get.return_value = job

        done = await complete_offline_job(
            mock_db, sample_cleaner, job.id, photo_url="https://cdn.test/after.jpg"
        )

        assert done.status == OfflineJobStatus.COMPLETED
        assert done.completion_photo_url == "https://cdn.test/after.jpg"
        assert done.completed_at is not None

    async def test_other_cleaners_job_is_not_found(self, mock_db, sample_cleaner):
        job = self._job(sample_cleaner)
        job.cleaner_id = uuid.uuid4()
        mock_db.get.return_value = job

        with pytest.raises(OfflineJobNotFoundError):
            await complete_offline_job(mock_db, sample_cleaner, job.id)

    async def test_completed_job_cannot_be_completed_again(self, mock_db, sample_cleaner):
        mock_db.get.return_value = self._job(sample_cleaner, OfflineJobStatus.COMPLETED)

        with pytest.raises(OfflineJobError):
            await complete_offline_job(mock_db, sample_cleaner, uuid.uuid4())


class TestListCompanyOfflineJobs:
    async def test_reversed_dates_are_rejected(self, mock_db):
        with pytest.raises(OfflineJobError):
            await list_company_offline_jobs(
                mock_db,
                uuid.uuid4(),
                start_date=date(2026, 3, 2),
                end_date=date(2026, 3, 1),
            )
        mock_db.execute.assert_not_called()
