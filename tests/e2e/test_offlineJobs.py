"""
E2E: Cash washes for companies on the offline fee package.

- Cleaners record and finish offline jobs (price plus VAT, no platform fee)
- Companies on an online package cannot record them
- The company dashboard lists them by cleaner and day
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from washpro.models import Company, FeePackageType
from washpro.models.base import utcnow


pytestmark = pytest.mark.asyncio


@pytest_asyncio.fixture
async def offline_company(seeded_db: AsyncSession, seed) -> Company:
    company = await seeded_db.get(Company, seed.company_id)
    company.fee_package_type = FeePackageType.PACKAGE2
    await seeded_db.flush()
    return company


async def _record(client: AsyncClient, headers, **body) -> dict:
    resp = await client.post(
        "/api/cleaner/offline-jobs",
        json={"carPlateNumber": "k 4411", "carPlateEmirate": "Dubai", **body},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestCleanerOfflineJobs:
    async def test_record_and_complete(
        self, client: AsyncClient, cleaner_headers, offline_company, seed
    ):
        job = await _record(client, cleaner_headers, notes="Paid cash")
        assert job["carPlateNumber"] == "K4411"
        assert Decimal(job["servicePrice"]) == Decimal("50.00")
        assert Decimal(job["vatAmount"]) == Decimal("2.50")
        assert Decimal(job["totalAmount"]) == Decimal("52.50")
        assert job["status"] == "in_progress"
        assert job["cleanerId"] == str(seed.cleaner_id)
        assert job["cleanerName"] == "Ali Cleaner"

        done = await client.post(
            f"/api/cleaner/offline-jobs/{job['id']}/complete",
            json={"completionPhotoUrl": "https://cdn.test/after.jpg"},
            headers=cleaner_headers,
        )
        assert done.status_code == 200
        assert done.json()["status"] == "completed"
        assert done.json()["completionPhotoUrl"] == "https://cdn.test/after.jpg"
        assert done.json()["completedAt"] is not None

        again = await client.post(
            f"/api/cleaner/offline-jobs/{job['id']}/complete", headers=cleaner_headers
        )
        assert again.status_code == 409

    async def test_custom_price(self, client: AsyncClient, cleaner_headers, offline_company):
        job = await _record(client, cleaner_headers, servicePrice="80.00")
        assert Decimal(job["vatAmount"]) == Decimal("4.00")
        assert Decimal(job["totalAmount"]) == Decimal("84.00")

    async def test_cleaner_lists_own_jobs(
        self, client: AsyncClient, cleaner_headers, offline_company
    ):
        first = await _record(client, cleaner_headers)
        second = await _record(client, cleaner_headers, carPlateNumber="B 2")

        resp = await client.get("/api/cleaner/offline-jobs", headers=cleaner_headers)
        assert resp.status_code == 200
        assert {j["id"] for j in resp.json()} == {first["id"], second["id"]}

    async def test_online_package_cannot_record(
        self, client: AsyncClient, cleaner_headers
    ):
        resp = await client.post(
            "/api/cleaner/offline-jobs",
            json={"carPlateNumber": "K 1"},
            headers=cleaner_headers,
        )
        assert resp.status_code == 400

    async def test_unknown_job_returns_404(
        self, client: AsyncClient, cleaner_headers, offline_company
    ):
        resp = await client.post(
            f"/api/cleaner/offline-jobs/{uuid.uuid4()}/complete", headers=cleaner_headers
        )
        assert resp.status_code == 404

    async def test_zero_price_returns_422(
        self, client: AsyncClient, cleaner_headers, offline_company
    ):
        resp = await client.post(
            "/api/cleaner/offline-jobs",
            json={"carPlateNumber": "K 1", "servicePrice": "0"},
            headers=cleaner_headers,
        )
        assert resp.status_code == 422


class TestCompanyOfflineJobs:
    async def test_filters_by_cleaner_and_day(
        self, client: AsyncClient, cleaner_headers, company_headers, offline_company, seed
    ):
        job = await _record(client, cleaner_headers)
        today = utcnow().date()

        resp = await client.get(
            "/api/company/offline-jobs",
            params={
                "cleanerId": str(seed.cleaner_id),
                "startDate": today.isoformat(),
                "endDate": today.isoformat(),
            },
            headers=company_headers,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert [j["id"] for j in body["data"]] == [job["id"]]
        assert body["meta"]["totalItems"] == 1

        other_cleaner = await client.get(
            "/api/company/offline-jobs",
            params={"cleanerId": str(uuid.uuid4())},
            headers=company_headers,
        )
        assert other_cleaner.json()["data"] == []

        yesterday = (today - timedelta(days=1)).isoformat()
        earlier = await client.get(
            "/api/company/offline-jobs",
            params={"endDate": yesterday},
            headers=company_headers,
        )
        assert earlier.json()["meta"]["totalItems"] == 0

    async def test_paginates_newest_first(
        self, client: AsyncClient, cleaner_headers, company_headers, offline_company
    ):
        for plate in ("A 1", "A 2", "A 3"):
            await _record(client, cleaner_headers, carPlateNumber=plate)

        resp = await client.get(
            "/api/company/offline-jobs",
            params={"page": 1, "pageSize": 2},
            headers=company_headers,
        )
        body = resp.json()
        assert len(body["data"]) == 2
        assert body["meta"]["totalItems"] == 3
        assert body["meta"]["totalPages"] == 2

    async def test_reversed_range_returns_400(self, client: AsyncClient, company_headers):
        resp = await client.get(
            "/api/company/offline-jobs",
            params={"startDate": "2026-03-02", "endDate": "2026-03-01"},
            headers=company_headers,
        )
        assert resp.status_code == 400

    async def test_cleaner_cannot_use_company_listing(
        self, client: AsyncClient, cleaner_headers
    ):
        resp = await client.get("/api/company/offline-jobs", headers=cleaner_headers)
        assert resp.status_code == 403
