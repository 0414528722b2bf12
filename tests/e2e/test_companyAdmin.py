"""
E2E: Company dashboard, complaints and platform administration.

Tests the back-office flows with Stripe mocked at the SDK level:
- Company job listing and refunds
- Withdrawal balance, withdrawal requests and admin processing
- Customer complaints resolved with a refund
- Approving a newly registered company
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from httpx import AsyncClient


pytestmark = pytest.mark.asyncio


async def _complete_wash(client: AsyncClient, book_and_pay, cleaner_headers, **booking) -> dict:
    job = await book_and_pay(**booking)
    await client.post(f"/api/cleaner/start-job/{job['id']}", headers=cleaner_headers)
    resp = await client.post(f"/api/cleaner/complete-job/{job['id']}", headers=cleaner_headers)
    assert resp.status_code == 200, resp.text
    return resp.json()


class TestCompanyJobs:
    async def test_lists_only_own_jobs_with_status_filter(
        self, client: AsyncClient, book_and_pay, company_headers, seed
    ):
        await book_and_pay()
        lat, lng = seed.jlt
        pool_job = await book_and_pay(lat=lat, lng=lng)

        resp = await client.get(
            "/api/company/jobs", params={"status": "paid"}, headers=company_headers
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["meta"]["totalItems"] == 1
        assert body["data"][0]["id"] == pool_job["id"]

    async def test_refund_paid_job(
        self, client: AsyncClient, book_and_pay, company_headers, mock_stripe, seed
    ):
        lat, lng = seed.jlt
        job = await book_and_pay(lat=lat, lng=lng)

        resp = await client.post(
            f"/api/company/jobs/{job['id']}/refund",
            json={"reason": "Customer left before the wash"},
            headers=company_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "refunded"
        assert resp.json()["refundReason"] == "Customer left before the wash"
        mock_stripe.Refund.create.assert_called_once()
        assert "amount" not in mock_stripe.Refund.create.call_args.kwargs

    async def test_refund_twice_conflicts(
        self, client: AsyncClient, book_and_pay, company_headers
    ):
        job = await book_and_pay()
        first = await client.post(f"/api/company/jobs/{job['id']}/refund", headers=company_headers)
        assert first.status_code == 200
        second = await client.post(f"/api/company/jobs/{job['id']}/refund", headers=company_headers)
        assert second.status_code == 409

    async def test_cancel_frees_the_cleaner(
        self, client: AsyncClient, book_and_pay, company_headers, cleaner_headers
    ):
        job = await book_and_pay()
        resp = await client.post(
            f"/api/company/jobs/{job['id']}/cancel",
            json={"reason": "Vehicle not found"},
            headers=company_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"

        profile = await client.get("/api/cleaner/profile", headers=cleaner_headers)
        assert profile.json()["status"] == "on_duty"

    async def test_cleaner_cannot_use_company_routes(
        self, client: AsyncClient, cleaner_headers
    ):
        resp = await client.get("/api/company/jobs", headers=cleaner_headers)
        assert resp.status_code == 403


class TestWithdrawals:
    async def test_balance_request_and_payout(
        self,
        client: AsyncClient,
        book_and_pay,
        cleaner_headers,
        company_headers,
        admin_headers,
    ):
        await _complete_wash(client, book_and_pay, cleaner_headers, tipAmount="10.00")
        await _complete_wash(client, book_and_pay, cleaner_headers)

        balance = await client.get(
            "/api/company/financials/withdrawal-balance", headers=company_headers
        )
        assert balance.status_code == 200
        body = balance.json()
        assert body["totalCompletedJobs"] == 2
        assert body["availableJobs"] == 2
        assert Decimal(body["availableJobValue"]) == Decimal("100.00")
        assert Decimal(body["availableTips"]) == Decimal("10.00")

        requested = await client.post(
            "/api/company/financials/request-withdrawal",
            json={"jobCount": 2, "tips": "10.00"},
            headers=company_headers,
        )
        assert requested.status_code == 201
        withdrawal = requested.json()
        assert withdrawal["status"] == "pending"
        assert Decimal(withdrawal["baseAmount"]) == Decimal("100.00")
        assert Decimal(withdrawal["vatAmount"]) == Decimal("5.00")
        assert Decimal(withdrawal["amount"]) == Decimal("115.00")

        balance = await client.get(
            "/api/company/financials/withdrawal-balance", headers=company_headers
        )
        assert balance.json()["availableJobs"] == 0

        processed = await client.post(
            f"/api/admin/financials/withdrawals/{withdrawal['id']}/process",
            json={"status": "completed", "referenceNumber": "BANK-001"},
            headers=admin_headers,
        )
        assert processed.status_code == 200
        assert processed.json()["status"] == "completed"
        assert processed.json()["referenceNumber"] == "BANK-001"

        again = await client.post(
            f"/api/admin/financials/withdrawals/{withdrawal['id']}/process",
            json={"status": "cancelled"},
            headers=admin_headers,
        )
        assert again.status_code == 409

    async def test_cannot_withdraw_more_than_completed(
        self, client: AsyncClient, company_headers
    ):
        resp = await client.post(
            "/api/company/financials/request-withdrawal",
            json={"jobCount": 1},
            headers=company_headers,
        )
        assert resp.status_code == 400

    async def test_empty_request_rejected(self, client: AsyncClient, company_headers):
        resp = await client.post(
            "/api/company/financials/request-withdrawal",
            json={"jobCount": 0, "tips": "0"},
            headers=company_headers,
        )
        assert resp.status_code == 400


class TestComplaints:
    async def test_complaint_refunded_by_company(
        self,
        client: AsyncClient,
        book_and_pay,
        cleaner_headers,
        customer_headers,
        company_headers,
        mock_stripe,
    ):
        job = await _complete_wash(
            client, book_and_pay, cleaner_headers, headers=customer_headers
        )

        filed = await client.post(
            "/api/complaints",
            json={
                "jobId": job["id"],
                "type": "refund_request",
                "description": "Interior was not vacuumed",
            },
            headers=customer_headers,
        )
        assert filed.status_code == 201
        complaint = filed.json()
        assert complaint["status"] == "pending"
        assert complaint["referenceNumber"].startswith("CMP-")

        listed = await client.get("/api/company/complaints", headers=company_headers)
        assert [c["id"] for c in listed.json()] == [complaint["id"]]

        in_progress = await client.put(
            f"/api/company/complaints/{complaint['id']}/status",
            json={"status": "in_progress"},
            headers=company_headers,
        )
        assert in_progress.status_code == 200
        assert in_progress.json()["status"] == "in_progress"

        refunded = await client.post(
            f"/api/company/complaints/{complaint['id']}/refund",
            headers=company_headers,
        )
        assert refunded.status_code == 200
        assert refunded.json()["status"] == "refunded"
        assert refunded.json()["stripeRefundId"] == "re_test_789"

        job_after = await client.get(f"/api/jobs/{job['id']}")
        assert job_after.json()["status"] == "refunded"

        mine = await client.get("/api/customer/complaints", headers=customer_headers)
        assert mine.json()[0]["status"] == "refunded"

    async def test_guest_job_cannot_be_complained_about(
        self, client: AsyncClient, book_and_pay, customer_headers
    ):
        job = await book_and_pay()
        resp = await client.post(
            "/api/complaints",
            json={"jobId": job["id"], "type": "general", "description": "Late"},
            headers=customer_headers,
        )
        assert resp.status_code == 403

    async def test_refunded_status_needs_refund_action(
        self, client: AsyncClient, book_and_pay, customer_headers, admin_headers
    ):
        job = await book_and_pay(headers=customer_headers)
        filed = await client.post(
            "/api/complaints",
            json={"jobId": job["id"], "type": "general", "description": "Rude cleaner"},
            headers=customer_headers,
        )
        resp = await client.put(
            f"/api/admin/complaints/{filed.json()['id']}/status",
            json={"status": "refunded"},
            headers=admin_headers,
        )
        assert resp.status_code == 409


class TestCompanyApproval:
    async def test_register_then_approve(
        self, client: AsyncClient, admin_headers, seed
    ):
        registered = await client.post(
            "/api/auth/register/company",
            json={
                "email": "owner@shinyride.test",
                "password": "supersecret",
                "displayName": "Hamed",
                "companyName": "Shiny Ride",
                "pricePerWash": "45.00",
                "tradeLicenseNumber": "TL-123",
            },
        )
        assert registered.status_code == 201

        pending = await client.get("/api/admin/pending-companies", headers=admin_headers)
        assert pending.status_code == 200
        by_name = {c["name"]: c for c in pending.json()}
        assert "Shiny Ride" in by_name
        assert "Foam Brothers" in by_name

        company_id = by_name["Shiny Ride"]["id"]
        approved = await client.post(
            f"/api/admin/companies/{company_id}/approve", headers=admin_headers
        )
        assert approved.status_code == 200
        assert approved.json()["isActive"] is True

        listed = await client.get("/api/companies/all")
        assert company_id in {c["id"] for c in listed.json()}

    async def test_company_admin_cannot_approve(
        self, client: AsyncClient, company_headers, seed
    ):
        resp = await client.post(
            f"/api/admin/companies/{seed.pending_company_id}/approve",
            headers=company_headers,
        )
        assert resp.status_code == 403

    async def test_fees_for_company(self, client: AsyncClient, seed):
        resp = await client.get(f"/api/companies/{seed.company_id}/fees")
        assert resp.status_code == 200
        body = resp.json()
        assert Decimal(body["carWashPrice"]) == Decimal("50.00")
        assert Decimal(body["vat"]) == Decimal("2.65")
        assert Decimal(body["total"]) == Decimal("55.65")
