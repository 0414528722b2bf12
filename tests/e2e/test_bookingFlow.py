"""
E2E: Customer booking and payment.

Covers the customer side of a wash end to end, with Stripe mocked at the
SDK level:
- Nearby company search around an on-duty cleaner
- Payment intent creation and the price breakdown behind it
- Payment confirmation, auto-assignment and the pool fallback
- Plate tracking, job lookup and the customer's job history
- Cancelling an unpaid booking
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from httpx import AsyncClient

from washpro.core.config import settings


pytestmark = pytest.mark.asyncio


def _job_updates(emit_mock) -> list[dict]:
    return [
        call.args[1]["job"]
        for call in emit_mock.await_args_list
        if call.args and call.args[0] == "job_update"
    ]


class TestNearbyCompanies:
    async def test_company_with_cleaner_on_the_spot(self, client: AsyncClient, seed):
        lat, lng = seed.marina
        resp = await client.get("/api/companies/nearby", params={"lat": lat, "lon": lng})
        assert resp.status_code == 200
        body = resp.json()
        assert [c["id"] for c in body] == [str(seed.company_id)]
        assert body[0]["onDutyCleanersCount"] == 1
        assert body[0]["distanceInMeters"] == pytest.approx(0.0, abs=1.0)
        assert Decimal(body[0]["fees"]["total"]) == Decimal("55.65")

    async def test_nothing_outside_the_radius(self, client: AsyncClient, seed):
        lat, lng = seed.jlt
        resp = await client.get("/api/companies/nearby", params={"lat": lat, "lon": lng})
        assert resp.status_code == 200
        assert resp.json() == []

    async def test_invalid_latitude_returns_422(self, client: AsyncClient):
        resp = await client.get("/api/companies/nearby", params={"lat": 120, "lon": 55.1})
        assert resp.status_code == 422

    async def test_unapproved_companies_are_hidden(self, client: AsyncClient, seed):
        resp = await client.get("/api/companies/all")
        assert resp.status_code == 200
        ids = {c["id"] for c in resp.json()}
        assert str(seed.company_id) in ids
        assert str(seed.pending_company_id) not in ids


class TestCreatePaymentIntent:
    async def test_charges_price_fee_and_vat(self, client: AsyncClient, seed, mock_stripe):
        lat, lng = seed.marina
        resp = await client.post(
            "/api/create-payment-intent",
            json={
                "companyId": str(seed.company_id),
                "carPlateNumber": "a 12345",
                "locationAddress": "Marina Walk, Dubai",
                "locationLatitude": lat,
                "locationLongitude": lng,
            },
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["clientSecret"].startswith(body["paymentIntentId"])
        assert Decimal(body["amount"]) == Decimal("55.65")
        assert body["currency"] == "aed"

        params = mock_stripe.PaymentIntent.create.call_args.kwargs
        assert params["amount"] == 5565
        assert params["metadata"]["job_id"] == body["jobId"]

        job = (await client.get(f"/api/jobs/{body['jobId']}")).json()
        assert job["status"] == "pending_payment"
        assert job["carPlateNumber"] == "A12345"
        assert Decimal(job["price"]) == Decimal("50.00")
        assert Decimal(job["platformFee"]) == Decimal("3.00")
        assert Decimal(job["taxAmount"]) == Decimal("2.65")

    async def test_tip_carries_its_own_vat(self, client: AsyncClient, seed):
        lat, lng = seed.marina
        resp = await client.post(
            "/api/create-payment-intent",
            json={
                "companyId": str(seed.company_id),
                "carPlateNumber": "B 777",
                "locationAddress": "Marina Walk, Dubai",
                "locationLatitude": lat,
                "locationLongitude": lng,
                "tipAmount": "10.00",
            },
        )
        assert resp.status_code == 201
        assert Decimal(resp.json()["amount"]) == Decimal("66.15")

    async def test_returns_publishable_key(
        self, client: AsyncClient, seed, monkeypatch
    ):
        monkeypatch.setattr(settings, "stripe_publishable_key", "pk_test_washpro")
        lat, lng = seed.marina
        resp = await client.post(
            "/api/create-payment-intent",
            json={
                "companyId": str(seed.company_id),
                "carPlateNumber": "B 77",
                "locationAddress": "Marina Walk, Dubai",
                "locationLatitude": lat,
                "locationLongitude": lng,
            },
        )
        assert resp.status_code == 201
        assert resp.json()["publishableKey"] == "pk_test_washpro"

    async def test_inactive_company_returns_400(self, client: AsyncClient, seed):
        lat, lng = seed.marina
        resp = await client.post(
            "/api/create-payment-intent",
            json={
                "companyId": str(seed.pending_company_id),
                "carPlateNumber": "C 1",
                "locationAddress": "Marina Walk, Dubai",
                "locationLatitude": lat,
                "locationLongitude": lng,
            },
        )
        assert resp.status_code == 400

    async def test_blank_plate_returns_422(self, client: AsyncClient, seed):
        lat, lng = seed.marina
        resp = await client.post(
            "/api/create-payment-intent",
            json={
                "companyId": str(seed.company_id),
                "carPlateNumber": "   ",
                "locationAddress": "Marina Walk, Dubai",
                "locationLatitude": lat,
                "locationLongitude": lng,
            },
        )
        assert resp.status_code == 422


class TestConfirmPayment:
    async def test_job_next_to_cleaner_is_auto_assigned(
        self, book_and_pay, seed, mock_socket_emit
    ):
        job = await book_and_pay()
        assert job["status"] == "assigned"
        assert job["cleanerId"] == str(seed.cleaner_id)
        assert job["receiptNumber"]
        assert job["paidAt"] is not None

        statuses = [update["status"] for update in _job_updates(mock_socket_emit)]
        assert statuses == ["paid", "assigned"]

    async def test_job_out_of_range_stays_in_pool(self, book_and_pay, seed):
        lat, lng = seed.jlt
        job = await book_and_pay(lat=lat, lng=lng)
        assert job["status"] == "paid"
        assert job["cleanerId"] is None

    async def test_requested_cleaner_gets_direct_job(self, book_and_pay, seed):
        job = await book_and_pay(requestedCleanerEmail=seed.cleaner_email.upper())
        assert job["assignmentMode"] == "direct"
        assert job["cleanerId"] == str(seed.cleaner_id)

    async def test_unsucceeded_intent_leaves_job_unpaid(
        self, client: AsyncClient, seed, mock_stripe
    ):
        lat, lng = seed.marina
        created = await client.post(
            "/api/create-payment-intent",
            json={
                "companyId": str(seed.company_id),
                "carPlateNumber": "D 42",
                "locationAddress": "Marina Walk, Dubai",
                "locationLatitude": lat,
                "locationLongitude": lng,
            },
        )
        mock_stripe.retrieve_status = "processing"

        resp = await client.post(
            f"/api/confirm-payment/{created.json()['paymentIntentId']}"
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "pending_payment"

    async def test_confirm_is_idempotent(
        self, client: AsyncClient, seed, mock_socket_emit
    ):
        lat, lng = seed.jlt
        created = await client.post(
            "/api/create-payment-intent",
            json={
                "companyId": str(seed.company_id),
                "carPlateNumber": "F 9",
                "locationAddress": "JLT Cluster D, Dubai",
                "locationLatitude": lat,
                "locationLongitude": lng,
            },
        )
        intent_id = created.json()["paymentIntentId"]

        first = await client.post(f"/api/confirm-payment/{intent_id}")
        updates_after_first = len(_job_updates(mock_socket_emit))
        second = await client.post(f"/api/confirm-payment/{intent_id}")

        assert second.status_code == 200
        assert second.json()["status"] == "paid"
        assert second.json()["paidAt"] == first.json()["paidAt"]
        assert second.json()["receiptNumber"] == first.json()["receiptNumber"]
        assert len(_job_updates(mock_socket_emit)) == updates_after_first

    async def test_unknown_intent_returns_404(self, client: AsyncClient):
        resp = await client.post("/api/confirm-payment/pi_does_not_exist")
        assert resp.status_code == 404


class TestTracking:
    async def test_track_by_plate_ignores_spacing(self, client: AsyncClient, book_and_pay):
        job = await book_and_pay()
        resp = await client.get("/api/jobs/track/a12345")
        assert resp.status_code == 200
        assert [j["id"] for j in resp.json()] == [job["id"]]

    async def test_unknown_job_returns_404(self, client: AsyncClient):
        resp = await client.get("/api/jobs/00000000-0000-0000-0000-000000000000")
        assert resp.status_code == 404

    async def test_customer_history(
        self, client: AsyncClient, book_and_pay, customer_headers, seed
    ):
        lat, lng = seed.jlt
        await book_and_pay(lat=lat, lng=lng, headers=customer_headers)
        await book_and_pay(headers=customer_headers)
        await book_and_pay()  # guest booking, not linked

        resp = await client.get("/api/customer/jobs", headers=customer_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["meta"]["totalItems"] == 2
        assert all(j["customerId"] == str(seed.customer_id) for j in body["data"])

    async def test_staff_token_cannot_list_customer_jobs(
        self, client: AsyncClient, cleaner_headers
    ):
        resp = await client.get("/api/customer/jobs", headers=cleaner_headers)
        assert resp.status_code == 401


class TestCustomerLogin:
    async def test_new_phone_creates_customer(self, client: AsyncClient):
        resp = await client.post(
            "/api/customer/login",
            json={"phoneNumber": "+971 55 000 1111", "displayName": "Lina"},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["customer"]["phone"] == "+971550001111"
        assert body["tokens"]["accessToken"]

        profile = await client.get(
            "/api/customer/profile",
            headers={"Authorization": f"Bearer {body['tokens']['accessToken']}"},
        )
        assert profile.status_code == 200
        assert profile.json()["displayName"] == "Lina"

    async def test_known_phone_logs_into_same_customer(self, client: AsyncClient, seed):
        resp = await client.post(
            "/api/customer/login", json={"phoneNumber": seed.customer_phone}
        )
        assert resp.json()["customer"]["id"] == str(seed.customer_id)


class TestCustomerCancel:
    async def test_cancel_unpaid_booking(
        self, client: AsyncClient, seed, customer_headers
    ):
        lat, lng = seed.marina
        created = await client.post(
            "/api/create-payment-intent",
            json={
                "companyId": str(seed.company_id),
                "carPlateNumber": "E 5",
                "locationAddress": "Marina Walk, Dubai",
                "locationLatitude": lat,
                "locationLongitude": lng,
            },
            headers=customer_headers,
        )
        job_id = created.json()["jobId"]

        resp = await client.post(
            f"/api/jobs/{job_id}/cancel",
            json={"reason": "Changed my mind"},
            headers=customer_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"
        assert resp.json()["cancelledAt"] is not None

    async def test_paid_job_cannot_be_cancelled_by_customer(
        self, client: AsyncClient, book_and_pay, customer_headers
    ):
        job = await book_and_pay(headers=customer_headers)
        resp = await client.post(f"/api/jobs/{job['id']}/cancel", headers=customer_headers)
        assert resp.status_code == 409

    async def test_other_customers_job_is_forbidden(
        self, client: AsyncClient, book_and_pay
    ):
        job = await book_and_pay()
        login = await client.post("/api/customer/login", json={"phoneNumber": "+971559998888"})
        token = login.json()["tokens"]["accessToken"]
        resp = await client.post(
            f"/api/jobs/{job['id']}/cancel",
            headers={"Authorization": f"Bearer {token}"},
        )
        assert resp.status_code == 403

    async def test_cancel_closes_the_payment_intent(
        self, client: AsyncClient, seed, customer_headers, mock_stripe
    ):
        lat, lng = seed.marina
        created = await client.post(
            "/api/create-payment-intent",
            json={
                "companyId": str(seed.company_id),
                "carPlateNumber": "G 21",
                "locationAddress": "Marina Walk, Dubai",
                "locationLatitude": lat,
                "locationLongitude": lng,
            },
            headers=customer_headers,
        )
        body = created.json()

        resp = await client.post(f"/api/jobs/{body['jobId']}/cancel", headers=customer_headers)
        assert resp.status_code == 200
        mock_stripe.PaymentIntent.cancel.assert_called_once()
        assert mock_stripe.PaymentIntent.cancel.call_args.args[0] == body["paymentIntentId"]

    async def test_payment_after_cancel_is_refunded(
        self, client: AsyncClient, seed, customer_headers, mock_stripe, mock_socket_emit
    ):
        lat, lng = seed.marina
        created = await client.post(
            "/api/create-payment-intent",
            json={
                "companyId": str(seed.company_id),
                "carPlateNumber": "H 8",
                "locationAddress": "Marina Walk, Dubai",
                "locationLatitude": lat,
                "locationLongitude": lng,
            },
            headers=customer_headers,
        )
        body = created.json()
        await client.post(f"/api/jobs/{body['jobId']}/cancel", headers=customer_headers)

        # The customer still completed the card form before the cancel reached Stripe
        first = await client.post(f"/api/confirm-payment/{body['paymentIntentId']}")
        assert first.status_code == 200
        assert first.json()["status"] == "cancelled"
        assert first.json()["refundedAt"] is not None
        mock_stripe.Refund.create.assert_called_once()
        assert (
            mock_stripe.Refund.create.call_args.kwargs["payment_intent"]
            == body["paymentIntentId"]
        )

        again = await client.post(f"/api/confirm-payment/{body['paymentIntentId']}")
        assert again.json()["status"] == "cancelled"
        mock_stripe.Refund.create.assert_called_once()
        assert "paid" not in [u["status"] for u in _job_updates(mock_socket_emit)]

    async def test_late_payment_and_refund_are_in_the_ledger(
        self, client: AsyncClient, seed, customer_headers, admin_headers
    ):
        lat, lng = seed.marina
        created = await client.post(
            "/api/create-payment-intent",
            json={
                "companyId": str(seed.company_id),
                "carPlateNumber": "J 3",
                "locationAddress": "Marina Walk, Dubai",
                "locationLatitude": lat,
                "locationLongitude": lng,
            },
            headers=customer_headers,
        )
        body = created.json()
        await client.post(f"/api/jobs/{body['jobId']}/cancel", headers=customer_headers)
        await client.post(f"/api/confirm-payment/{body['paymentIntentId']}")

        resp = await client.get("/api/admin/financials/transactions", headers=admin_headers)
        assert resp.status_code == 200
        types = sorted(
            t["type"] for t in resp.json() if t["jobId"] == body["jobId"]
        )
        assert types == ["customer_payment", "refund"]
