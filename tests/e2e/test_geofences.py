"""
E2E: Company service areas.

- Geofence CRUD through the company dashboard
- Polygon validation on create, update and the legacy company area
- Nearby search hiding companies whose territory excludes the customer
- Cleaner geofence assignments gating auto-assignment, the pool and
  accepting a job
"""

from __future__ import annotations

import uuid

import pytest
from httpx import AsyncClient


pytestmark = pytest.mark.asyncio


# Box around JLT that leaves Dubai Marina outside.
JLT_BOX = [[25.085, 55.145], [25.095, 55.145], [25.095, 55.155], [25.085, 55.155]]
# Box around Dubai Marina.
MARINA_BOX = [[25.075, 55.135], [25.085, 55.135], [25.085, 55.145], [25.075, 55.145]]


async def _create_geofence(
    client: AsyncClient, headers: dict[str, str], name: str, polygon: list
) -> dict:
    resp = await client.post(
        "/api/company/geofences",
        json={"name": name, "polygon": polygon},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _nearby_ids(client: AsyncClient, lat: float, lng: float) -> list[str]:
    resp = await client.get("/api/companies/nearby", params={"lat": lat, "lon": lng})
    assert resp.status_code == 200
    return [c["id"] for c in resp.json()]


class TestGeofenceCrud:
    async def test_create_list_update_delete(
        self, client: AsyncClient, company_headers, seed
    ):
        created = await _create_geofence(client, company_headers, "JLT", JLT_BOX)
        assert created["companyId"] == str(seed.company_id)
        assert created["polygon"] == JLT_BOX

        listed = await client.get("/api/company/geofences", headers=company_headers)
        assert [g["id"] for g in listed.json()] == [created["id"]]

        renamed = await client.put(
            f"/api/company/geofences/{created['id']}",
            json={"name": "JLT cluster"},
            headers=company_headers,
        )
        assert renamed.status_code == 200
        assert renamed.json()["name"] == "JLT cluster"
        assert renamed.json()["polygon"] == JLT_BOX

        deleted = await client.delete(
            f"/api/company/geofences/{created['id']}", headers=company_headers
        )
        assert deleted.status_code == 200

        listed = await client.get("/api/company/geofences", headers=company_headers)
        assert listed.json() == []

    async def test_unknown_geofence_returns_404(self, client: AsyncClient, company_headers):
        resp = await client.delete(
            f"/api/company/geofences/{uuid.uuid4()}", headers=company_headers
        )
        assert resp.status_code == 404

    async def test_two_point_polygon_returns_422(self, client: AsyncClient, company_headers):
        resp = await client.post(
            "/api/company/geofences",
            json={"name": "Line", "polygon": [[25.08, 55.14], [25.09, 55.15]]},
            headers=company_headers,
        )
        assert resp.status_code == 422

    async def test_reshape_to_two_points_returns_422(
        self, client: AsyncClient, company_headers
    ):
        created = await _create_geofence(client, company_headers, "JLT", JLT_BOX)
        resp = await client.put(
            f"/api/company/geofences/{created['id']}",
            json={"polygon": JLT_BOX[:2]},
            headers=company_headers,
        )
        assert resp.status_code == 422

    async def test_out_of_range_vertex_returns_400(
        self, client: AsyncClient, company_headers
    ):
        resp = await client.post(
            "/api/company/geofences",
            json={"name": "Broken", "polygon": [[25.08, 55.14], [125.0, 55.15], [25.09, 55.13]]},
            headers=company_headers,
        )
        assert resp.status_code == 400

    async def test_cleaner_cannot_manage_geofences(
        self, client: AsyncClient, cleaner_headers
    ):
        resp = await client.post(
            "/api/company/geofences",
            json={"name": "JLT", "polygon": JLT_BOX},
            headers=cleaner_headers,
        )
        assert resp.status_code == 403


class TestCompanyTerritory:
    async def test_geofence_excluding_the_customer_hides_the_company(
        self, client: AsyncClient, company_headers, seed
    ):
        lat, lng = seed.marina
        assert await _nearby_ids(client, lat, lng) == [str(seed.company_id)]

        await _create_geofence(client, company_headers, "JLT", JLT_BOX)

        assert await _nearby_ids(client, lat, lng) == []

    async def test_geofence_covering_the_customer_keeps_the_company(
        self, client: AsyncClient, company_headers, seed
    ):
        await _create_geofence(client, company_headers, "JLT", JLT_BOX)
        await _create_geofence(client, company_headers, "Marina", MARINA_BOX)

        lat, lng = seed.marina
        assert await _nearby_ids(client, lat, lng) == [str(seed.company_id)]

    async def test_legacy_area_hides_the_company(
        self, client: AsyncClient, company_headers, seed
    ):
        resp = await client.put(
            "/api/company/settings",
            json={"geofenceArea": JLT_BOX},
            headers=company_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["geofenceArea"] == JLT_BOX

        lat, lng = seed.marina
        assert await _nearby_ids(client, lat, lng) == []

    async def test_named_geofences_take_precedence_over_legacy_area(
        self, client: AsyncClient, company_headers, seed
    ):
        await client.put(
            "/api/company/settings",
            json={"geofenceArea": JLT_BOX},
            headers=company_headers,
        )
        await _create_geofence(client, company_headers, "Marina", MARINA_BOX)

        lat, lng = seed.marina
        assert await _nearby_ids(client, lat, lng) == [str(seed.company_id)]

    async def test_legacy_area_with_two_points_returns_422(
        self, client: AsyncClient, company_headers
    ):
        resp = await client.put(
            "/api/company/settings",
            json={"geofenceArea": JLT_BOX[:2]},
            headers=company_headers,
        )
        assert resp.status_code == 422


class TestCleanerAssignments:
    async def _confine_cleaner_to_jlt(self, client: AsyncClient, headers, seed) -> dict:
        geofence = await _create_geofence(client, headers, "JLT", JLT_BOX)
        resp = await client.put(
            f"/api/company/cleaners/{seed.cleaner_id}/geofences",
            json={"geofenceIds": [geofence["id"]]},
            headers=headers,
        )
        assert resp.status_code == 200, resp.text
        return geofence

    async def test_cleaner_outside_their_geofence_is_not_auto_assigned(
        self, client: AsyncClient, company_headers, book_and_pay, seed
    ):
        await self._confine_cleaner_to_jlt(client, company_headers, seed)

        job = await book_and_pay()  # Marina, right next to the cleaner

        assert job["status"] == "paid"
        assert job["cleanerId"] is None

    async def test_pool_and_accept_respect_the_geofence(
        self, client: AsyncClient, company_headers, cleaner_headers, book_and_pay, seed
    ):
        await self._confine_cleaner_to_jlt(client, company_headers, seed)
        job = await book_and_pay()

        available = await client.get("/api/cleaner/available-jobs", headers=cleaner_headers)
        assert available.json() == []

        resp = await client.post(
            f"/api/cleaner/accept-job/{job['id']}", headers=cleaner_headers
        )
        assert resp.status_code == 403

        profile = await client.get("/api/cleaner/profile", headers=cleaner_headers)
        assert profile.json()["status"] == "on_duty"

    async def test_job_inside_the_geofence_can_be_accepted(
        self, client: AsyncClient, company_headers, cleaner_headers, book_and_pay, seed
    ):
        await self._confine_cleaner_to_jlt(client, company_headers, seed)
        lat, lng = seed.jlt
        job = await book_and_pay(lat=lat, lng=lng)

        resp = await client.post(
            f"/api/cleaner/accept-job/{job['id']}", headers=cleaner_headers
        )
        assert resp.status_code == 200
        assert resp.json()["cleanerId"] == str(seed.cleaner_id)

    async def test_assign_all_restores_auto_assignment(
        self, client: AsyncClient, company_headers, book_and_pay, seed
    ):
        await self._confine_cleaner_to_jlt(client, company_headers, seed)
        resp = await client.put(
            f"/api/company/cleaners/{seed.cleaner_id}/geofences",
            json={"assignAll": True},
            headers=company_headers,
        )
        assert resp.status_code == 200

        job = await book_and_pay()

        assert job["status"] == "assigned"
        assert job["cleanerId"] == str(seed.cleaner_id)

    async def test_unknown_geofence_assignment_returns_404(
        self, client: AsyncClient, company_headers, seed
    ):
        resp = await client.put(
            f"/api/company/cleaners/{seed.cleaner_id}/geofences",
            json={"geofenceIds": [str(uuid.uuid4())]},
            headers=company_headers,
        )
        assert resp.status_code == 404
