"""
Parcel API Tests.

Authentication, role gating and error envelopes over HTTP.
"""

from datetime import timedelta

import pytest
from backend.app.core.jwt import create_access_token, create_actor_token
from backend.app.models.enums import ActorRole
from backend.app.models.parcel_enums import ParcelStatus
from backend.app.services import parcel_registry


async def _create(client, auth_headers, tracking_code="API-TEST-001"):
    response = await client.post(
        "/v1/parcels",
        json={
            "sender_ref": "sender-42",
            "recipient_name": "Hana Tesfaye",
            "recipient_phone": "+251911223344",
            "pickup_partner_ref": "partner-1",
            "tracking_code": tracking_code,
        },
        headers=auth_headers("admin-1", ActorRole.ADMIN),
    )
    assert response.status_code == 201, response.text
    return response.json()


async def _transition(client, auth_headers, code, target, ref, role, **extra):
    return await client.post(
        f"/v1/parcels/{code}/transitions",
        json={"target_status": target, **extra},
        headers=auth_headers(ref, role),
    )


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert "X-Correlation-ID" in response.headers


@pytest.mark.asyncio
async def test_create_parcel_as_admin(client, auth_headers):
    data = await _create(client, auth_headers, tracking_code="api-test-001")

    assert data["tracking_code"] == "API-TEST-001"
    assert data["status"] == "CREATED"
    assert data["version"] == 0
    assert len(data["pickup_code"]) == 6


@pytest.mark.asyncio
async def test_create_parcel_requires_admin_or_system(client, auth_headers):
    response = await client.post(
        "/v1/parcels",
        json={"sender_ref": "s", "recipient_name": "r", "recipient_phone": "+2519"},
        headers=auth_headers("driver-1", ActorRole.DRIVER),
    )
    assert response.status_code == 403
    assert response.json()["error_code"] == "ERR_FORBIDDEN"


@pytest.mark.asyncio
async def test_missing_or_bad_token_is_rejected(client):
    response = await client.get("/v1/parcels/API-TEST-001")
    assert response.status_code in (401, 403)

    response = await client.get("/v1/parcels/API-TEST-001", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_UNAUTHORIZED"


@pytest.mark.asyncio
async def test_token_with_unknown_role_is_rejected(client):
    token = create_actor_token("someone", "RECIPIENT")

    response = await client.get("/v1/parcels/API-TEST-001", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_expired_token_is_rejected(client):
    token = create_access_token({"sub": "admin-1", "role": "ADMIN"}, expires_delta=timedelta(seconds=-5))

    response = await client.get("/v1/parcels/API-TEST-001", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_lookup_is_case_insensitive(client, auth_headers):
    await _create(client, auth_headers)

    response = await client.get("/v1/parcels/api-test-001", headers=auth_headers("partner-1", ActorRole.PARTNER))

    assert response.status_code == 200
    assert response.json()["tracking_code"] == "API-TEST-001"
    assert "pickup_code" not in response.json()


@pytest.mark.asyncio
async def test_unknown_parcel_returns_not_found(client, auth_headers):
    response = await client.get("/v1/parcels/NOPE-0000", headers=auth_headers("admin-1", ActorRole.ADMIN))

    assert response.status_code == 404
    body = response.json()
    assert body["error_code"] == "ERR_NOT_FOUND_001"
    assert body["kind"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_transition_and_replay(client, auth_headers):
    await _create(client, auth_headers)

    first = await _transition(
        client, auth_headers, "API-TEST-001", "FACILITY_RECEIVED", "partner-1", ActorRole.PARTNER,
        notes="Received at counter", location={"latitude": 9.03, "longitude": 38.74},
    )
    replay = await _transition(
        client, auth_headers, "API-TEST-001", "FACILITY_RECEIVED", "partner-1", ActorRole.PARTNER
    )

    assert first.status_code == 200, first.text
    assert first.json()["applied"] is True
    assert first.json()["event"]["sequence"] == 1
    assert first.json()["event"]["location_latitude"] == pytest.approx(9.03)
    assert replay.status_code == 200
    assert replay.json()["applied"] is False
    assert replay.json()["event"] is None

    history = await client.get(
        "/v1/parcels/API-TEST-001/events", headers=auth_headers("partner-1", ActorRole.PARTNER)
    )
    assert history.status_code == 200
    assert [e["to_status"] for e in history.json()["events"]] == ["FACILITY_RECEIVED"]


@pytest.mark.asyncio
async def test_transition_errors_map_to_codes(client, auth_headers):
    await _create(client, auth_headers)

    forbidden = await _transition(
        client, auth_headers, "API-TEST-001", "FACILITY_RECEIVED", "driver-1", ActorRole.DRIVER
    )
    invalid = await _transition(
        client, auth_headers, "API-TEST-001", "DELIVERED", "partner-1", ActorRole.PARTNER
    )
    conflict = await _transition(
        client, auth_headers, "API-TEST-001", "FACILITY_RECEIVED", "partner-1", ActorRole.PARTNER,
        expected_status="PICKUP_READY",
    )

    assert forbidden.status_code == 403
    assert forbidden.json()["error_code"] == "ERR_PERM_001"
    assert forbidden.json()["kind"] == "FORBIDDEN"
    assert invalid.status_code == 409
    assert invalid.json()["error_code"] == "ERR_TRANSITION_001"
    assert conflict.status_code == 409
    assert conflict.json()["error_code"] == "ERR_CONFLICT_001"


@pytest.mark.asyncio
async def test_pickup_code_verification(client, auth_headers, db_session, advance):
    created = await _create(client, auth_headers)
    parcel = await parcel_registry.get_by_tracking_code(db_session, created["tracking_code"])
    await advance(parcel, ParcelStatus.PICKUP_READY)

    ok = await client.post(
        "/v1/parcels/API-TEST-001/pickup-code/verify",
        json={"pickup_code": created["pickup_code"].lower()},
        headers=auth_headers("partner-1", ActorRole.PARTNER),
    )
    denied = await client.post(
        "/v1/parcels/API-TEST-001/pickup-code/verify",
        json={"pickup_code": created["pickup_code"]},
        headers=auth_headers("dispatcher", ActorRole.SYSTEM),
    )

    assert ok.status_code == 200
    assert ok.json()["valid"] is True
    assert ok.json()["reason"] == "OK"
    assert denied.status_code == 403


@pytest.mark.asyncio
async def test_admin_consistency_and_trail(client, auth_headers):
    await _create(client, auth_headers)
    await _transition(client, auth_headers, "API-TEST-001", "CANCELLED", "admin-1", ActorRole.ADMIN)

    consistency = await client.get(
        "/v1/admin/parcels/API-TEST-001/consistency", headers=auth_headers("admin-1", ActorRole.ADMIN)
    )
    trail = await client.get(
        "/v1/admin/events", params={"actor_role": "ADMIN"}, headers=auth_headers("admin-1", ActorRole.ADMIN)
    )
    not_admin = await client.get(
        "/v1/admin/events", headers=auth_headers("partner-1", ActorRole.PARTNER)
    )

    assert consistency.status_code == 200
    assert consistency.json()["consistent"] is True
    assert consistency.json()["logged_status"] == "CANCELLED"
    assert [e["to_status"] for e in trail.json()] == ["CANCELLED"]
    assert not_admin.status_code == 403


@pytest.mark.asyncio
async def test_duplicate_tracking_code_is_conflict(client, auth_headers):
    await _create(client, auth_headers, tracking_code="DUP-000001")

    response = await client.post(
        "/v1/parcels",
        json={
            "sender_ref": "sender-43",
            "recipient_name": "Selam Girma",
            "recipient_phone": "+251911556677",
            "tracking_code": "dup-000001",
        },
        headers=auth_headers("admin-1", ActorRole.ADMIN),
    )

    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_CONFLICT_002"
    assert response.json()["kind"] == "CONFLICT"


@pytest.mark.asyncio
async def test_non_ascii_pickup_code_is_a_mismatch(client, auth_headers, db_session, advance):
    created = await _create(client, auth_headers)
    parcel = await parcel_registry.get_by_tracking_code(db_session, created["tracking_code"])
    await advance(parcel, ParcelStatus.PICKUP_READY)

    response = await client.post(
        "/v1/parcels/API-TEST-001/pickup-code/verify",
        json={"pickup_code": "ÄBC123"},
        headers=auth_headers("partner-1", ActorRole.PARTNER),
    )

    assert response.status_code == 200
    assert response.json()["valid"] is False
    assert response.json()["reason"] == "MISMATCH"


@pytest.mark.asyncio
async def test_driver_can_only_be_set_when_assigning(client, auth_headers):
    await _create(client, auth_headers)

    response = await _transition(
        client, auth_headers, "API-TEST-001", "FACILITY_RECEIVED", "partner-1", ActorRole.PARTNER,
        assigned_driver_ref="driver-9",
    )
    lookup = await client.get("/v1/parcels/API-TEST-001", headers=auth_headers("partner-1", ActorRole.PARTNER))

    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_TRANSITION_001"
    assert lookup.json()["status"] == "CREATED"
    assert lookup.json()["assigned_driver_ref"] is None
