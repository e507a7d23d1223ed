"""Tests for parking endpoints."""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import as_admin, as_user
from parkwallet.store.ledger import Ledger

GATE = {"credential": "RFID-U1", "vehicle_tag": "B1234XY"}


@pytest.mark.asyncio
async def test_check_in(async_client: AsyncClient, make_subject):
    """Test checking a vehicle in."""
    await make_subject("U1")

    response = await async_client.post("/api/v1/parking/checkin", json=GATE)
    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "success"
    assert body["message"] == "Successfully checked in"
    data = body["data"]
    assert data["session_id"].startswith("PARK_")
    assert data["subject_id"] == "U1"
    assert data["vehicle_tag"] == "B1234XY"
    assert data["exited_at"] is None
    assert data["payment_state"] == "pending"
    assert data["is_active"] is True
    assert data["vehicle_description"] == "Silver hatchback"


@pytest.mark.asyncio
async def test_check_in_twice(async_client: AsyncClient, make_subject):
    """Test that an already parked vehicle cannot check in again."""
    await make_subject("U1")
    await async_client.post("/api/v1/parking/checkin", json=GATE)

    response = await async_client.post("/api/v1/parking/checkin", json=GATE)
    assert response.status_code == 409
    assert response.json() == {
        "status": "error",
        "error": "conflict",
        "message": "This vehicle is already checked in",
    }


@pytest.mark.asyncio
async def test_check_in_unregistered_vehicle(async_client: AsyncClient, make_subject):
    await make_subject("U1")

    response = await async_client.post(
        "/api/v1/parking/checkin",
        json={"credential": "RFID-U1", "vehicle_tag": "Z9999ZZ"},
    )
    assert response.status_code == 403
    assert response.json()["error"] == "forbidden"


@pytest.mark.asyncio
async def test_check_in_unknown_rfid(async_client: AsyncClient, make_subject):
    await make_subject("U1")

    response = await async_client.post(
        "/api/v1/parking/checkin",
        json={"credential": "RFID-X", "vehicle_tag": "B1234XY"},
    )
    assert response.status_code == 404
    assert response.json()["message"] == "User not found with the provided RFID"


@pytest.mark.asyncio
async def test_check_in_missing_fields(async_client: AsyncClient):
    """Test that malformed gate requests are rejected as invalid arguments."""
    response = await async_client.post("/api/v1/parking/checkin", json={"credential": "RFID-U1"})
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "invalid_argument"
    assert body["data"]["errors"]

    response = await async_client.post(
        "/api/v1/parking/checkin",
        json={"credential": "   ", "vehicle_tag": "B1234XY"},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_check_out_and_pay(
    async_client: AsyncClient, db_session: AsyncSession, make_subject
):
    """Test checking out right after checking in charges the normal rate."""
    await make_subject("U1", balance=50000)
    await async_client.post("/api/v1/parking/checkin", json=GATE)

    response = await async_client.post("/api/v1/parking/checkout", json=GATE)
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Successfully checked out and paid parking fee: Rp 2000"
    assert body["data"]["amount_charged"] == 2000
    session = body["data"]["session"]
    assert session["payment_state"] == "paid"
    assert session["is_active"] is False
    assert session["exited_at"] is not None
    assert session["paid_at"] is not None

    wallet = await Ledger(db_session).get_for_subject("U1")
    assert wallet.current_balance == 48000

    again = await async_client.post("/api/v1/parking/checkout", json=GATE)
    assert again.status_code == 404


@pytest.mark.asyncio
async def test_check_out_insufficient_balance(async_client: AsyncClient, make_subject):
    """Test a failed payment is reported with the amounts and can be retried."""
    await make_subject("U1", balance=500)
    await async_client.post("/api/v1/parking/checkin", json=GATE)

    response = await async_client.post("/api/v1/parking/checkout", json=GATE)
    assert response.status_code == 402
    assert response.json() == {
        "status": "error",
        "error": "insufficient_funds",
        "message": "Insufficient balance",
        "data": {"required": 2000, "balance": 500},
    }

    topup = await async_client.post(
        "/api/v1/wallets/topup", json={"amount": 1500}, headers=as_user("U1")
    )
    assert topup.status_code == 200

    retry = await async_client.post("/api/v1/parking/checkout", json=GATE)
    assert retry.status_code == 200
    assert retry.json()["data"]["amount_charged"] == 2000

    balance = await async_client.get("/api/v1/wallets/balance", headers=as_user("U1"))
    assert balance.json()["data"]["current_balance"] == 0


@pytest.mark.asyncio
async def test_check_out_without_session(async_client: AsyncClient, make_subject):
    await make_subject("U1")

    response = await async_client.post("/api/v1/parking/checkout", json=GATE)
    assert response.status_code == 404
    assert response.json()["message"] == "No active parking session found"


@pytest.mark.asyncio
async def test_active_and_history(async_client: AsyncClient, make_subject):
    """Test the caller's own session views."""
    await make_subject("U1")

    response = await async_client.get("/api/v1/parking/active", headers=as_user("U1"))
    assert response.status_code == 404

    checkin = await async_client.post("/api/v1/parking/checkin", json=GATE)
    session_id = checkin.json()["data"]["session_id"]

    response = await async_client.get("/api/v1/parking/active", headers=as_user("U1"))
    assert response.status_code == 200
    assert response.json()["data"]["session_id"] == session_id

    response = await async_client.get("/api/v1/parking/active/B1234XY", headers=as_user("U1"))
    assert response.status_code == 200
    assert response.json()["data"]["vehicle_description"] == "Silver hatchback"

    response = await async_client.get("/api/v1/parking/history", headers=as_user("U1"))
    assert response.status_code == 200
    assert [item["session_id"] for item in response.json()["data"]] == [session_id]

    response = await async_client.get("/api/v1/parking/history", headers=as_user("U2"))
    assert response.json()["data"] == []


@pytest.mark.asyncio
async def test_requires_identity(async_client: AsyncClient):
    response = await async_client.get("/api/v1/parking/active")
    assert response.status_code == 401
    assert response.json()["message"] == "Authentication required"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "method,path",
    [
        ("get", "/api/v1/parking/admin/active"),
        ("get", "/api/v1/parking/admin/history"),
        ("get", "/api/v1/parking/admin/unreconciled"),
        ("post", "/api/v1/parking/admin/PARK_1_abc/cancel"),
    ],
)
async def test_admin_routes_reject_users(async_client: AsyncClient, method, path):
    response = await getattr(async_client, method)(path, headers=as_user("U1"))
    assert response.status_code == 403
    assert response.json()["message"] == "Access denied. Admin only."


@pytest.mark.asyncio
async def test_admin_history(async_client: AsyncClient, make_subject):
    """Test admin history paging, filters and owner details."""
    await make_subject(
        "U1",
        vehicles=[
            {"plate": "B1234XY", "description": "Silver hatchback"},
            {"plate": "B5678ZZ", "description": "Blue van"},
        ],
    )
    await async_client.post("/api/v1/parking/checkin", json=GATE)
    await async_client.post("/api/v1/parking/checkout", json=GATE)
    await async_client.post(
        "/api/v1/parking/checkin",
        json={"credential": "RFID-U1", "vehicle_tag": "B5678ZZ"},
    )

    response = await async_client.get(
        "/api/v1/parking/admin/history",
        params={"limit": 1, "page": 2, "sortBy": "entered_at", "sortOrder": "asc"},
        headers=as_admin(),
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["pagination"] == {"total": 2, "page": 2, "limit": 1, "pages": 2}
    assert [item["vehicle_tag"] for item in data["items"]] == ["B5678ZZ"]
    assert data["items"][0]["user_name"] == "user-u1"
    assert data["items"][0]["user_email"] == "u1@example.com"

    response = await async_client.get(
        "/api/v1/parking/admin/history", params={"status": "paid"}, headers=as_admin()
    )
    assert [item["vehicle_tag"] for item in response.json()["data"]["items"]] == ["B1234XY"]

    response = await async_client.get("/api/v1/parking/admin/active", headers=as_admin())
    assert [item["vehicle_tag"] for item in response.json()["data"]] == ["B5678ZZ"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "params",
    [
        {"status": "refunded"},
        {"page": 0},
        {"limit": 1000},
        {"sortBy": "subject_id"},
        {"start_date": "2026-03-02T10:00:00Z", "end_date": "2026-03-01T10:00:00Z"},
    ],
)
async def test_admin_history_rejects_bad_filters(async_client: AsyncClient, params):
    response = await async_client.get(
        "/api/v1/parking/admin/history", params=params, headers=as_admin()
    )
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "invalid_argument"
    assert body["data"]["errors"]


@pytest.mark.asyncio
async def test_admin_cancel_and_unreconciled(async_client: AsyncClient, make_subject):
    await make_subject("U1", balance=0)
    checkin = await async_client.post("/api/v1/parking/checkin", json=GATE)
    session_id = checkin.json()["data"]["session_id"]

    response = await async_client.post(
        f"/api/v1/parking/admin/{session_id}/cancel", headers=as_admin()
    )
    assert response.status_code == 409

    checkout = await async_client.post("/api/v1/parking/checkout", json=GATE)
    assert checkout.status_code == 402

    response = await async_client.post(
        f"/api/v1/parking/admin/{session_id}/cancel", headers=as_admin()
    )
    assert response.status_code == 200
    assert response.json()["data"]["payment_state"] == "cancelled"

    response = await async_client.get("/api/v1/parking/admin/unreconciled", headers=as_admin())
    assert response.status_code == 200
    assert response.json()["data"] == []


@pytest.mark.asyncio
async def test_health(async_client: AsyncClient):
    response = await async_client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}
