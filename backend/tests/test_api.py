"""
HTTP тесты API через ASGITransport: auth, Redis и explorer подменены зависимостями.
"""
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from nova_funded.api.dependencies import (
    get_current_user,
    get_notification_feed,
    rate_limit_standard,
    rate_limit_verification,
)
from nova_funded.api.routes.payments import get_payment_service
from nova_funded.core.config import settings
from nova_funded.core.database import get_db
from nova_funded.main import app
from nova_funded.models import ChallengeStatus, PaymentStatus, UserRole
from nova_funded.services.payment_service import PaymentService
from nova_funded.services.tron.explorer import TronScanExplorer

TX = "ef" * 32


class ExplorerStub:
    """Ответ explorer, который тест может переключать между запросами."""

    def __init__(self):
        self.payload: dict = {}
        self.down = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.down:
            raise httpx.ConnectError("network is unreachable", request=request)
        return httpx.Response(200, json=self.payload)


@pytest.fixture
def explorer_stub() -> ExplorerStub:
    return ExplorerStub()


@pytest.fixture
def auth(user) -> dict:
    return {"user": user}


@pytest.fixture
def feed() -> MagicMock:
    feed = MagicMock()
    feed.publish = AsyncMock()
    return feed


@pytest.fixture
async def client(db_session, config, auth, explorer_stub, feed):
    async def _db():
        yield db_session

    async def _noop():
        return None

    async def _payment_service():
        explorer = TronScanExplorer("https://scan.test", transport=httpx.MockTransport(explorer_stub.handler))
        service = PaymentService(db_session, explorer=explorer, config=config)
        try:
            yield service
        finally:
            await explorer.close()

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_current_user] = lambda: auth["user"]
    app.dependency_overrides[rate_limit_standard] = _noop
    app.dependency_overrides[rate_limit_verification] = _noop
    app.dependency_overrides[get_notification_feed] = lambda: feed
    app.dependency_overrides[get_payment_service] = _payment_service

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


async def _create_intent(client, plan) -> dict:
    resp = await client.post("/api/v1/payments/intent", json={"plan_id": str(plan.id)})
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


# ── Каталог ───────────────────────────────────────────────────────────────────

async def test_plans_lists_active_by_account_size(client, make_plan):
    await make_plan(name="50K Challenge", price="299", account_size="50000")
    await make_plan(name="5K Challenge", price="49", account_size="5000")
    await make_plan(name="Hidden", price="10", account_size="1000", is_active=False)

    resp = await client.get("/api/v1/plans")
    assert resp.status_code == 200
    names = [p["name"] for p in resp.json()["data"]]
    assert names == ["5K Challenge", "50K Challenge"]


# ── Оплата ────────────────────────────────────────────────────────────────────

async def test_intent_then_verify_activates_challenge(client, plan, explorer_stub, tronscan_tx):
    intent = await _create_intent(client, plan)
    assert Decimal(intent["amount"]) == Decimal("100")
    assert intent["wallet_address"] == settings.receiving_wallet_address
    assert intent["memo"] == f"Payment for 10K Challenge - ID: {intent['payment_id']}"

    status_only = await client.post("/api/v1/payments/verify", json={"payment_id": intent["payment_id"]})
    assert status_only.json()["status"] == "pending"

    explorer_stub.payload = tronscan_tx(
        tx_hash=TX, to_address=settings.receiving_wallet_address, amount_str="100500000"
    )
    resp = await client.post(
        "/api/v1/payments/verify",
        json={"payment_id": intent["payment_id"], "transaction_hash": TX},
    )
    body = resp.json()
    assert resp.status_code == 200
    assert body["success"] is True
    assert body["message"] == "Payment verified and challenge created"
    assert Decimal(body["amount_paid"]) == Decimal("100.5")

    challenges = (await client.get("/api/v1/challenges/my")).json()["data"]
    assert len(challenges) == 1
    assert challenges[0]["status"] == ChallengeStatus.active.value
    assert challenges[0]["plan_name"] == "10K Challenge"
    assert Decimal(challenges[0]["current_balance"]) == 0

    again = await client.post(
        "/api/v1/payments/verify",
        json={"payment_id": intent["payment_id"], "transaction_hash": TX},
    )
    assert again.status_code == 409
    assert again.json() == {"success": False, "error": "Payment is already confirmed", "detail": {"status": "confirmed"}}


async def test_intent_notifies_user(client, plan, user, feed):
    await _create_intent(client, plan)

    items = (await client.get("/api/v1/notifications")).json()["data"]["items"]
    created = [n for n in items if n["title"] == "Payment Request Created"]
    assert len(created) == 1
    assert "10K Challenge" in created[0]["body"]
    assert created[0]["is_read"] is False

    feed.publish.assert_awaited_once()
    assert feed.publish.await_args.args[0] == user.id


async def test_malformed_hash_is_a_bad_request(client, plan, explorer_stub):
    intent = await _create_intent(client, plan)
    explorer_stub.down = True

    resp = await client.post(
        "/api/v1/payments/verify",
        json={"payment_id": intent["payment_id"], "transaction_hash": "abc/../wallet"},
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "Transaction hash must be 64 hex characters"


async def test_rejected_transfer_returns_reason(client, plan, explorer_stub, tronscan_tx):
    intent = await _create_intent(client, plan)
    explorer_stub.payload = tronscan_tx(
        tx_hash=TX, to_address=settings.receiving_wallet_address, result="REVERT"
    )
    resp = await client.post(
        "/api/v1/payments/verify",
        json={"payment_id": intent["payment_id"], "transaction_hash": TX},
    )
    assert resp.status_code == 200
    assert resp.json()["success"] is False
    assert resp.json()["details"] == "Transaction failed on-chain"


async def test_explorer_outage_is_retryable(client, plan, explorer_stub):
    intent = await _create_intent(client, plan)
    explorer_stub.down = True

    resp = await client.post(
        "/api/v1/payments/verify",
        json={"payment_id": intent["payment_id"], "transaction_hash": TX},
    )
    assert resp.status_code == 502
    assert resp.json()["error"] == "Could not reach the blockchain explorer. Please try again."

    payment = (await client.get(f"/api/v1/payments/{intent['payment_id']}")).json()["data"]
    assert payment["status"] == PaymentStatus.pending.value


async def test_foreign_payment_is_hidden(client, plan, auth, make_user):
    intent = await _create_intent(client, plan)
    auth["user"] = await make_user(email="other@example.com")

    assert (await client.get(f"/api/v1/payments/{intent['payment_id']}")).status_code == 404
    resp = await client.post("/api/v1/payments/verify", json={"payment_id": intent["payment_id"]})
    assert resp.status_code == 404


async def test_intent_for_another_user_requires_admin(client, plan, auth, make_user):
    other = await make_user(email="other@example.com")
    body = {"plan_id": str(plan.id), "user_id": str(other.id)}

    assert (await client.post("/api/v1/payments/intent", json=body)).status_code == 403

    auth["user"] = await make_user(email="ops@example.com", role=UserRole.admin)
    assert (await client.post("/api/v1/payments/intent", json=body)).status_code == 200


# ── Профиль и уведомления ─────────────────────────────────────────────────────

async def test_profile_update(client):
    resp = await client.patch("/api/v1/users/me", json={"first_name": "Ada", "country": "UK"})
    data = resp.json()["data"]
    assert data["first_name"] == "Ada"
    assert data["country"] == "UK"
    assert data["is_admin"] is False


async def test_notifications_after_confirmation(client, plan, explorer_stub, tronscan_tx):
    intent = await _create_intent(client, plan)
    explorer_stub.payload = tronscan_tx(tx_hash=TX, to_address=settings.receiving_wallet_address)
    await client.post(
        "/api/v1/payments/verify",
        json={"payment_id": intent["payment_id"], "transaction_hash": TX},
    )

    data = (await client.get("/api/v1/notifications")).json()["data"]
    titles = {n["title"] for n in data["items"]}
    assert "Payment Update" in titles
    assert data["unread"] == len(data["items"])

    await client.post("/api/v1/notifications/read-all")
    assert (await client.get("/api/v1/notifications")).json()["data"]["unread"] == 0


# ── Админка ───────────────────────────────────────────────────────────────────

async def test_admin_routes_reject_regular_users(client):
    assert (await client.get("/api/v1/admin/payments")).status_code == 403


async def test_admin_force_status_and_close_challenge(client, plan, auth, make_user):
    intent = await _create_intent(client, plan)
    auth["user"] = await make_user(email="ops@example.com", role=UserRole.admin)

    resp = await client.post(
        f"/api/v1/admin/payments/{intent['payment_id']}/status",
        json={"status": "confirmed"},
    )
    assert resp.status_code == 400

    resp = await client.post(
        f"/api/v1/admin/payments/{intent['payment_id']}/status",
        json={"status": "confirmed", "transaction_hash": TX},
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "confirmed"

    challenges = (await client.get("/api/v1/admin/challenges")).json()["data"]
    assert len(challenges) == 1

    resp = await client.post(
        f"/api/v1/admin/challenges/{challenges[0]['id']}/status",
        json={"status": "failed"},
    )
    assert resp.json()["data"]["end_date"] is not None

    overview = (await client.get("/api/v1/admin/stats/overview")).json()["data"]
    assert overview["total_payments"] == 1
    assert Decimal(overview["total_revenue"]) == Decimal("100")
    assert overview["inconsistent_payments"] == 0


async def test_role_change_needs_super_admin(client, auth, make_user):
    target = await make_user(email="target@example.com")
    auth["user"] = await make_user(email="ops@example.com", role=UserRole.admin)
    url = f"/api/v1/admin/users/{target.id}/role"

    assert (await client.post(url, json={"role": "admin"})).status_code == 403

    auth["user"] = await make_user(email="root@example.com", role=UserRole.super_admin)
    resp = await client.post(url, json={"role": "admin"})
    assert resp.status_code == 200
    assert resp.json()["data"]["role"] == "admin"


async def test_admin_plan_validation(client, auth, make_user):
    auth["user"] = await make_user(email="ops@example.com", role=UserRole.admin)
    bad = {"name": "Broken", "account_size": "10000", "price": "100", "profit_split": "120"}
    assert (await client.post("/api/v1/admin/plans", json=bad)).status_code == 422

    ok = {"name": "25K Challenge", "account_size": "25000", "price": "199"}
    resp = await client.post("/api/v1/admin/plans", json=ok)
    assert resp.status_code == 200
    plan_id = resp.json()["data"]["id"]

    resp = await client.post(f"/api/v1/admin/plans/{plan_id}/active", params={"is_active": "false"})
    assert resp.json()["data"]["is_active"] is False
    assert (await client.get(f"/api/v1/plans/{plan_id}")).status_code == 404
