"""HTTP tests for the credits, admin and webhook routers."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from jose import jwt

from travel_backend.app.credits import CheckoutWebhookHandler, StripeWebhookVerifier
from travel_backend.app.routes import admin as admin_routes
from travel_backend.app.routes import credits as credits_routes
from travel_backend.app.routes import webhooks as webhook_routes
from travel_backend.app.services.credits import get_ledger_config, get_ledger_service, get_webhook_handler
from travel_backend.config import load_ledger_config

IDENTITY_KEY = "identity-test-key"
ADMIN_TOKEN = "admin-secret"


@pytest.fixture
def client(ledger_service) -> TestClient:
    config = load_ledger_config(
        {
            "IDENTITY_JWT_KEY": IDENTITY_KEY,
            "ADMIN_API_TOKEN": ADMIN_TOKEN,
            "STRIPE_WEBHOOK_SECRET": "whsec_test_secret",
        }
    )
    handler = CheckoutWebhookHandler(
        verifier=StripeWebhookVerifier(config.stripe_webhook_secret),
        service=ledger_service,
    )
    app = FastAPI()
    app.include_router(webhook_routes.router)
    app.include_router(credits_routes.router)
    app.include_router(admin_routes.router)
    app.dependency_overrides[get_ledger_config] = lambda: config
    app.dependency_overrides[get_ledger_service] = lambda: ledger_service
    app.dependency_overrides[get_webhook_handler] = lambda: handler
    return TestClient(app)


def _auth(subject: str = "u1") -> dict:
    token = jwt.encode(
        {"sub": subject, "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
        IDENTITY_KEY,
        algorithm="HS256",
    )
    return {"Authorization": f"Bearer {token}"}


def test_stripe_webhook_end_to_end(client, accounts, transactions, make_checkout_body, sign):
    body = make_checkout_body(session_id="sess_1", account_id="u1", credits="500", amount_total=2500)

    response = client.post(
        "/api/webhooks/stripe",
        content=body,
        headers={"stripe-signature": sign(body), "content-type": "application/json"},
    )

    assert response.status_code == 200
    assert response.json() == {"received": True}
    assert accounts.accounts["u1"].credits == 600
    assert transactions.records["sess_1"].amount == 2500


def test_stripe_webhook_without_signature(client, accounts, make_checkout_body):
    response = client.post("/api/webhooks/stripe", content=make_checkout_body())

    assert response.status_code == 400
    assert response.json() == {"error": "No signature provided"}
    assert accounts.accounts == {}


def test_balance_requires_authentication(client):
    assert client.get("/api/credits").status_code == 401


def test_balance_provisions_and_reports_plans(client):
    response = client.get("/api/credits", headers=_auth())

    assert response.status_code == 200
    assert response.json() == {"credits": 100, "creditsPerPlan": 100, "plansAvailable": 1}


def test_packages_are_public(client):
    response = client.get("/api/credits/packages")

    assert response.status_code == 200
    packages = response.json()["packages"]
    assert [package["id"] for package in packages] == [1, 2, 3]
    assert packages[1] == {"id": 2, "credits": 1200, "price": 1999, "popular": True, "plans": 12}


def test_checkout_returns_session(client, checkout_provider):
    response = client.post("/api/credits/checkout", json={"packageId": 3}, headers=_auth("u5"))

    assert response.status_code == 200
    assert response.json() == {"sessionId": "cs_test_1", "url": "https://checkout.test/1"}
    assert checkout_provider.calls[0]["metadata"]["accountId"] == "u5"


def test_checkout_rejects_unknown_package(client):
    response = client.post("/api/credits/checkout", json={"packageId": 42}, headers=_auth())

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "unknown_package"
    assert response.json()["detail"]["retryable"] is False


def test_payment_history_lists_own_payments(client, ledger_service, make_checkout_body, sign):
    body = make_checkout_body(session_id="sess_9", account_id="u1")
    client.post("/api/webhooks/stripe", content=body, headers={"stripe-signature": sign(body)})

    response = client.get("/api/credits/payments", headers=_auth("u1"))
    other = client.get("/api/credits/payments", headers=_auth("u2"))

    assert response.status_code == 200
    payment = response.json()["payments"][0]
    assert payment["sessionId"] == "sess_9"
    assert payment["status"] == "completed"
    assert other.json() == {"payments": []}


def test_admin_endpoints_require_token(client):
    assert client.get("/api/admin/credits/stats").status_code == 403
    assert client.get("/api/admin/credits/stats", headers={"X-Admin-Token": "wrong"}).status_code == 403


def test_admin_grant_set_and_stats(client, accounts):
    accounts.seed("u1", 10)
    headers = {"X-Admin-Token": ADMIN_TOKEN}

    granted = client.post("/api/admin/accounts/u1/credits/grant", json={"credits": 90}, headers=headers)
    overridden = client.put("/api/admin/accounts/u1/credits", json={"credits": 0}, headers=headers)
    missing = client.put("/api/admin/accounts/ghost/credits", json={"credits": 5}, headers=headers)
    invalid = client.post("/api/admin/accounts/u1/credits/grant", json={"credits": 0}, headers=headers)
    stats = client.get("/api/admin/credits/stats", headers=headers)

    assert granted.json()["credits"] == 100
    assert overridden.json()["credits"] == 0
    assert missing.status_code == 404
    assert invalid.status_code == 422
    assert stats.json() == {
        "totalAccounts": 1,
        "completedPayments": 0,
        "totalRevenue": 0,
        "totalPurchasedCredits": 0,
    }
