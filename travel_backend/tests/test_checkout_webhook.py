"""Tests for webhook verification, dispatch and response mapping."""
from __future__ import annotations

import json
import time

import pytest

from travel_backend.app.credits import (
    CheckoutWebhookHandler,
    PaymentRecordStatus,
    StripeWebhookVerifier,
    WebhookOutcome,
    WebhookVerificationError,
)
from travel_backend.app.credits.events import MAX_GRANT_CREDITS

SECRET = "whsec_test_secret"


@pytest.fixture
def handler(ledger_service) -> CheckoutWebhookHandler:
    return CheckoutWebhookHandler(verifier=StripeWebhookVerifier(SECRET), service=ledger_service)


def test_completed_checkout_for_new_account(handler, accounts, transactions, make_checkout_body, sign):
    body = make_checkout_body(session_id="sess_1", account_id="u1", credits="500", amount_total=2500)

    response = handler.handle(body.encode("utf-8"), sign(body))

    assert response.status_code == 200
    assert response.body == {"received": True}
    assert response.outcome == WebhookOutcome.APPLIED
    assert accounts.accounts["u1"].credits == 600
    record = transactions.records["sess_1"]
    assert (record.credits, record.amount, record.status.value) == (500, 2500, "completed")


def test_redelivery_is_acknowledged_without_double_credit(handler, accounts, transactions, make_checkout_body, sign):
    body = make_checkout_body()

    first = handler.handle(body, sign(body))
    second = handler.handle(body, sign(body))

    assert first.status_code == second.status_code == 200
    assert second.body == {"received": True}
    assert accounts.accounts["u1"].credits == 600
    assert len(transactions.records) == 1


def test_missing_signature_is_rejected(handler, accounts, transactions, make_checkout_body):
    response = handler.handle(make_checkout_body(), None)

    assert response.status_code == 400
    assert response.body == {"error": "No signature provided"}
    assert response.outcome == WebhookOutcome.REJECTED
    assert accounts.calls == []
    assert transactions.records == {}


def test_signature_from_another_secret_is_rejected(handler, accounts, transactions, make_checkout_body, sign):
    body = make_checkout_body()

    response = handler.handle(body, sign(body, secret="whsec_someone_else"))

    assert response.status_code == 400
    assert response.body["error"].startswith("Webhook Error:")
    assert accounts.calls == []
    assert transactions.records == {}


def test_tampered_body_is_rejected(handler, accounts, make_checkout_body, sign):
    body = make_checkout_body(credits="500")
    tampered = make_checkout_body(credits="50000")

    response = handler.handle(tampered, sign(body))

    assert response.status_code == 400
    assert accounts.accounts == {}


def test_stale_signature_is_rejected(handler, accounts, make_checkout_body, sign):
    body = make_checkout_body()

    response = handler.handle(body, sign(body, timestamp=int(time.time()) - 3600))

    assert response.status_code == 400
    assert accounts.accounts == {}


def test_unhandled_event_type_is_acknowledged(handler, accounts, transactions, make_checkout_body, sign):
    body = make_checkout_body(event_type="invoice.paid")

    response = handler.handle(body, sign(body))

    assert response.status_code == 200
    assert response.body == {"received": True}
    assert response.outcome == WebhookOutcome.IGNORED
    assert accounts.calls == []
    assert transactions.records == {}


@pytest.mark.parametrize("credits", [None, "0", "-5", "lots"])
def test_invalid_credits_metadata_is_rejected(handler, accounts, transactions, make_checkout_body, sign, credits):
    accounts.seed("u1", 100)
    body = make_checkout_body(credits=credits)

    response = handler.handle(body, sign(body))

    assert response.status_code == 400
    assert response.body == {"error": "Missing metadata"}
    assert accounts.accounts["u1"].credits == 100
    assert transactions.records == {}


def test_missing_account_identity_is_rejected(handler, transactions, make_checkout_body, sign):
    body = make_checkout_body(account_id=None)

    response = handler.handle(body, sign(body))

    assert response.status_code == 400
    assert response.body == {"error": "Missing metadata"}
    assert transactions.records == {}


def test_non_json_body_is_rejected(handler, sign):
    body = "not json at all"

    response = handler.handle(body, sign(body))

    assert response.status_code == 400
    assert response.body["error"] == "Invalid webhook payload"
    assert "details" in response.body


def test_store_failure_asks_gateway_to_retry(handler, accounts, transactions, make_checkout_body, sign):
    accounts.seed("u1", 100)
    accounts.failing.add("increment_credits")
    body = make_checkout_body()

    response = handler.handle(body, sign(body))

    assert response.status_code == 500
    assert response.outcome == WebhookOutcome.FAILED
    assert response.body["error"] == "Failed to process webhook"
    assert "increment_credits unavailable" in response.body["details"]
    assert transactions.records["sess_1"].status == PaymentRecordStatus.FAILED

    accounts.failing.clear()
    retried = handler.handle(body, sign(body))

    assert retried.status_code == 200
    assert accounts.accounts["u1"].credits == 600


def test_audit_failure_still_acknowledges_and_blocks_redelivery(
    handler, accounts, transactions, make_checkout_body, sign
):
    transactions.failing.add("mark_completed")
    body = make_checkout_body()

    response = handler.handle(body, sign(body))

    assert response.status_code == 200
    assert response.body == {"received": True}
    assert accounts.accounts["u1"].credits == 600

    transactions.failing.clear()
    redelivered = handler.handle(body, sign(body))

    assert redelivered.status_code == 500
    assert redelivered.outcome == WebhookOutcome.FAILED
    assert "already being applied" in redelivered.body["details"]
    assert accounts.accounts["u1"].credits == 600


def test_oversized_credits_metadata_is_rejected(handler, accounts, transactions, make_checkout_body, sign):
    body = make_checkout_body(credits=str(MAX_GRANT_CREDITS + 1))

    response = handler.handle(body, sign(body))

    assert response.status_code == 400
    assert response.body == {"error": "Missing metadata"}
    assert accounts.calls == []
    assert transactions.records == {}
