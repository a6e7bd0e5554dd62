"""Shared in-memory collaborators for credit ledger tests."""
from __future__ import annotations

import hashlib
import hmac
import json
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

import pytest

from travel_backend.app.credits import (
    Account,
    CreditLedgerService,
    CreditPackage,
    LedgerStats,
    LedgerStoreError,
    PaymentRecord,
    PaymentRecordStatus,
)

WEBHOOK_SECRET = "whsec_test_secret"


class InMemoryAccountStore:
    """Account store whose primitives are atomic under a lock, like a database row update."""

    def __init__(self) -> None:
        self.accounts: Dict[str, Account] = {}
        self.calls: List[str] = []
        self.hooks: Dict[str, Callable[[str], None]] = {}
        self.failing: set[str] = set()
        self._lock = threading.Lock()

    def _enter(self, operation: str, account_id: str) -> None:
        self.calls.append(operation)
        if operation in self.failing:
            raise LedgerStoreError(f"{operation} unavailable")
        hook = self.hooks.get(operation)
        if hook is not None:
            hook(account_id)

    def seed(self, account_id: str, credits: int) -> Account:
        account = Account(account_id=account_id, credits=credits)
        self.accounts[account_id] = account
        return account

    def find_by_identity(self, account_id: str) -> Optional[Account]:
        self._enter("find_by_identity", account_id)
        with self._lock:
            return self.accounts.get(account_id)

    def create_account(self, account_id: str, initial_credits: int) -> Optional[Account]:
        self._enter("create_account", account_id)
        with self._lock:
            if account_id in self.accounts:
                return None
            account = Account(account_id=account_id, credits=initial_credits)
            self.accounts[account_id] = account
            return account

    def _update(self, account_id: str, credits: int) -> Account:
        updated = self.accounts[account_id].model_copy(
            update={"credits": credits, "updated_at": datetime.now(timezone.utc)}
        )
        self.accounts[account_id] = updated
        return updated

    def increment_credits(self, account_id: str, delta: int) -> Optional[Account]:
        self._enter("increment_credits", account_id)
        with self._lock:
            current = self.accounts.get(account_id)
            if current is None:
                return None
            return self._update(account_id, current.credits + delta)

    def debit_credits(self, account_id: str, amount: int) -> Optional[Account]:
        self._enter("debit_credits", account_id)
        with self._lock:
            current = self.accounts.get(account_id)
            if current is None or current.credits < amount:
                return None
            return self._update(account_id, current.credits - amount)

    def set_credits(self, account_id: str, credits: int) -> Optional[Account]:
        self._enter("set_credits", account_id)
        with self._lock:
            if account_id not in self.accounts:
                return None
            return self._update(account_id, credits)

    def count_accounts(self) -> int:
        with self._lock:
            return len(self.accounts)


class InMemoryTransactionLog:
    """Payment records keyed by session; each primitive is atomic under a lock."""

    def __init__(self) -> None:
        self.records: Dict[str, PaymentRecord] = {}
        self.calls: List[str] = []
        self.hooks: Dict[str, Callable[[str], None]] = {}
        self.failing: set[str] = set()
        self._lock = threading.Lock()

    def _enter(self, operation: str, session_id: str) -> None:
        self.calls.append(operation)
        if operation in self.failing:
            raise LedgerStoreError(f"{operation} unavailable")
        hook = self.hooks.get(operation)
        if hook is not None:
            hook(session_id)

    def claim(self, record: PaymentRecord) -> Optional[PaymentRecord]:
        self._enter("claim", record.session_id)
        with self._lock:
            existing = self.records.get(record.session_id)
            if existing is not None and existing.status != PaymentRecordStatus.FAILED:
                return existing
            self.records[record.session_id] = record.model_copy(update={"status": PaymentRecordStatus.PENDING})
            return None

    def _transition(self, operation: str, session_id: str, target: PaymentRecordStatus) -> bool:
        self._enter(operation, session_id)
        with self._lock:
            current = self.records.get(session_id)
            if current is None or current.status != PaymentRecordStatus.PENDING:
                return False
            self.records[session_id] = current.model_copy(update={"status": target})
            return True

    def mark_completed(self, session_id: str) -> bool:
        return self._transition("mark_completed", session_id, PaymentRecordStatus.COMPLETED)

    def mark_failed(self, session_id: str) -> bool:
        return self._transition("mark_failed", session_id, PaymentRecordStatus.FAILED)

    def list_for_account(self, account_id: str, *, limit: int = 20) -> Sequence[PaymentRecord]:
        matching = sorted(
            (record for record in self.records.values() if record.account_id == account_id),
            key=lambda record: record.created_at,
            reverse=True,
        )
        return matching[:limit]

    def summarize_completed(self) -> LedgerStats:
        completed = [r for r in self.records.values() if r.status == PaymentRecordStatus.COMPLETED]
        return LedgerStats(
            completed_payments=len(completed),
            total_revenue=sum(r.amount for r in completed),
            total_purchased_credits=sum(r.credits for r in completed),
        )


class RecordingCheckoutProvider:
    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []

    def create_checkout_session(
        self,
        *,
        account_id: str,
        package: CreditPackage,
        currency: str,
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
    ) -> Dict[str, object]:
        self.calls.append(
            {
                "account_id": account_id,
                "package": package,
                "currency": currency,
                "metadata": metadata,
                "success_url": success_url,
                "cancel_url": cancel_url,
            }
        )
        return {"id": f"cs_test_{len(self.calls)}", "url": f"https://checkout.test/{len(self.calls)}"}


def sign_payload(body: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a ``Stripe-Signature`` header for ``body``."""

    timestamp = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(secret.encode("utf-8"), f"{timestamp}.{body}".encode("utf-8"), hashlib.sha256)
    return f"t={timestamp},v1={digest.hexdigest()}"


def checkout_completed_body(
    *,
    session_id: str = "sess_1",
    account_id: Optional[str] = "u1",
    credits: Optional[str] = "500",
    amount_total: int = 2500,
    event_type: str = "checkout.session.completed",
) -> str:
    metadata: Dict[str, Any] = {}
    if account_id is not None:
        metadata["accountId"] = account_id
    if credits is not None:
        metadata["credits"] = credits
    event = {
        "id": f"evt_{session_id}",
        "object": "event",
        "type": event_type,
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "amount_total": amount_total,
                "currency": "usd",
                "metadata": metadata,
            }
        },
    }
    return json.dumps(event)


@pytest.fixture
def accounts() -> InMemoryAccountStore:
    return InMemoryAccountStore()


@pytest.fixture
def transactions() -> InMemoryTransactionLog:
    return InMemoryTransactionLog()


@pytest.fixture
def checkout_provider() -> RecordingCheckoutProvider:
    return RecordingCheckoutProvider()


@pytest.fixture
def ledger_service(accounts, transactions, checkout_provider) -> CreditLedgerService:
    return CreditLedgerService(
        accounts=accounts,
        transactions=transactions,
        checkout_provider=checkout_provider,
        app_base_url="https://planner.test",
    )


@pytest.fixture
def make_checkout_body() -> Callable[..., str]:
    return checkout_completed_body


@pytest.fixture
def sign() -> Callable[..., str]:
    return sign_payload
