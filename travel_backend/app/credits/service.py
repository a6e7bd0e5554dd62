"""Core service applying credit purchases, debits and admin adjustments."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Sequence

from .catalog import get_package, list_packages
from .exceptions import (
    AccountNotFoundError,
    InsufficientCreditsError,
    LedgerStoreError,
    SessionInProgressError,
)
from .models import (
    Account,
    CheckoutSession,
    CreditGrant,
    CreditPackage,
    GrantOutcome,
    GrantResult,
    LedgerStats,
    PaymentRecord,
    PaymentRecordStatus,
)

logger = logging.getLogger("credits")


class AccountStore(Protocol):
    """Persistence operations for account balances.

    Every mutation must be a single atomic store operation; the service never
    reads a balance, changes it in memory and writes it back.
    """

    def find_by_identity(self, account_id: str) -> Optional[Account]:
        ...

    def create_account(self, account_id: str, initial_credits: int) -> Optional[Account]:
        """Insert a new account, returning ``None`` when the identity already exists."""

    def increment_credits(self, account_id: str, delta: int) -> Optional[Account]:
        """Atomically add ``delta`` credits; ``None`` when the account does not exist."""

    def debit_credits(self, account_id: str, amount: int) -> Optional[Account]:
        """Atomically subtract ``amount`` if the balance covers it, else ``None``."""

    def set_credits(self, account_id: str, credits: int) -> Optional[Account]:
        ...

    def count_accounts(self) -> int:
        ...


class TransactionLog(Protocol):
    """Payment records keyed by checkout session; the record doubles as the idempotency claim.

    A session moves ``pending -> completed`` once its credits are applied, or
    ``pending -> failed`` when applying them failed. Only ``failed`` sessions
    may be claimed again.
    """

    def claim(self, record: PaymentRecord) -> Optional[PaymentRecord]:
        """Atomically store ``record`` as ``pending`` for its session.

        Returns ``None`` when this caller now owns the session, otherwise the
        record already stored for it (``pending`` or ``completed``).
        """

    def mark_completed(self, session_id: str) -> bool:
        """Move a ``pending`` record to ``completed``; ``False`` if it was not pending."""

    def mark_failed(self, session_id: str) -> bool:
        """Move a ``pending`` record to ``failed`` so a redelivery can claim it again."""

    def list_for_account(self, account_id: str, *, limit: int = 20) -> Sequence[PaymentRecord]:
        ...

    def summarize_completed(self) -> LedgerStats:
        ...


class CheckoutProvider(Protocol):
    """External payment gateway hosting the checkout page."""

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
        """Create a gateway checkout session and return at least ``id`` and ``url``."""


@dataclass(slots=True)
class CreditLedgerService:
    """Coordinates credit grants from payments with the account store and audit log."""

    accounts: AccountStore
    transactions: TransactionLog
    checkout_provider: Optional[CheckoutProvider] = None
    welcome_bonus_credits: int = 100
    starting_credits: int = 100
    credits_per_plan: int = 100
    currency: str = "usd"
    app_base_url: str = "http://localhost:3000"

    def apply_checkout_grant(self, grant: CreditGrant) -> GrantResult:
        """Credit ``grant.account_id`` exactly once for ``grant.session_id``.

        The session is claimed with a ``pending`` payment record before the
        balance changes, so concurrent or repeated deliveries of the same
        session never apply it twice. A completed session is reported as
        already applied; a session still pending elsewhere raises
        :class:`SessionInProgressError` so the gateway redelivers later.
        Failures while mutating the balance release the claim and propagate.
        Failures while completing the record are logged and reported through
        ``audit_logged``.
        """

        log_context = {"account_id": grant.account_id, "session_id": grant.session_id}

        existing = self.transactions.claim(self._pending_record(grant))
        if existing is not None:
            if existing.status == PaymentRecordStatus.COMPLETED:
                logger.info(
                    "Checkout session %s already applied for account %s; skipping",
                    grant.session_id,
                    grant.account_id,
                    extra=log_context,
                )
                return GrantResult(
                    outcome=GrantOutcome.ALREADY_APPLIED,
                    account_id=grant.account_id,
                    session_id=grant.session_id,
                    audit_logged=True,
                )
            logger.warning(
                "Checkout session %s is claimed but not completed; asking for redelivery",
                grant.session_id,
                extra=log_context,
            )
            raise SessionInProgressError(grant.session_id)

        try:
            account = self._credit_account(grant)
        except Exception:
            self._release_claim(grant)
            raise
        audit_logged = self._complete_payment(grant)

        logger.info(
            "Added %s credits to account %s. Total: %s",
            grant.credits,
            account.account_id,
            account.credits,
            extra=log_context,
        )
        return GrantResult(
            outcome=GrantOutcome.APPLIED,
            account_id=account.account_id,
            session_id=grant.session_id,
            credits_granted=grant.credits,
            balance=account.credits,
            audit_logged=audit_logged,
        )

    def get_balance(self, account_id: str) -> int:
        return self._ensure_account(account_id).credits

    def spend_credits(self, account_id: str, amount: Optional[int] = None) -> Account:
        """Debit ``amount`` credits (one itinerary by default)."""

        amount = self.credits_per_plan if amount is None else amount
        if amount <= 0:
            raise ValueError("amount must be > 0")

        self._ensure_account(account_id)
        updated = self.accounts.debit_credits(account_id, amount)
        if updated is None:
            current = self.accounts.find_by_identity(account_id)
            raise InsufficientCreditsError(amount, current.credits if current else 0)

        logger.info("Deducted %s credits from account %s. Remaining: %s", amount, account_id, updated.credits)
        return updated

    def refund_credits(self, account_id: str, amount: Optional[int] = None) -> Account:
        """Give back credits debited for an itinerary that failed to generate."""

        amount = self.credits_per_plan if amount is None else amount
        if amount <= 0:
            raise ValueError("amount must be > 0")
        updated = self.accounts.increment_credits(account_id, amount)
        if updated is None:
            logger.error(
                "Failed to refund %s credits to account %s - manual intervention may be required",
                amount,
                account_id,
            )
            raise AccountNotFoundError(account_id)
        logger.info("Refunded %s credits to account %s", amount, account_id)
        return updated

    def grant_credits(self, account_id: str, amount: int) -> Account:
        if amount <= 0:
            raise ValueError("Credits must be greater than 0")
        updated = self.accounts.increment_credits(account_id, amount)
        if updated is None:
            raise AccountNotFoundError(account_id)
        logger.info("Admin added %s credits to account %s. New total: %s", amount, account_id, updated.credits)
        return updated

    def set_credits(self, account_id: str, credits: int) -> Account:
        if credits < 0:
            raise ValueError("Credits cannot be negative")
        updated = self.accounts.set_credits(account_id, credits)
        if updated is None:
            raise AccountNotFoundError(account_id)
        logger.info("Admin set credits for account %s to %s", account_id, credits)
        return updated

    def list_payments(self, account_id: str, *, limit: int = 20) -> Sequence[PaymentRecord]:
        return self.transactions.list_for_account(account_id, limit=limit)

    def get_stats(self) -> LedgerStats:
        summary = self.transactions.summarize_completed()
        return summary.model_copy(update={"total_accounts": self.accounts.count_accounts()})

    def list_packages(self) -> Sequence[CreditPackage]:
        return list_packages(self.credits_per_plan)

    def create_checkout_session(self, account_id: str, package_id: int) -> CheckoutSession:
        if self.checkout_provider is None:
            raise RuntimeError("No checkout provider configured")

        package = get_package(package_id, self.credits_per_plan)
        session = self.checkout_provider.create_checkout_session(
            account_id=account_id,
            package=package,
            currency=self.currency,
            metadata={
                "accountId": account_id,
                "packageId": str(package.package_id),
                "credits": str(package.credits),
            },
            success_url=f"{self.app_base_url}/credits?success=true&session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{self.app_base_url}/credits?canceled=true",
        )
        return CheckoutSession(
            session_id=str(session.get("id", "")),
            url=str(session.get("url") or ""),
            account_id=account_id,
            package=package,
        )

    def _credit_account(self, grant: CreditGrant) -> Account:
        existing = self.accounts.find_by_identity(grant.account_id)
        if existing is None:
            initial = self.welcome_bonus_credits + grant.credits
            created = self.accounts.create_account(grant.account_id, initial)
            if created is not None:
                logger.info(
                    "Created account %s with %s credits (%s free + %s purchased)",
                    grant.account_id,
                    initial,
                    self.welcome_bonus_credits,
                    grant.credits,
                )
                return created
            logger.warning(
                "Account %s was created concurrently; applying purchase as an increment",
                grant.account_id,
                extra={"account_id": grant.account_id, "session_id": grant.session_id},
            )

        updated = self.accounts.increment_credits(grant.account_id, grant.credits)
        if updated is None:
            raise LedgerStoreError(f"Account {grant.account_id} disappeared while applying credits")
        return updated

    @staticmethod
    def _pending_record(grant: CreditGrant) -> PaymentRecord:
        return PaymentRecord(
            account_id=grant.account_id,
            session_id=grant.session_id,
            amount=grant.amount,
            credits=grant.credits,
            status=PaymentRecordStatus.PENDING,
            package_id=grant.package_id,
            currency=grant.currency,
        )

    def _release_claim(self, grant: CreditGrant) -> None:
        log_context = {"account_id": grant.account_id, "session_id": grant.session_id}
        try:
            self.transactions.mark_failed(grant.session_id)
        except Exception:
            # The session stays pending and every redelivery is refused until it is resolved by hand.
            logger.exception(
                "Failed to release claim on checkout session %s - manual intervention required",
                grant.session_id,
                extra=log_context,
            )

    def _complete_payment(self, grant: CreditGrant) -> bool:
        log_context = {"account_id": grant.account_id, "session_id": grant.session_id}
        try:
            completed = self.transactions.mark_completed(grant.session_id)
        except Exception:
            # Credits are granted and the pending claim still blocks redelivery; status is fixed by hand.
            logger.exception("Failed to complete transaction record", extra=log_context)
            return False

        if not completed:
            logger.error(
                "Transaction record for session %s was no longer pending; verify balance of account %s",
                grant.session_id,
                grant.account_id,
                extra=log_context,
            )
            return False

        logger.info(
            "Transaction recorded: %s minor units, %s credits for account %s",
            grant.amount,
            grant.credits,
            grant.account_id,
            extra=log_context,
        )
        return True

    def _ensure_account(self, account_id: str) -> Account:
        account = self.accounts.find_by_identity(account_id)
        if account is not None:
            return account

        created = self.accounts.create_account(account_id, self.starting_credits)
        if created is not None:
            logger.info("Provisioned account %s with %s starting credits", account_id, self.starting_credits)
            return created

        account = self.accounts.find_by_identity(account_id)
        if account is None:
            raise LedgerStoreError(f"Account {account_id} could not be created or found")
        return account


__all__ = [
    "AccountStore",
    "CheckoutProvider",
    "CreditLedgerService",
    "TransactionLog",
]
