"""Application wiring for the credit ledger service."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Dict
from uuid import uuid4

import stripe
from fastapi import status

from ...config import LedgerConfig, load_ledger_config
from ..credits import (
    CheckoutProvider,
    CheckoutWebhookHandler,
    CreditLedgerError,
    CreditLedgerService,
    CreditPackage,
    StripeWebhookVerifier,
)
from ..credits.repository import PostgresAccountStore, PostgresTransactionLog


logger = logging.getLogger("credits")


class StripeCheckoutProvider(CheckoutProvider):
    """Creates hosted Stripe Checkout sessions for credit packages."""

    def __init__(self, api_key: str) -> None:
        self._api_key = api_key

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
        try:
            session = stripe.checkout.Session.create(
                api_key=self._api_key,
                payment_method_types=["card"],
                line_items=[
                    {
                        "price_data": {
                            "currency": currency,
                            "product_data": {
                                "name": f"{package.credits:,} Credits",
                                "description": f"Purchase {package.credits:,} credits for travel planning",
                            },
                            "unit_amount": package.price,
                        },
                        "quantity": 1,
                    }
                ],
                mode="payment",
                success_url=success_url,
                cancel_url=cancel_url,
                client_reference_id=account_id,
                metadata=metadata,
            )
        except stripe.StripeError as exc:
            logger.exception("Error creating checkout session for account %s", account_id)
            raise CreditLedgerError(
                code="checkout_failed",
                message="Failed to create checkout session",
                status_code=status.HTTP_502_BAD_GATEWAY,
            ) from exc
        return {"id": session.id, "url": session.url}


class LocalSandboxCheckoutProvider(CheckoutProvider):
    """Minimal provider implementation for local development without Stripe keys."""

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
        session_id = f"cs_test_{uuid4().hex}"
        logger.info(
            "Sandbox checkout session %s for account %s package=%s metadata=%s",
            session_id,
            account_id,
            package.package_id,
            metadata,
        )
        return {
            "id": session_id,
            "url": success_url.replace("{CHECKOUT_SESSION_ID}", session_id),
            "metadata": metadata,
        }


@lru_cache(maxsize=1)
def get_ledger_config() -> LedgerConfig:
    return load_ledger_config()


def _build_checkout_provider(config: LedgerConfig) -> CheckoutProvider:
    if config.stripe_secret_key:
        return StripeCheckoutProvider(config.stripe_secret_key)
    logger.warning("STRIPE_SECRET_KEY is not configured; using the local sandbox checkout provider")
    return LocalSandboxCheckoutProvider()


@lru_cache(maxsize=1)
def get_ledger_service() -> CreditLedgerService:
    config = get_ledger_config()
    return CreditLedgerService(
        accounts=PostgresAccountStore(),
        transactions=PostgresTransactionLog(),
        checkout_provider=_build_checkout_provider(config),
        welcome_bonus_credits=config.welcome_bonus_credits,
        starting_credits=config.starting_credits,
        credits_per_plan=config.credits_per_plan,
        currency=config.currency,
        app_base_url=config.app_base_url,
    )


@lru_cache(maxsize=1)
def get_webhook_handler() -> CheckoutWebhookHandler:
    config = get_ledger_config()
    verifier = StripeWebhookVerifier(
        config.stripe_webhook_secret,
        tolerance_seconds=config.webhook_tolerance_seconds,
    )
    return CheckoutWebhookHandler(verifier=verifier, service=get_ledger_service())


def reset_wiring() -> None:
    """Drop cached wiring so the next request rebuilds it from configuration."""

    get_webhook_handler.cache_clear()
    get_ledger_service.cache_clear()
    get_ledger_config.cache_clear()


__all__ = [
    "LocalSandboxCheckoutProvider",
    "StripeCheckoutProvider",
    "get_ledger_config",
    "get_ledger_service",
    "get_webhook_handler",
    "reset_wiring",
]
