"""Authentication of inbound payment gateway webhooks."""
from __future__ import annotations

from typing import Optional, Protocol, Union

import stripe

from .exceptions import WebhookVerificationError


class WebhookVerifier(Protocol):
    """Checks that a webhook body was signed by the payment gateway."""

    def verify(self, payload: Union[bytes, str], signature: Optional[str]) -> None:
        ...


class StripeWebhookVerifier:
    """Verifies ``Stripe-Signature`` headers against the endpoint secret.

    Verification has no side effects so a rejected or retried delivery never
    touches the ledger.
    """

    def __init__(self, secret: Optional[str], *, tolerance_seconds: int = 300) -> None:
        self._secret = secret or ""
        self._tolerance = tolerance_seconds

    def verify(self, payload: Union[bytes, str], signature: Optional[str]) -> None:
        if not self._secret:
            raise RuntimeError("STRIPE_WEBHOOK_SECRET is not configured")
        if not signature:
            raise WebhookVerificationError("No signature provided")
        try:
            # The signed payload is "<timestamp>.<body>" over the exact text received.
            body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
            stripe.WebhookSignature.verify_header(
                body,
                signature,
                self._secret,
                tolerance=self._tolerance or None,
            )
        except stripe.SignatureVerificationError as exc:
            raise WebhookVerificationError(f"Webhook Error: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise WebhookVerificationError("Webhook Error: payload is not valid UTF-8") from exc


__all__ = ["StripeWebhookVerifier", "WebhookVerifier"]
