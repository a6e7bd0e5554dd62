"""Webhook ingress: verification, event dispatch and gateway response mapping."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from fastapi import status

from .events import CheckoutSessionCompletedEvent, parse_webhook_event
from .exceptions import MalformedEventError, SessionInProgressError, WebhookVerificationError
from .service import CreditLedgerService
from .verification import WebhookVerifier

logger = logging.getLogger("credits.webhook")


class WebhookOutcome(str, Enum):
    """Terminal state of one webhook delivery."""

    REJECTED = "rejected"
    IGNORED = "ignored"
    APPLIED = "applied"
    FAILED = "failed"


@dataclass(frozen=True)
class WebhookResponse:
    """What the gateway receives; 4xx is final, 5xx asks for redelivery."""

    outcome: WebhookOutcome
    status_code: int
    body: Dict[str, Any]

    @classmethod
    def received(cls, outcome: WebhookOutcome) -> "WebhookResponse":
        return cls(outcome=outcome, status_code=status.HTTP_200_OK, body={"received": True})

    @classmethod
    def rejected(cls, error: str, details: Optional[str] = None) -> "WebhookResponse":
        body: Dict[str, Any] = {"error": error}
        if details:
            body["details"] = details
        return cls(outcome=WebhookOutcome.REJECTED, status_code=status.HTTP_400_BAD_REQUEST, body=body)

    @classmethod
    def failed(cls, error: str, details: str) -> "WebhookResponse":
        return cls(
            outcome=WebhookOutcome.FAILED,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            body={"error": error, "details": details},
        )


class CheckoutWebhookHandler:
    """Processes payment gateway deliveries independently of one another."""

    def __init__(self, verifier: WebhookVerifier, service: CreditLedgerService) -> None:
        self._verifier = verifier
        self._service = service

    def handle(self, payload: Union[bytes, str], signature: Optional[str]) -> WebhookResponse:
        try:
            self._verifier.verify(payload, signature)
        except WebhookVerificationError as exc:
            logger.error("Webhook signature verification failed: %s", exc.message)
            return WebhookResponse.rejected(exc.message)
        except Exception as exc:
            logger.exception("Webhook handler error")
            return WebhookResponse.failed("Internal server error", str(exc))

        try:
            event = parse_webhook_event(payload)
        except MalformedEventError as exc:
            logger.error("Webhook payload could not be parsed: %s", exc.payload.get("details", exc.message))
            return WebhookResponse.rejected(exc.message, exc.payload.get("details"))

        logger.info("Webhook event received: %s", event.type, extra={"event_type": event.type, "event_id": event.id})

        if not isinstance(event, CheckoutSessionCompletedEvent):
            logger.info("Unhandled webhook event type: %s", event.type, extra={"event_type": event.type})
            return WebhookResponse.received(WebhookOutcome.IGNORED)

        return self._handle_checkout_completed(event)

    def _handle_checkout_completed(self, event: CheckoutSessionCompletedEvent) -> WebhookResponse:
        log_context = {
            "event_type": event.type,
            "event_id": event.id,
            "session_id": event.session.id,
        }
        try:
            grant = event.to_grant()
        except MalformedEventError as exc:
            logger.error(
                "Missing account identity or credits in session metadata: %s",
                dict(exc.payload),
                extra=log_context,
            )
            return WebhookResponse.rejected(exc.message)

        log_context["account_id"] = grant.account_id
        try:
            result = self._service.apply_checkout_grant(grant)
        except SessionInProgressError as exc:
            logger.warning("Redelivery requested: %s", exc.message, extra=log_context)
            return WebhookResponse.failed("Failed to process webhook", exc.message)
        except Exception as exc:
            logger.exception("Error processing webhook", extra=log_context)
            return WebhookResponse.failed("Failed to process webhook", str(exc))

        logger.info(
            "Checkout session %s reconciled: %s",
            grant.session_id,
            result.outcome.value,
            extra=log_context,
        )
        return WebhookResponse.received(WebhookOutcome.APPLIED)


__all__ = ["CheckoutWebhookHandler", "WebhookOutcome", "WebhookResponse"]
