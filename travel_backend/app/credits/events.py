"""Typed representation of payment gateway webhook events."""
from __future__ import annotations

from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    ValidationError,
)

from .exceptions import MalformedEventError
from .models import CreditGrant

CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
# Largest single purchase accepted from session metadata; the top package is 2500.
MAX_GRANT_CREDITS = 1_000_000
_UNKNOWN_TAG = "unknown"


class CheckoutSessionObject(BaseModel):
    """The subset of a gateway checkout session the ledger consumes."""

    id: Optional[str] = None
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    client_reference_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(frozen=True)


class CheckoutSessionData(BaseModel):
    session: CheckoutSessionObject = Field(alias="object")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class CheckoutSessionCompletedEvent(BaseModel):
    """A payment for a checkout session has been captured."""

    id: Optional[str] = None
    type: Literal["checkout.session.completed"]
    data: CheckoutSessionData

    model_config = ConfigDict(frozen=True)

    @property
    def session(self) -> CheckoutSessionObject:
        return self.data.session

    def to_grant(self) -> CreditGrant:
        """Extract the credit grant carried in the session metadata.

        Raises :class:`MalformedEventError` when the account identity, the
        credits amount or the session id is missing or invalid.
        """

        session = self.session
        metadata = session.metadata or {}
        account_id = _first_present(
            metadata.get("accountId"), metadata.get("userId"), session.client_reference_id
        )
        raw_credits = metadata.get("credits")
        credits = _parse_positive_int(raw_credits)
        context = {
            "account_id": account_id,
            "credits": raw_credits,
            "session_id": session.id,
            "event_id": self.id,
        }

        if not account_id or credits is None:
            raise MalformedEventError("Missing metadata", detail=context)
        if not session.id:
            raise MalformedEventError("Missing checkout session id", detail=context)

        amount = session.amount_total or 0
        if amount < 0:
            raise MalformedEventError("Negative amount_total", detail=context)

        package_id = metadata.get("packageId")
        return CreditGrant(
            account_id=account_id,
            credits=credits,
            amount=amount,
            session_id=session.id,
            package_id=str(package_id) if package_id is not None else None,
            currency=session.currency,
        )


class UnknownWebhookEvent(BaseModel):
    """Any event type the ledger does not act on; always acknowledged."""

    id: Optional[str] = None
    type: str

    model_config = ConfigDict(frozen=True)


def _event_tag(value: Any) -> str:
    event_type = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    return CHECKOUT_SESSION_COMPLETED if event_type == CHECKOUT_SESSION_COMPLETED else _UNKNOWN_TAG


WebhookEvent = Annotated[
    Union[
        Annotated[CheckoutSessionCompletedEvent, Tag(CHECKOUT_SESSION_COMPLETED)],
        Annotated[UnknownWebhookEvent, Tag(_UNKNOWN_TAG)],
    ],
    Discriminator(_event_tag),
]

_webhook_event_adapter: TypeAdapter[WebhookEvent] = TypeAdapter(WebhookEvent)


def parse_webhook_event(payload: Union[bytes, str]) -> Union[CheckoutSessionCompletedEvent, UnknownWebhookEvent]:
    """Parse a verified webhook body into one of the recognised event variants."""

    try:
        return _webhook_event_adapter.validate_json(payload)
    except ValidationError as exc:
        errors = exc.errors(include_url=False)
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = first.get("msg", "invalid payload")
        raise MalformedEventError(
            "Invalid webhook payload",
            detail={"details": f"{location}: {message}" if location else message},
        ) from exc


def _first_present(*values: Any) -> Optional[str]:
    for value in values:
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def _parse_positive_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = int(str(value).strip())
    except ValueError:
        return None
    return parsed if 0 < parsed <= MAX_GRANT_CREDITS else None


__all__ = [
    "CHECKOUT_SESSION_COMPLETED",
    "MAX_GRANT_CREDITS",
    "CheckoutSessionCompletedEvent",
    "CheckoutSessionObject",
    "UnknownWebhookEvent",
    "WebhookEvent",
    "parse_webhook_event",
]
