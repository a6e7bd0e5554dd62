"""Exceptions raised by the credit ledger."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status


@dataclass(eq=False)
class CreditLedgerError(Exception):
    """Base ledger failure.

    ``retryable`` tells callers whether repeating the same request (or the
    gateway redelivering the same event) may succeed later; it is part of the
    JSON payload so API clients see it too.
    """

    code: str
    message: str
    status_code: int = status.HTTP_400_BAD_REQUEST
    retryable: bool = False
    detail: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    @property
    def payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = dict(self.detail or {})
        body.update(error=self.code, message=self.message, retryable=self.retryable)
        return body

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.payload)


class WebhookVerificationError(CreditLedgerError):
    """The inbound webhook could not be authenticated."""

    def __init__(self, message: str) -> None:
        super().__init__(code="webhook_verification_failed", message=message)


class MalformedEventError(CreditLedgerError):
    """A verified event is missing the data required to grant credits."""

    def __init__(self, message: str, *, detail: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(code="malformed_event", message=message, detail=detail)


class InsufficientCreditsError(CreditLedgerError):
    def __init__(self, required: int, current: int) -> None:
        self.required = required
        self.current = current
        super().__init__(
            code="insufficient_credits",
            message=(
                f"You need {required} credits to generate a plan, but you only have {current} credits."
            ),
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail={"required": required, "current": current},
        )


class AccountNotFoundError(CreditLedgerError):
    def __init__(self, account_id: str) -> None:
        super().__init__(
            code="account_not_found",
            message=f"Account {account_id} not found",
            status_code=status.HTTP_404_NOT_FOUND,
        )


class UnknownPackageError(CreditLedgerError):
    def __init__(self, package_id: int) -> None:
        super().__init__(code="unknown_package", message=f"Unknown credit package {package_id}")


class LedgerStoreError(CreditLedgerError):
    """Retryable failure of the account store or transaction log."""

    def __init__(self, message: str, *, original_error: Optional[BaseException] = None) -> None:
        self.original_error = original_error
        super().__init__(
            code="ledger_store_error",
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            retryable=True,
        )


class SessionInProgressError(CreditLedgerError):
    """Another delivery holds the claim on this checkout session and has not finished."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(
            code="session_in_progress",
            message=f"Checkout session {session_id} is already being applied",
            status_code=status.HTTP_409_CONFLICT,
            retryable=True,
            detail={"session_id": session_id},
        )


__all__ = [
    "AccountNotFoundError",
    "CreditLedgerError",
    "InsufficientCreditsError",
    "LedgerStoreError",
    "MalformedEventError",
    "SessionInProgressError",
    "UnknownPackageError",
    "WebhookVerificationError",
]
