"""Credit ledger package: purchases, grants and balances for travel plans."""

from .events import (
    CHECKOUT_SESSION_COMPLETED,
    CheckoutSessionCompletedEvent,
    UnknownWebhookEvent,
    parse_webhook_event,
)
from .exceptions import (
    AccountNotFoundError,
    CreditLedgerError,
    InsufficientCreditsError,
    LedgerStoreError,
    MalformedEventError,
    SessionInProgressError,
    UnknownPackageError,
    WebhookVerificationError,
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
from .service import AccountStore, CheckoutProvider, CreditLedgerService, TransactionLog
from .verification import StripeWebhookVerifier, WebhookVerifier
from .webhook import CheckoutWebhookHandler, WebhookOutcome, WebhookResponse

__all__ = [
    "CHECKOUT_SESSION_COMPLETED",
    "Account",
    "AccountNotFoundError",
    "AccountStore",
    "CheckoutProvider",
    "CheckoutSession",
    "CheckoutSessionCompletedEvent",
    "CheckoutWebhookHandler",
    "CreditGrant",
    "CreditLedgerError",
    "CreditLedgerService",
    "CreditPackage",
    "GrantOutcome",
    "GrantResult",
    "InsufficientCreditsError",
    "LedgerStats",
    "LedgerStoreError",
    "MalformedEventError",
    "PaymentRecord",
    "PaymentRecordStatus",
    "SessionInProgressError",
    "StripeWebhookVerifier",
    "TransactionLog",
    "UnknownPackageError",
    "UnknownWebhookEvent",
    "WebhookOutcome",
    "WebhookResponse",
    "WebhookVerificationError",
    "WebhookVerifier",
    "parse_webhook_event",
]
