"""Domain models for the credit ledger."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PaymentRecordStatus(str, Enum):
    """Lifecycle status of a payment recorded in the transaction log."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class GrantOutcome(str, Enum):
    """Result of reconciling one completed checkout with the account store."""

    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"


class Account(BaseModel):
    """A paying end user keyed by the identity provider's subject id."""

    account_id: str = Field(min_length=1, description="Identity provider subject id")
    credits: int = Field(ge=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class PaymentRecord(BaseModel):
    """Audit entry for one completed payment, deduplicated by checkout session."""

    account_id: str
    session_id: str = Field(description="Gateway checkout session id used as the idempotency key")
    amount: int = Field(ge=0, description="Amount paid in minor currency units")
    credits: int = Field(ge=0)
    status: PaymentRecordStatus = PaymentRecordStatus.PENDING
    package_id: Optional[str] = None
    currency: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("currency")
    @classmethod
    def _lower_currency(cls, value: Optional[str]) -> Optional[str]:
        return value.lower() if value else value


class CreditGrant(BaseModel):
    """Validated request to credit an account for a completed checkout."""

    account_id: str = Field(min_length=1)
    credits: int = Field(gt=0)
    amount: int = Field(default=0, ge=0)
    session_id: str = Field(min_length=1)
    package_id: Optional[str] = None
    currency: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class GrantResult(BaseModel):
    """Outcome of :meth:`CreditLedgerService.apply_checkout_grant`."""

    outcome: GrantOutcome
    account_id: str
    session_id: str
    credits_granted: int = 0
    balance: Optional[int] = None
    audit_logged: bool = False

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class CreditPackage(BaseModel):
    """A purchasable bundle of credits."""

    package_id: int = Field(ge=1)
    credits: int = Field(gt=0)
    price: int = Field(gt=0, description="Price in minor currency units")
    popular: bool = False
    plans: int = Field(default=0, ge=0, description="Itineraries the bundle pays for")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class CheckoutSession(BaseModel):
    """Return value of a checkout session creation request."""

    session_id: str
    url: str
    account_id: str
    package: CreditPackage

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class LedgerStats(BaseModel):
    """Aggregate figures for the admin dashboard."""

    total_accounts: int = 0
    completed_payments: int = 0
    total_revenue: int = Field(default=0, description="Sum of completed payments in minor units")
    total_purchased_credits: int = 0

    model_config = ConfigDict(populate_by_name=True, frozen=True)
