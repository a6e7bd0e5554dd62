"""API schemas for credit endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..credits import Account, CheckoutSession, CreditPackage, LedgerStats, PaymentRecord


class BalanceResponse(BaseModel):
    credits: int
    credits_per_plan: int = Field(alias="creditsPerPlan")
    plans_available: int = Field(alias="plansAvailable")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_balance(cls, credits: int, credits_per_plan: int) -> "BalanceResponse":
        return cls(
            credits=credits,
            credits_per_plan=credits_per_plan,
            plans_available=credits // credits_per_plan,
        )


class PackageResponse(BaseModel):
    id: int
    credits: int
    price: int
    popular: bool = False
    plans: int

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_package(cls, package: CreditPackage) -> "PackageResponse":
        return cls(
            id=package.package_id,
            credits=package.credits,
            price=package.price,
            popular=package.popular,
            plans=package.plans,
        )


class PackageListResponse(BaseModel):
    packages: list[PackageResponse]


class PaymentResponse(BaseModel):
    session_id: str = Field(alias="sessionId")
    amount: int
    credits: int
    status: str
    package_id: Optional[str] = Field(alias="packageId", default=None)
    currency: Optional[str] = None
    created_at: datetime = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_record(cls, record: PaymentRecord) -> "PaymentResponse":
        return cls(
            session_id=record.session_id,
            amount=record.amount,
            credits=record.credits,
            status=record.status.value,
            package_id=record.package_id,
            currency=record.currency,
            created_at=record.created_at,
        )


class PaymentListResponse(BaseModel):
    payments: list[PaymentResponse]


class CheckoutRequest(BaseModel):
    package_id: int = Field(alias="packageId", ge=1)

    model_config = ConfigDict(populate_by_name=True)


class CheckoutResponse(BaseModel):
    session_id: str = Field(alias="sessionId")
    url: str

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_session(cls, session: CheckoutSession) -> "CheckoutResponse":
        return cls(session_id=session.session_id, url=session.url)


class GrantCreditsRequest(BaseModel):
    credits: int = Field(gt=0)


class SetCreditsRequest(BaseModel):
    credits: int = Field(ge=0)


class AccountResponse(BaseModel):
    account_id: str = Field(alias="accountId")
    credits: int
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls(account_id=account.account_id, credits=account.credits, updated_at=account.updated_at)


class StatsResponse(BaseModel):
    total_accounts: int = Field(alias="totalAccounts")
    completed_payments: int = Field(alias="completedPayments")
    total_revenue: int = Field(alias="totalRevenue")
    total_purchased_credits: int = Field(alias="totalPurchasedCredits")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_stats(cls, stats: LedgerStats) -> "StatsResponse":
        return cls(
            total_accounts=stats.total_accounts,
            completed_payments=stats.completed_payments,
            total_revenue=stats.total_revenue,
            total_purchased_credits=stats.total_purchased_credits,
        )
