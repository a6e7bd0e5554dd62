"""API routes exposing credit balances and purchases."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...auth import get_current_account_id
from ..credits import CreditLedgerError, CreditLedgerService
from ..schemas.credits import (
    BalanceResponse,
    CheckoutRequest,
    CheckoutResponse,
    PackageListResponse,
    PackageResponse,
    PaymentListResponse,
    PaymentResponse,
)
from ..services.credits import get_ledger_service

router = APIRouter(prefix="/api/credits", tags=["credits"])


@router.get("", response_model=BalanceResponse)
def get_credits(
    account_id: str = Depends(get_current_account_id),
    service: CreditLedgerService = Depends(get_ledger_service),
) -> BalanceResponse:
    try:
        credits = service.get_balance(account_id)
    except CreditLedgerError as exc:
        raise exc.to_http_exception() from exc
    return BalanceResponse.from_balance(credits, service.credits_per_plan)


@router.get("/packages", response_model=PackageListResponse)
def list_packages(service: CreditLedgerService = Depends(get_ledger_service)) -> PackageListResponse:
    return PackageListResponse(packages=[PackageResponse.from_package(p) for p in service.list_packages()])


@router.get("/payments", response_model=PaymentListResponse)
def list_payments(
    limit: int = Query(20, ge=1, le=100),
    account_id: str = Depends(get_current_account_id),
    service: CreditLedgerService = Depends(get_ledger_service),
) -> PaymentListResponse:
    try:
        records = service.list_payments(account_id, limit=limit)
    except CreditLedgerError as exc:
        raise exc.to_http_exception() from exc
    return PaymentListResponse(payments=[PaymentResponse.from_record(record) for record in records])


@router.post("/checkout", response_model=CheckoutResponse)
def create_checkout(
    payload: CheckoutRequest,
    account_id: str = Depends(get_current_account_id),
    service: CreditLedgerService = Depends(get_ledger_service),
) -> CheckoutResponse:
    try:
        session = service.create_checkout_session(account_id, payload.package_id)
    except CreditLedgerError as exc:
        raise exc.to_http_exception() from exc
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return CheckoutResponse.from_session(session)
