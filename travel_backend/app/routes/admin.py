"""Operator endpoints for inspecting and adjusting credit balances."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from ...auth import require_admin_token
from ..credits import CreditLedgerError, CreditLedgerService
from ..schemas.credits import AccountResponse, GrantCreditsRequest, SetCreditsRequest, StatsResponse
from ..services.credits import get_ledger_service

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin_token)])


@router.get("/credits/stats", response_model=StatsResponse)
def get_stats(service: CreditLedgerService = Depends(get_ledger_service)) -> StatsResponse:
    try:
        stats = service.get_stats()
    except CreditLedgerError as exc:
        raise exc.to_http_exception() from exc
    return StatsResponse.from_stats(stats)


@router.post("/accounts/{account_id}/credits/grant", response_model=AccountResponse)
def grant_credits(
    account_id: str,
    payload: GrantCreditsRequest,
    service: CreditLedgerService = Depends(get_ledger_service),
) -> AccountResponse:
    try:
        account = service.grant_credits(account_id, payload.credits)
    except CreditLedgerError as exc:
        raise exc.to_http_exception() from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return AccountResponse.from_account(account)


@router.put("/accounts/{account_id}/credits", response_model=AccountResponse)
def set_credits(
    account_id: str,
    payload: SetCreditsRequest,
    service: CreditLedgerService = Depends(get_ledger_service),
) -> AccountResponse:
    try:
        account = service.set_credits(account_id, payload.credits)
    except CreditLedgerError as exc:
        raise exc.to_http_exception() from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return AccountResponse.from_account(account)
