"""Inbound payment gateway webhooks."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from ..credits import CheckoutWebhookHandler
from ..services.credits import get_webhook_handler

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def receive_stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    handler: CheckoutWebhookHandler = Depends(get_webhook_handler),
) -> JSONResponse:
    # The signature covers the exact bytes sent, so the body is never re-serialized.
    payload = await request.body()
    response = await run_in_threadpool(handler.handle, payload, stripe_signature)
    return JSONResponse(status_code=response.status_code, content=response.body)
