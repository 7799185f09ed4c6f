# app/routers/webhooks.py
from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool

from app.core.dependencies import get_webhook_service
from app.schemas.webhook import WebhookAck
from app.services.webhook_service import WebhookService

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/identity", response_model=WebhookAck)
async def identity_webhook(
    request: Request,
    service: WebhookService = Depends(get_webhook_service),
):
    """
    Supabase Auth events (user.created, session.created).

    Signature verification needs the raw body, so this handler reads
    the request itself and hands the sync work to the threadpool.

    Responses:
      - 400 {"error": ...}: missing headers or bad signature
      - 200 ack: every verified delivery, even if handling failed
    """
    body = await request.body()
    payload = service.verify_identity(body, request.headers)
    return await run_in_threadpool(service.handle_identity_event, payload)


@router.post("/billing", response_model=WebhookAck)
async def billing_webhook(
    request: Request,
    service: WebhookService = Depends(get_webhook_service),
):
    """Stripe subscription, checkout and invoice events."""
    body = await request.body()
    event = service.verify_billing(body, request.headers.get("stripe-signature"))
    return await run_in_threadpool(service.handle_billing_event, event)
