"""
Gateway webhooks: POST /v1/webhooks/{provider}
- Authenticates against the exact raw body (401 on failure, nothing written)
- Always 200 once authenticated; retries of settled orders are no-ops
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from payrecon.deps import get_webhook_processor
from payrecon.errors import AuthError
from payrecon.schemas import WebhookAck
from payrecon.services.webhook_processor import WebhookProcessor

router = APIRouter()


@router.post("/{provider}", response_model=WebhookAck)
async def receive_webhook(
    provider: str,
    request: Request,
    processor: WebhookProcessor = Depends(get_webhook_processor),
):
    body = await request.body()

    try:
        result = await run_in_threadpool(processor.handle, request.headers, body)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=f"Invalid webhook signature: {e.kind.value}")

    return WebhookAck(outcome=result.outcome, reason=result.reason)
