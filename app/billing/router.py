import logging

from fastapi import APIRouter, Request
from pydantic import ValidationError

from app.billing import service
from app.billing.schemas import WebhookAck, WebhookEvent, WebhookOutcome
from app.config import settings
from app.core.dependencies import DbSession
from app.core.exceptions import AppError, IdempotencyError
from app.core.security import verify_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["billing"])


def _verify_webhook_signature(raw_body: bytes, signature: str | None) -> None:
    if not settings.billing_webhook_secret:
        raise AppError("Billing webhook secret is not configured", status_code=500)
    if not signature or not signature.strip():
        raise AppError("Missing X-Signature", status_code=400)
    if not verify_signature(settings.billing_webhook_secret, raw_body, signature):
        raise AppError("Invalid signature", status_code=400)


@router.post("/webhook", response_model=WebhookAck)
async def billing_webhook(request: Request, db: DbSession) -> WebhookAck:
    raw_body = await request.body()
    _verify_webhook_signature(raw_body, request.headers.get("x-signature"))
    try:
        event = WebhookEvent.model_validate_json(raw_body)
    except ValidationError:
        raise AppError("Invalid webhook payload", status_code=400)

    try:
        outcome = await service.handle_event(db, event)
        await db.commit()
    except IdempotencyError as exc:
        # Provider retried an event we already applied
        await db.rollback()
        logger.warning("Webhook event %s already processed (key=%s)", event.id, exc.key)
        outcome = WebhookOutcome.ALREADY_PROCESSED

    return WebhookAck(event_id=event.id, outcome=outcome)
