"""
Payment-provider webhook handling.

Each handler maps one provider event onto ledger operations. Credits are keyed
by the provider object id, so a retried delivery raises IdempotencyError
instead of crediting twice.
"""
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.accounts.models import SubscriptionStatus
from app.accounts.service import get_account
from app.config import settings
from app.core.exceptions import AppError
from app.credits import service as credits_service
from app.credits.models import CreditType, TransactionType
from app.billing.schemas import (
    Charge,
    CheckoutSession,
    CreditPackMetadata,
    Invoice,
    PlanMetadata,
    Subscription,
    WebhookEvent,
    WebhookOutcome,
)
from app.pricing.service import get_tier_credits

logger = logging.getLogger(__name__)

AUTO_TOPUP_PACK = "auto_topup"


async def _grant_pack(
    db: AsyncSession,
    pack: CreditPackMetadata,
    *,
    idempotency_key: str,
    external_reference: str,
    description: str,
) -> WebhookOutcome:
    await credits_service.ensure_balance_exists(db, pack.account_id)
    await credits_service.credit(
        db,
        pack.account_id,
        pack.credits,
        credit_type=CreditType.PURCHASED,
        transaction_type=TransactionType.PURCHASE,
        idempotency_key=idempotency_key,
        external_reference=external_reference,
        description=description,
        metadata={"pack_type": pack.pack_type},
    )
    logger.info("Granted %d purchased credits to account %s", pack.credits, pack.account_id)
    return WebhookOutcome.CREDITED


async def _set_subscription(
    db: AsyncSession, plan: PlanMetadata, status: SubscriptionStatus
) -> None:
    account = await get_account(db, plan.account_id)
    account.plan = plan.plan
    account.subscription_status = status
    await db.flush()


async def handle_checkout_completed(
    db: AsyncSession, obj: dict[str, Any]
) -> WebhookOutcome:
    session = CheckoutSession.model_validate(obj)
    metadata = session.metadata

    if "credits" in metadata and "pack_type" in metadata:
        pack = CreditPackMetadata.model_validate(metadata)
        return await _grant_pack(
            db,
            pack,
            idempotency_key=f"checkout:{session.id}",
            external_reference=session.id,
            description=f"Credit pack purchase: {pack.credits} credits",
        )

    if "plan" in metadata:
        plan = PlanMetadata.model_validate(metadata)
        await _set_subscription(db, plan, SubscriptionStatus.ACTIVE)
        logger.info("Account %s moved to plan %s", plan.account_id, plan.plan)
        return WebhookOutcome.UPDATED

    logger.warning("Checkout session %s carries no credit or plan metadata", session.id)
    return WebhookOutcome.IGNORED


async def handle_invoice_paid(db: AsyncSession, obj: dict[str, Any]) -> WebhookOutcome:
    invoice = Invoice.model_validate(obj)
    metadata = invoice.subscription_metadata

    if metadata.get("pack_type") == AUTO_TOPUP_PACK and "credits" in metadata:
        pack = CreditPackMetadata.model_validate(metadata)
        return await _grant_pack(
            db,
            pack,
            idempotency_key=f"invoice:{invoice.id}",
            external_reference=invoice.id,
            description=f"Credit subscription renewal: {pack.credits} credits",
        )

    if "plan" in metadata:
        plan = PlanMetadata.model_validate(metadata)
        await _set_subscription(db, plan, SubscriptionStatus.ACTIVE)
        monthly = await get_tier_credits(db, plan.plan)
        await credits_service.grant_monthly_credits(db, plan.account_id, monthly)
        return WebhookOutcome.GRANTED

    return WebhookOutcome.IGNORED


async def handle_invoice_failed(db: AsyncSession, obj: dict[str, Any]) -> WebhookOutcome:
    invoice = Invoice.model_validate(obj)
    metadata = invoice.subscription_metadata
    if "plan" not in metadata:
        return WebhookOutcome.IGNORED

    plan = PlanMetadata.model_validate(metadata)
    await _set_subscription(db, plan, SubscriptionStatus.PAST_DUE)
    logger.warning("Payment failed for account %s (invoice %s)", plan.account_id, invoice.id)
    return WebhookOutcome.UPDATED


async def handle_subscription_deleted(
    db: AsyncSession, obj: dict[str, Any]
) -> WebhookOutcome:
    subscription = Subscription.model_validate(obj)
    if "plan" not in subscription.metadata:
        return WebhookOutcome.IGNORED

    plan = PlanMetadata.model_validate(subscription.metadata)
    account = await get_account(db, plan.account_id)
    account.plan = settings.default_plan
    account.subscription_status = SubscriptionStatus.CANCELED
    await credits_service.expire_subscription_credits(
        db, account.id, idempotency_key=f"subscription_end:{subscription.id}"
    )
    logger.info("Subscription %s ended for account %s", subscription.id, account.id)
    return WebhookOutcome.UPDATED


async def handle_charge_refunded(db: AsyncSession, obj: dict[str, Any]) -> WebhookOutcome:
    charge = Charge.model_validate(obj)
    if "credits" not in charge.metadata:
        return WebhookOutcome.IGNORED

    pack = CreditPackMetadata.model_validate({"pack_type": "refund", **charge.metadata})
    entry = await credits_service.claw_back_purchased(
        db,
        pack.account_id,
        pack.credits,
        idempotency_key=f"refund:{charge.id}",
        external_reference=charge.id,
    )
    if entry is None:
        return WebhookOutcome.IGNORED
    return WebhookOutcome.CLAWED_BACK


_HANDLERS: dict[str, Callable[[AsyncSession, dict[str, Any]], Awaitable[WebhookOutcome]]] = {
    "checkout.session.completed": handle_checkout_completed,
    "invoice.payment_succeeded": handle_invoice_paid,
    "invoice.payment_failed": handle_invoice_failed,
    "customer.subscription.deleted": handle_subscription_deleted,
    "charge.refunded": handle_charge_refunded,
}


async def handle_event(db: AsyncSession, event: WebhookEvent) -> WebhookOutcome:
    """Dispatch a verified webhook event. Must be called within a transaction."""
    handler = _HANDLERS.get(event.type)
    if handler is None:
        logger.info("Ignoring webhook event %s (%s)", event.id, event.type)
        return WebhookOutcome.IGNORED

    try:
        outcome = await handler(db, event.data.object)
    except ValidationError as exc:
        raise AppError(f"Malformed {event.type} payload", status_code=400) from exc

    logger.info("Webhook event %s (%s) -> %s", event.id, event.type, outcome.value)
    return outcome
