"""Feature gating: price check, debit, and the usage record for paid features."""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AppError, InsufficientCreditsError
from app.credits import service as credits_service
from app.credits.models import FeatureType
from app.usage.models import FeatureUsage, UsageStatus
from app.usage.schemas import CreditCheck

logger = logging.getLogger(__name__)


def usage_idempotency_key(request_id: str) -> str:
    return f"feature:{request_id}"


async def check_credits(
    db: AsyncSession, account_id: uuid.UUID, required: int
) -> CreditCheck:
    balance = await credits_service.get_balance(db, account_id)
    return CreditCheck(
        has_credits=balance.total_credits >= required,
        required=required,
        available=balance.total_credits,
    )


async def charge_feature(
    db: AsyncSession,
    *,
    account_id: uuid.UUID,
    user_id: uuid.UUID,
    feature_type: FeatureType,
    credits: int,
    request_id: str,
    quantity: int = 1,
    metadata: dict[str, Any] | None = None,
) -> FeatureUsage:
    """
    Charge a paid feature run and record it.

    Pre-checks affordability, then debits under ``feature:{request_id}`` so a
    retried request is rejected with IdempotencyError instead of charging twice.
    Must be called within a transaction (the caller should commit).
    """
    check = await check_credits(db, account_id, credits)
    if not check.has_credits:
        raise InsufficientCreditsError(balance=check.available, required=credits)

    await credits_service.debit(
        db,
        account_id,
        credits,
        feature_type=feature_type,
        idempotency_key=usage_idempotency_key(request_id),
        description=f"{feature_type.value.lower()} x{quantity}",
        metadata=metadata,
        created_by=user_id,
    )

    usage = FeatureUsage(
        account_id=account_id,
        user_id=user_id,
        feature_type=feature_type,
        quantity=quantity,
        credits_charged=credits,
        request_id=request_id,
        metadata_=metadata,
    )
    db.add(usage)
    await db.flush()
    return usage


async def get_usage(db: AsyncSession, usage_id: uuid.UUID) -> FeatureUsage | None:
    result = await db.execute(select(FeatureUsage).where(FeatureUsage.id == usage_id))
    return result.scalar_one_or_none()


async def get_usage_by_request(
    db: AsyncSession, account_id: uuid.UUID, request_id: str
) -> FeatureUsage | None:
    result = await db.execute(
        select(FeatureUsage).where(
            FeatureUsage.account_id == account_id,
            FeatureUsage.request_id == request_id,
        )
    )
    return result.scalar_one_or_none()


async def refund_usage(
    db: AsyncSession,
    usage: FeatureUsage,
    *,
    refunded_by: uuid.UUID | None = None,
    reason: str | None = None,
) -> FeatureUsage:
    """Give back the credits of a failed or cancelled run."""
    if usage.status == UsageStatus.REFUNDED:
        raise AppError("Usage already refunded", status_code=409)

    await credits_service.refund_feature(
        db,
        usage.account_id,
        usage.credits_charged,
        usage_idempotency_key(usage.request_id),
        feature_type=usage.feature_type,
        description=reason,
        created_by=refunded_by,
    )
    usage.status = UsageStatus.REFUNDED
    usage.refunded_at = datetime.now(timezone.utc)
    await db.flush()

    logger.info(
        "Refunded %d credits for %s run %s on account %s",
        usage.credits_charged,
        usage.feature_type.value,
        usage.request_id,
        usage.account_id,
    )
    return usage


async def get_usage_history(
    db: AsyncSession, account_id: uuid.UUID, limit: int = 50, offset: int = 0
) -> list[FeatureUsage]:
    result = await db.execute(
        select(FeatureUsage)
        .where(FeatureUsage.account_id == account_id)
        .order_by(FeatureUsage.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())


async def get_burn_rate(
    db: AsyncSession, account_id: uuid.UUID
) -> tuple[int, int]:
    """Returns (credits_last_24h, credits_last_7d), refunded runs excluded."""
    now = datetime.now(timezone.utc)

    async def _sum_since(since: datetime) -> int:
        result = await db.execute(
            select(func.coalesce(func.sum(FeatureUsage.credits_charged), 0)).where(
                FeatureUsage.account_id == account_id,
                FeatureUsage.status == UsageStatus.CHARGED,
                FeatureUsage.created_at >= since,
            )
        )
        return int(result.scalar_one())

    last_24h = await _sum_since(now - timedelta(hours=24))
    last_7d = await _sum_since(now - timedelta(days=7))
    return last_24h, last_7d
