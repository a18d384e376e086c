import uuid

from fastapi import APIRouter, Query

from app.accounts.models import MemberRole
from app.core.dependencies import CurrentUser, DbSession
from app.core.exceptions import IdempotencyError, NotFoundError
from app.core.tenancy import require_account_member
from app.credits.service import get_balance
from app.pricing.service import estimate_feature_cost
from app.usage import service as usage_service
from app.usage.schemas import (
    BurnRateResponse,
    ChargeRequest,
    ChargeResponse,
    FeatureUsageResponse,
    RefundRequest,
)

router = APIRouter(prefix="/usage", tags=["usage"])


@router.post("/charge", response_model=ChargeResponse)
async def charge(body: ChargeRequest, db: DbSession, user: CurrentUser) -> ChargeResponse:
    await require_account_member(db, body.account_id, user.id)
    estimate = await estimate_feature_cost(
        db,
        body.feature_type,
        quantity=body.quantity,
        grid_size=body.grid_size,
        rule_key=body.rule_key,
    )

    replayed = False
    try:
        usage = await usage_service.charge_feature(
            db,
            account_id=body.account_id,
            user_id=user.id,
            feature_type=body.feature_type,
            credits=estimate.credits,
            request_id=body.request_id,
            quantity=body.quantity,
            metadata=body.metadata,
        )
        await db.commit()
    except IdempotencyError:
        # Same request_id already charged: report the original run
        await db.rollback()
        usage = await usage_service.get_usage_by_request(db, body.account_id, body.request_id)
        if usage is None:
            raise
        replayed = True

    balance = await get_balance(db, body.account_id)
    return ChargeResponse(
        usage=FeatureUsageResponse.model_validate(usage),
        total_credits=balance.total_credits,
        replayed=replayed,
    )


@router.post("/{usage_id}/refund", response_model=FeatureUsageResponse)
async def refund(
    usage_id: uuid.UUID, body: RefundRequest, db: DbSession, user: CurrentUser
) -> FeatureUsageResponse:
    usage = await usage_service.get_usage(db, usage_id)
    if usage is None:
        raise NotFoundError("FeatureUsage", str(usage_id))
    if not user.is_admin:
        await require_account_member(
            db, usage.account_id, user.id, roles=(MemberRole.OWNER, MemberRole.ADMIN)
        )

    usage = await usage_service.refund_usage(db, usage, refunded_by=user.id, reason=body.reason)
    await db.commit()
    return FeatureUsageResponse.model_validate(usage)


@router.get("/history/{account_id}", response_model=list[FeatureUsageResponse])
async def usage_history(
    account_id: uuid.UUID,
    db: DbSession,
    user: CurrentUser,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> list[FeatureUsageResponse]:
    await require_account_member(db, account_id, user.id)
    events = await usage_service.get_usage_history(db, account_id, limit, offset)
    return [FeatureUsageResponse.model_validate(e) for e in events]


@router.get("/burn-rate/{account_id}", response_model=BurnRateResponse)
async def burn_rate(
    account_id: uuid.UUID, db: DbSession, user: CurrentUser
) -> BurnRateResponse:
    await require_account_member(db, account_id, user.id)
    last_24h, last_7d = await usage_service.get_burn_rate(db, account_id)
    return BurnRateResponse(
        account_id=account_id, credits_last_24h=last_24h, credits_last_7d=last_7d
    )
