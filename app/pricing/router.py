from fastapi import APIRouter

from app.core.dependencies import DbSession
from app.credits.models import FeatureType
from app.pricing import service
from app.pricing.schemas import (
    CostEstimate,
    CostEstimateRequest,
    CreditPackResponse,
    PricingRuleResponse,
    TierCreditsResponse,
)

router = APIRouter(prefix="/pricing", tags=["pricing"])


@router.get("/rules", response_model=list[PricingRuleResponse])
async def list_rules(
    db: DbSession, feature_type: FeatureType | None = None
) -> list[PricingRuleResponse]:
    rules = await service.get_pricing_rules(db, feature_type)
    return [PricingRuleResponse.model_validate(r) for r in rules]


@router.get("/packs", response_model=list[CreditPackResponse])
async def list_packs(db: DbSession) -> list[CreditPackResponse]:
    packs = await service.get_credit_packs(db)
    return [CreditPackResponse.model_validate(p) for p in packs]


@router.get("/tiers", response_model=list[TierCreditsResponse])
async def list_tiers(db: DbSession) -> list[TierCreditsResponse]:
    tiers = await service.get_all_tier_credits(db)
    return [TierCreditsResponse.model_validate(t) for t in tiers]


@router.post("/estimate", response_model=CostEstimate)
async def estimate(body: CostEstimateRequest, db: DbSession) -> CostEstimate:
    return await service.estimate_feature_cost(
        db,
        body.feature_type,
        quantity=body.quantity,
        grid_size=body.grid_size,
        rule_key=body.rule_key,
    )
