"""
Cost engine: feature usage → credits.

Per-feature prices come from the database. The geo-grid formula is fixed.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AppError, NotFoundError
from app.credits.models import FeatureType
from app.pricing.models import CreditPack, FeaturePricingRule, TierCredits
from app.pricing.schemas import CostEstimate

GEOGRID_BASE_COST = 10
GEOGRID_COST_PER_KEYWORD = 2


async def get_pricing_rules(
    db: AsyncSession, feature_type: FeatureType | None = None
) -> list[FeaturePricingRule]:
    query = select(FeaturePricingRule).where(FeaturePricingRule.is_active.is_(True))
    if feature_type is not None:
        query = query.where(FeaturePricingRule.feature_type == feature_type)
    result = await db.execute(
        query.order_by(FeaturePricingRule.feature_type, FeaturePricingRule.rule_key)
    )
    return list(result.scalars().all())


async def get_pricing_rule(
    db: AsyncSession, feature_type: FeatureType, rule_key: str
) -> FeaturePricingRule:
    result = await db.execute(
        select(FeaturePricingRule).where(
            FeaturePricingRule.feature_type == feature_type,
            FeaturePricingRule.rule_key == rule_key,
            FeaturePricingRule.is_active.is_(True),
        )
    )
    rule = result.scalar_one_or_none()
    if rule is None:
        raise NotFoundError("PricingRule", f"{feature_type.value}/{rule_key}")
    return rule


def calculate_geogrid_cost(grid_size: int, keyword_count: int = 1) -> int:
    """
    10 base + 1 per cell + 2 per keyword.

    With 5 keywords: 3x3 = 29, 5x5 = 45, 7x7 = 69, 9x9 = 101.
    """
    return GEOGRID_BASE_COST + grid_size * grid_size + keyword_count * GEOGRID_COST_PER_KEYWORD


async def estimate_feature_cost(
    db: AsyncSession,
    feature_type: FeatureType,
    quantity: int = 1,
    grid_size: int | None = None,
    rule_key: str = "per_unit",
) -> CostEstimate:
    """Credits for one run of a paid feature. For GEO_GRID, quantity is the keyword count."""
    if quantity <= 0:
        raise AppError("quantity must be positive", status_code=422)

    if feature_type == FeatureType.GEO_GRID:
        if grid_size is None:
            raise AppError("grid_size is required for GEO_GRID", status_code=422)
        credits = calculate_geogrid_cost(grid_size, quantity)
    else:
        rule = await get_pricing_rule(db, feature_type, rule_key)
        credits = rule.credit_cost * quantity

    return CostEstimate(feature_type=feature_type, quantity=quantity, credits=credits)


async def get_credit_packs(db: AsyncSession) -> list[CreditPack]:
    result = await db.execute(
        select(CreditPack)
        .where(CreditPack.is_active.is_(True))
        .order_by(CreditPack.display_order)
    )
    return list(result.scalars().all())


async def get_tier_credits(db: AsyncSession, tier: str) -> int:
    """Monthly subscription credits for a tier; unknown tiers get 0."""
    result = await db.execute(
        select(TierCredits.monthly_credits).where(TierCredits.tier == tier)
    )
    monthly = result.scalar_one_or_none()
    return monthly or 0


async def get_all_tier_credits(db: AsyncSession) -> list[TierCredits]:
    result = await db.execute(select(TierCredits).order_by(TierCredits.monthly_credits))
    return list(result.scalars().all())
