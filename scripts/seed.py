"""Seed feature pricing, credit packs and tier allowances. Run with: python -m scripts.seed"""
import asyncio

from sqlalchemy import select

from app.credits.models import FeatureType
from app.db.session import async_session_factory
from app.pricing.models import CreditPack, FeaturePricingRule, TierCredits

PRICING_RULES = [
    # (feature, rule_key, credits, description). GEO_GRID is priced by grid size.
    (FeatureType.KEYWORD_RESEARCH, "per_unit", 1, "One keyword research lookup"),
    (FeatureType.RANK_CHECK, "per_unit", 1, "One keyword rank check"),
    (FeatureType.SENTIMENT_ANALYSIS, "per_unit", 5, "One sentiment analysis run"),
    (FeatureType.REVIEW_IMPORT, "per_unit", 1, "One review import batch"),
    (FeatureType.LLM_VISIBILITY, "per_unit", 2, "One LLM visibility question"),
]

CREDIT_PACKS = [
    # (name, credits, price_cents, display_order)
    ("Starter", 100, 1000, 1),
    ("Growth", 500, 4500, 2),
    ("Pro", 1500, 12000, 3),
    ("Agency", 5000, 35000, 4),
]

TIER_CREDITS = [
    ("free", 0),
    ("grower", 100),
    ("builder", 500),
    ("maven", 1500),
]


async def main() -> None:
    async with async_session_factory() as db:
        for feature_type, rule_key, cost, description in PRICING_RULES:
            result = await db.execute(
                select(FeaturePricingRule).where(
                    FeaturePricingRule.feature_type == feature_type,
                    FeaturePricingRule.rule_key == rule_key,
                )
            )
            if result.scalar_one_or_none() is None:
                db.add(
                    FeaturePricingRule(
                        feature_type=feature_type,
                        rule_key=rule_key,
                        credit_cost=cost,
                        description=description,
                    )
                )
                print(f"  Added rule: {feature_type.value}/{rule_key}")
            else:
                print(f"  Exists: {feature_type.value}/{rule_key}")

        for name, credits, price_cents, order in CREDIT_PACKS:
            result = await db.execute(select(CreditPack).where(CreditPack.name == name))
            if result.scalar_one_or_none() is None:
                db.add(
                    CreditPack(
                        name=name,
                        credits=credits,
                        price_cents=price_cents,
                        display_order=order,
                    )
                )
                print(f"  Added pack: {name}")

        for tier, monthly in TIER_CREDITS:
            result = await db.execute(select(TierCredits).where(TierCredits.tier == tier))
            if result.scalar_one_or_none() is None:
                db.add(TierCredits(tier=tier, monthly_credits=monthly))
                print(f"  Added tier: {tier} ({monthly}/month)")

        await db.commit()
    print("Seeding complete.")


if __name__ == "__main__":
    asyncio.run(main())
