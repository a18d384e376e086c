"""Tests for the cost engine: feature usage → credits."""
import pytest

from app.core.exceptions import AppError, NotFoundError
from app.credits.models import FeatureType
from app.pricing.models import CreditPack, TierCredits
from app.pricing.service import (
    calculate_geogrid_cost,
    estimate_feature_cost,
    get_credit_packs,
    get_tier_credits,
)


class TestGeogridCost:
    @pytest.mark.parametrize(
        "grid_size, expected",
        [(3, 29), (5, 45), (7, 69), (9, 101)],
    )
    def test_five_keywords(self, grid_size, expected):
        assert calculate_geogrid_cost(grid_size, keyword_count=5) == expected

    def test_single_keyword(self):
        # 10 base + 9 cells + 2 for the keyword
        assert calculate_geogrid_cost(3) == 21


@pytest.mark.asyncio
async def test_estimate_uses_rule_cost_times_quantity(db, pricing_rules):
    estimate = await estimate_feature_cost(db, FeatureType.SENTIMENT_ANALYSIS, quantity=3)
    assert estimate.credits == 15
    assert estimate.quantity == 3


@pytest.mark.asyncio
async def test_estimate_geogrid_needs_grid_size(db):
    estimate = await estimate_feature_cost(db, FeatureType.GEO_GRID, quantity=5, grid_size=5)
    assert estimate.credits == 45

    with pytest.raises(AppError):
        await estimate_feature_cost(db, FeatureType.GEO_GRID, quantity=5)


@pytest.mark.asyncio
async def test_estimate_without_rule_is_not_found(db, pricing_rules):
    with pytest.raises(NotFoundError):
        await estimate_feature_cost(db, FeatureType.REVIEW_IMPORT)


@pytest.mark.asyncio
async def test_tier_credits_default_to_zero(db):
    db.add(TierCredits(tier="builder", monthly_credits=500))
    await db.commit()

    assert await get_tier_credits(db, "builder") == 500
    assert await get_tier_credits(db, "no-such-tier") == 0


@pytest.mark.asyncio
async def test_credit_packs_hide_inactive_and_keep_order(db):
    db.add_all(
        [
            CreditPack(name="Large", credits=1500, price_cents=12000, display_order=2),
            CreditPack(name="Small", credits=100, price_cents=1000, display_order=1),
            CreditPack(
                name="Retired", credits=50, price_cents=500, display_order=0, is_active=False
            ),
        ]
    )
    await db.commit()

    packs = await get_credit_packs(db)
    assert [p.name for p in packs] == ["Small", "Large"]
