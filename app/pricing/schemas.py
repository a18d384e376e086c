import uuid

from pydantic import BaseModel, Field, model_validator

from app.credits.models import FeatureType


class PricingRuleResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: uuid.UUID
    feature_type: FeatureType
    rule_key: str
    credit_cost: int
    description: str | None = None


class CreditPackResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: uuid.UUID
    name: str
    credits: int
    price_cents: int
    provider_price_id: str | None = None
    provider_price_id_recurring: str | None = None
    display_order: int


class TierCreditsResponse(BaseModel):
    model_config = {"from_attributes": True}

    tier: str
    monthly_credits: int


class CostEstimateRequest(BaseModel):
    feature_type: FeatureType
    quantity: int = Field(default=1, ge=1)
    # Geo-grid only: cells per side
    grid_size: int | None = Field(default=None, ge=1, le=21)
    rule_key: str = "per_unit"

    @model_validator(mode="after")
    def _grid_size_for_geo_grid(self) -> "CostEstimateRequest":
        if self.feature_type == FeatureType.GEO_GRID and self.grid_size is None:
            raise ValueError("grid_size is required for GEO_GRID")
        return self


class CostEstimate(BaseModel):
    feature_type: FeatureType
    quantity: int
    credits: int
