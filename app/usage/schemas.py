import uuid
from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from app.credits.models import FeatureType
from app.usage.models import UsageStatus


class ChargeRequest(BaseModel):
    account_id: uuid.UUID
    feature_type: FeatureType
    quantity: int = Field(default=1, ge=1)
    grid_size: int | None = Field(default=None, ge=1, le=21)
    rule_key: str = "per_unit"
    request_id: str = Field(min_length=1, max_length=200)  # client-provided idempotency key
    metadata: dict | None = None

    @model_validator(mode="after")
    def _grid_size_for_geo_grid(self) -> "ChargeRequest":
        if self.feature_type == FeatureType.GEO_GRID and self.grid_size is None:
            raise ValueError("grid_size is required for GEO_GRID")
        return self


class RefundRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class FeatureUsageResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: uuid.UUID
    account_id: uuid.UUID
    user_id: uuid.UUID
    feature_type: FeatureType
    quantity: int
    credits_charged: int
    request_id: str
    status: UsageStatus
    refunded_at: datetime | None = None
    created_at: datetime


class ChargeResponse(BaseModel):
    usage: FeatureUsageResponse
    total_credits: int
    replayed: bool = False


class CreditCheck(BaseModel):
    has_credits: bool
    required: int
    available: int


class BurnRateResponse(BaseModel):
    account_id: uuid.UUID
    credits_last_24h: int
    credits_last_7d: int
