from sqlalchemy import Boolean, Enum, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.credits.models import FeatureType
from app.db.base import Base, TimestampMixin, UUIDMixin


class FeaturePricingRule(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "feature_pricing_rules"
    __table_args__ = (
        Index("ix_pricing_feature_rule", "feature_type", "rule_key", unique=True),
    )

    feature_type: Mapped[FeatureType] = mapped_column(Enum(FeatureType), nullable=False)
    # e.g. "per_unit", "per_keyword"
    rule_key: Mapped[str] = mapped_column(String(64), nullable=False)
    credit_cost: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class CreditPack(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "credit_packs"

    name: Mapped[str] = mapped_column(String(128), nullable=False)
    credits: Mapped[int] = mapped_column(Integer, nullable=False)
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    # Payment provider price ids for one-off and auto top-up checkouts
    provider_price_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    provider_price_id_recurring: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class TierCredits(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "tier_credits"

    tier: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    monthly_credits: Mapped[int] = mapped_column(Integer, nullable=False)
