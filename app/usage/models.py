import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.credits.models import FeatureType
from app.db.base import Base, TimestampMixin, UUIDMixin


class UsageStatus(str, enum.Enum):
    CHARGED = "CHARGED"
    REFUNDED = "REFUNDED"


class FeatureUsage(UUIDMixin, TimestampMixin, Base):
    """One paid feature run and the credits it consumed."""
    __tablename__ = "feature_usage"
    __table_args__ = (
        UniqueConstraint("account_id", "request_id", name="uq_usage_account_request"),
        Index("ix_usage_account_created", "account_id", "created_at"),
    )

    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    feature_type: Mapped[FeatureType] = mapped_column(Enum(FeatureType), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    credits_charged: Mapped[int] = mapped_column(BigInteger, nullable=False)
    # Client-provided; the debit's idempotency key is derived from it
    request_id: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[UsageStatus] = mapped_column(
        Enum(UsageStatus), nullable=False, default=UsageStatus.CHARGED
    )
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
