import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    JSON,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, TimestampMixin, UpdatedAtMixin, UUIDMixin


class CreditType(str, enum.Enum):
    SUBSCRIPTION = "SUBSCRIPTION"
    PURCHASED = "PURCHASED"
    BONUS = "BONUS"


class TransactionType(str, enum.Enum):
    PURCHASE = "PURCHASE"
    CONSUMPTION = "CONSUMPTION"
    REFUND = "REFUND"
    ADJUSTMENT = "ADJUSTMENT"
    GRANT = "GRANT"


class FeatureType(str, enum.Enum):
    KEYWORD_RESEARCH = "KEYWORD_RESEARCH"
    RANK_CHECK = "RANK_CHECK"
    GEO_GRID = "GEO_GRID"
    SENTIMENT_ANALYSIS = "SENTIMENT_ANALYSIS"
    REVIEW_IMPORT = "REVIEW_IMPORT"
    LLM_VISIBILITY = "LLM_VISIBILITY"


class CreditTransaction(UUIDMixin, TimestampMixin, Base):
    """Append-only credit log. Rows are never updated or deleted."""
    __tablename__ = "credit_transactions"
    __table_args__ = (
        UniqueConstraint(
            "account_id", "idempotency_key", name="uq_credit_tx_account_idempotency"
        ),
        Index("ix_credit_tx_account_created", "account_id", "created_at"),
    )

    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id"), nullable=False, index=True
    )
    # Signed integer: positive = credit in, negative = debit
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    # Account total right after this row was applied
    balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)
    credit_type: Mapped[CreditType] = mapped_column(Enum(CreditType), nullable=False)
    transaction_type: Mapped[TransactionType] = mapped_column(
        Enum(TransactionType), nullable=False
    )
    feature_type: Mapped[FeatureType | None] = mapped_column(
        Enum(FeatureType), nullable=True
    )
    idempotency_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Payment provider object id (checkout session, invoice, charge)
    external_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=True
    )


class CreditBalance(UUIDMixin, TimestampMixin, UpdatedAtMixin, Base):
    """Per-account projection of credit_transactions, one row per account."""
    __tablename__ = "credit_balances"
    __table_args__ = (
        CheckConstraint("subscription_credits >= 0", name="ck_balance_subscription_non_negative"),
        CheckConstraint("purchased_credits >= 0", name="ck_balance_purchased_non_negative"),
        CheckConstraint("bonus_credits >= 0", name="ck_balance_bonus_non_negative"),
    )

    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id"), nullable=False, unique=True
    )
    subscription_credits: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    purchased_credits: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    bonus_credits: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    subscription_credits_expire_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_monthly_grant_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    @property
    def total_credits(self) -> int:
        return self.subscription_credits + self.purchased_credits + self.bonus_credits

    def credits_of(self, credit_type: CreditType) -> int:
        return getattr(self, BALANCE_FIELDS[credit_type])


BALANCE_FIELDS: dict[CreditType, str] = {
    CreditType.SUBSCRIPTION: "subscription_credits",
    CreditType.PURCHASED: "purchased_credits",
    CreditType.BONUS: "bonus_credits",
}
