import uuid
from datetime import datetime

from pydantic import BaseModel

from app.credits.models import CreditType, FeatureType, TransactionType


class BalanceResponse(BaseModel):
    model_config = {"from_attributes": True}

    account_id: uuid.UUID
    subscription_credits: int
    purchased_credits: int
    bonus_credits: int
    total_credits: int
    subscription_credits_expire_at: datetime | None = None
    last_monthly_grant_at: datetime | None = None


class CreditTransactionResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: uuid.UUID
    account_id: uuid.UUID
    amount: int
    balance_after: int
    credit_type: CreditType
    transaction_type: TransactionType
    feature_type: FeatureType | None = None
    idempotency_key: str | None = None
    external_reference: str | None = None
    description: str | None = None
    metadata_: dict | None = None
    created_at: datetime


class LedgerPage(BaseModel):
    entries: list[CreditTransactionResponse]
    total: int
