import uuid
from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from app.credits.models import CreditType
from app.credits.schemas import CreditTransactionResponse


class GrantRequest(BaseModel):
    amount: int = Field(gt=0)
    reason: str = Field(min_length=1, max_length=500)


class AdjustmentRequest(BaseModel):
    amount: int
    credit_type: CreditType | None = None  # positive amounts only; defaults to PURCHASED
    reason: str = Field(min_length=1, max_length=500)

    @field_validator("amount")
    @classmethod
    def non_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("Adjustment amount must be non-zero")
        return v

    @model_validator(mode="after")
    def _no_bucket_on_drawdown(self) -> "AdjustmentRequest":
        if self.amount < 0 and self.credit_type is not None:
            raise ValueError(
                "credit_type applies to positive adjustments only; "
                "negative amounts draw down in debit order"
            )
        return self


class AdminLedgerChange(BaseModel):
    entries: list[CreditTransactionResponse]
    total_credits: int


class ReconcileResponse(BaseModel):
    account_id: uuid.UUID
    balance_total: int
    ledger_total: int
    consistent: bool


class AuditLogResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: uuid.UUID
    account_id: uuid.UUID
    actor_user_id: uuid.UUID | None
    event_type: str
    resource_type: str | None
    resource_id: str | None
    description: str | None
    created_at: datetime
