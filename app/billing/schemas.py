import enum
import uuid
from typing import Any

from pydantic import AliasChoices, BaseModel, Field


class WebhookEventData(BaseModel):
    object: dict[str, Any]


class WebhookEvent(BaseModel):
    id: str
    type: str
    data: WebhookEventData


class CheckoutSession(BaseModel):
    id: str
    customer: str | None = None
    subscription: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)


class SubscriptionDetails(BaseModel):
    metadata: dict[str, str] = Field(default_factory=dict)


class Invoice(BaseModel):
    id: str
    customer: str | None = None
    subscription: str | None = None
    subscription_details: SubscriptionDetails | None = None

    @property
    def subscription_metadata(self) -> dict[str, str]:
        if self.subscription_details is None:
            return {}
        return self.subscription_details.metadata


class Subscription(BaseModel):
    id: str
    metadata: dict[str, str] = Field(default_factory=dict)


class Charge(BaseModel):
    id: str
    amount_refunded: int = 0
    metadata: dict[str, str] = Field(default_factory=dict)


class CreditPackMetadata(BaseModel):
    account_id: uuid.UUID = Field(validation_alias=AliasChoices("account_id", "accountId"))
    credits: int = Field(gt=0)
    pack_type: str


class PlanMetadata(BaseModel):
    account_id: uuid.UUID = Field(validation_alias=AliasChoices("account_id", "accountId"))
    plan: str = Field(min_length=1)


class WebhookOutcome(str, enum.Enum):
    CREDITED = "credited"
    GRANTED = "granted"
    CLAWED_BACK = "clawed_back"
    UPDATED = "updated"
    ALREADY_PROCESSED = "already_processed"
    IGNORED = "ignored"


class WebhookAck(BaseModel):
    received: bool = True
    event_id: str
    outcome: WebhookOutcome
