import uuid
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from app.accounts.models import MemberRole, SubscriptionStatus


class CreateAccountRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)


class InviteRequest(BaseModel):
    email: EmailStr
    role: MemberRole = MemberRole.MEMBER


class AccountResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: uuid.UUID
    name: str
    owner_id: uuid.UUID
    plan: str
    subscription_status: SubscriptionStatus
    created_at: datetime


class MemberResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: uuid.UUID
    user_id: uuid.UUID
    account_id: uuid.UUID
    role: MemberRole
