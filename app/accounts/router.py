import uuid

from fastapi import APIRouter

from app.accounts import service
from app.accounts.schemas import (
    AccountResponse,
    CreateAccountRequest,
    InviteRequest,
    MemberResponse,
)
from app.core.dependencies import CurrentUser, DbSession
from app.core.tenancy import require_account_member

router = APIRouter(prefix="/accounts", tags=["accounts"])


@router.get("/me", response_model=list[AccountResponse])
async def my_accounts(db: DbSession, user: CurrentUser) -> list[AccountResponse]:
    accounts = await service.get_user_accounts(db, user.id)
    return [AccountResponse.model_validate(a) for a in accounts]


@router.post("", response_model=AccountResponse, status_code=201)
async def create_account(
    body: CreateAccountRequest, db: DbSession, user: CurrentUser
) -> AccountResponse:
    account = await service.create_account(db, body.name, user)
    await db.commit()
    return AccountResponse.model_validate(account)


@router.get("/{account_id}", response_model=AccountResponse)
async def get_account(
    account_id: uuid.UUID, db: DbSession, user: CurrentUser
) -> AccountResponse:
    account = await service.get_account(db, account_id)
    await require_account_member(db, account_id, user.id)
    return AccountResponse.model_validate(account)


@router.post("/{account_id}/members", response_model=MemberResponse, status_code=201)
async def invite_member(
    account_id: uuid.UUID,
    body: InviteRequest,
    db: DbSession,
    user: CurrentUser,
) -> MemberResponse:
    member = await service.invite_member(db, account_id, user, body.email, body.role)
    await db.commit()
    return MemberResponse.model_validate(member)
