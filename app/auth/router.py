from fastapi import APIRouter

from app.auth import service
from app.auth.schemas import (
    LoginRequest,
    RegisterRequest,
    RegisterResponse,
    TokenResponse,
    UserResponse,
)
from app.core.dependencies import CurrentUser, DbSession

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(body: RegisterRequest, db: DbSession) -> RegisterResponse:
    user, account = await service.register_user(
        db, body.email, body.password, body.account_name
    )
    return RegisterResponse(user=UserResponse.model_validate(user), account_id=account.id)


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: DbSession) -> TokenResponse:
    token = await service.authenticate_user(db, body.email, body.password)
    return TokenResponse(access_token=token)


@router.get("/me", response_model=UserResponse)
async def me(user: CurrentUser) -> UserResponse:
    return UserResponse.model_validate(user)
