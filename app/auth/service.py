from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.accounts.models import Account
from app.accounts.service import create_account
from app.auth.models import User
from app.core.exceptions import AppError
from app.core.security import create_access_token, hash_password, verify_password


async def register_user(
    db: AsyncSession, email: str, password: str, account_name: str | None = None
) -> tuple[User, Account]:
    """Create a user and their personal account in one transaction."""
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none() is not None:
        raise AppError("Email already registered", status_code=409)

    user = User(email=email, hashed_password=hash_password(password))
    db.add(user)
    await db.flush()

    account = await create_account(db, account_name or email, user)
    await db.commit()
    await db.refresh(user)
    return user, account


async def authenticate_user(db: AsyncSession, email: str, password: str) -> str:
    """Returns JWT access token or raises."""
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is None or not verify_password(password, user.hashed_password):
        raise AppError("Invalid credentials", status_code=401)

    return create_access_token(str(user.id))
