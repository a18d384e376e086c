import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.accounts.models import Account, AccountMember, MemberRole
from app.auth.models import User
from app.config import settings
from app.core.exceptions import AccountNotFoundError, AppError, NotFoundError
from app.core.tenancy import require_account_member
from app.credits.service import ensure_balance_exists


async def create_account(db: AsyncSession, name: str, owner: User) -> Account:
    """Create an account owned by ``owner`` together with its empty balance.

    Flushes only; the caller commits.
    """
    account = Account(name=name, owner_id=owner.id, plan=settings.default_plan)
    db.add(account)
    await db.flush()

    db.add(AccountMember(user_id=owner.id, account_id=account.id, role=MemberRole.OWNER))
    await db.flush()
    await ensure_balance_exists(db, account.id)
    return account


async def get_account(db: AsyncSession, account_id: uuid.UUID) -> Account:
    result = await db.execute(select(Account).where(Account.id == account_id))
    account = result.scalar_one_or_none()
    if account is None:
        raise AccountNotFoundError(str(account_id))
    return account


async def invite_member(
    db: AsyncSession,
    account_id: uuid.UUID,
    inviter: User,
    invitee_email: str,
    role: MemberRole,
) -> AccountMember:
    await get_account(db, account_id)
    await require_account_member(
        db, account_id, inviter.id, roles=(MemberRole.OWNER, MemberRole.ADMIN)
    )
    if role == MemberRole.OWNER:
        raise AppError("An account has exactly one owner", status_code=400)

    result = await db.execute(select(User).where(User.email == invitee_email))
    invitee = result.scalar_one_or_none()
    if invitee is None:
        raise NotFoundError("User", invitee_email)

    result = await db.execute(
        select(AccountMember).where(
            AccountMember.user_id == invitee.id, AccountMember.account_id == account_id
        )
    )
    if result.scalar_one_or_none() is not None:
        raise AppError("User is already a member", status_code=409)

    member = AccountMember(user_id=invitee.id, account_id=account_id, role=role)
    db.add(member)
    await db.flush()
    return member


async def get_user_accounts(db: AsyncSession, user_id: uuid.UUID) -> list[Account]:
    result = await db.execute(
        select(Account)
        .join(AccountMember, AccountMember.account_id == Account.id)
        .where(AccountMember.user_id == user_id)
        .order_by(Account.created_at.desc())
    )
    return list(result.scalars().all())


async def list_billable_accounts(db: AsyncSession, free_plan: str = "free") -> list[Account]:
    """Accounts on a paid tier, for the monthly grant run."""
    result = await db.execute(
        select(Account).where(Account.plan != free_plan).order_by(Account.created_at)
    )
    return list(result.scalars().all())
