import uuid
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.accounts.models import AccountMember, MemberRole
from app.core.exceptions import ForbiddenError


async def require_account_member(
    db: AsyncSession,
    account_id: uuid.UUID,
    user_id: uuid.UUID,
    roles: Iterable[MemberRole] | None = None,
) -> AccountMember:
    """Return the caller's membership, optionally restricted to ``roles``."""
    result = await db.execute(
        select(AccountMember).where(
            AccountMember.account_id == account_id,
            AccountMember.user_id == user_id,
        )
    )
    member = result.scalar_one_or_none()
    if member is None:
        raise ForbiddenError("You do not have access to this account")
    if roles is not None and member.role not in set(roles):
        raise ForbiddenError("Insufficient role for this account")
    return member
