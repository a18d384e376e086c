"""Audit log service: append-only, never update."""
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.audit.models import AuditLog


async def log_event(
    db: AsyncSession,
    account_id: uuid.UUID,
    event_type: str,
    *,
    actor_user_id: uuid.UUID | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    description: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> AuditLog:
    entry = AuditLog(
        account_id=account_id,
        actor_user_id=actor_user_id,
        event_type=event_type,
        resource_type=resource_type,
        resource_id=resource_id,
        description=description,
        metadata_=metadata,
    )
    db.add(entry)
    await db.flush()
    return entry


async def get_account_events(
    db: AsyncSession, account_id: uuid.UUID, limit: int = 50
) -> list[AuditLog]:
    result = await db.execute(
        select(AuditLog)
        .where(AuditLog.account_id == account_id)
        .order_by(AuditLog.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
