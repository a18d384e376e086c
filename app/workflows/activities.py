"""
Temporal activities for the monthly grant workflow.

Each activity is a discrete, retryable unit of work with its own database
session. Granting is idempotent per account and calendar month, so a retried
activity cannot grant twice.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from temporalio import activity

from app.accounts import service as accounts_service
from app.config import settings
from app.core.exceptions import IdempotencyError
from app.credits import service as credits_service
from app.db.session import async_session_factory
from app.pricing import service as pricing_service

logger = logging.getLogger(__name__)


@dataclass
class GrantAccountInput:
    account_id: str
    granted_at: str  # ISO timestamp, fixed by the workflow run


@dataclass
class GrantAccountOutput:
    account_id: str
    credits_granted: int
    already_granted: bool = False


@activity.defn
async def list_billable_accounts() -> list[str]:
    async with async_session_factory() as db:
        accounts = await accounts_service.list_billable_accounts(
            db, free_plan=settings.default_plan
        )
        return [str(account.id) for account in accounts]


@activity.defn
async def grant_account_monthly_credits(input: GrantAccountInput) -> GrantAccountOutput:
    account_id = uuid.UUID(input.account_id)
    granted_at = datetime.fromisoformat(input.granted_at)

    async with async_session_factory() as db:
        try:
            async with db.begin():
                account = await accounts_service.get_account(db, account_id)
                monthly = await pricing_service.get_tier_credits(db, account.plan)
                await credits_service.grant_monthly_credits(
                    db, account_id, monthly, now=granted_at
                )
        except IdempotencyError:
            logger.info("Account %s already granted for %s", account_id, granted_at.strftime("%Y-%m"))
            return GrantAccountOutput(
                account_id=input.account_id, credits_granted=0, already_granted=True
            )

    return GrantAccountOutput(account_id=input.account_id, credits_granted=monthly)
