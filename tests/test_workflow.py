"""
Tests for the monthly grant logic and its workflow activities.

Activities are called directly against a file-backed database (no Temporal
server needed). Temporal's workflow-level dedup is guaranteed by the server.
"""
from datetime import datetime, timezone

import pytest

from app.core.exceptions import IdempotencyError
from app.credits.models import FeatureType, TransactionType
from app.credits.service import debit, get_balance, get_ledger, get_ledger_total, grant_monthly_credits
from app.pricing.models import TierCredits
from app.workflows import activities
from app.workflows.activities import GrantAccountInput

JAN = datetime(2026, 1, 15, 9, 30, tzinfo=timezone.utc)
FEB = datetime(2026, 2, 1, 0, 5, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_monthly_grant_sets_expiry_to_next_month(db, sample_account):
    account_id, _ = sample_account

    entry = await grant_monthly_credits(db, account_id, 100, now=JAN)
    await db.commit()

    assert entry.idempotency_key == "monthly_grant:2026-01"
    assert entry.transaction_type == TransactionType.GRANT
    balance = await get_balance(db, account_id)
    assert balance.subscription_credits == 100
    expires = balance.subscription_credits_expire_at
    assert (expires.year, expires.month, expires.day) == (2026, 2, 1)


@pytest.mark.asyncio
async def test_next_grant_expires_leftover_credits(db, sample_account):
    account_id, _ = sample_account

    await grant_monthly_credits(db, account_id, 100, now=JAN)
    await db.commit()
    await debit(db, account_id, 40, feature_type=FeatureType.RANK_CHECK)
    await db.commit()

    await grant_monthly_credits(db, account_id, 100, now=FEB)
    await db.commit()

    balance = await get_balance(db, account_id)
    assert balance.subscription_credits == 100
    assert await get_ledger_total(db, account_id) == 100

    entries, _ = await get_ledger(db, account_id, transaction_type=TransactionType.ADJUSTMENT)
    assert [(e.amount, e.idempotency_key) for e in entries] == [(-60, "monthly_expiry:2026-02")]


@pytest.mark.asyncio
async def test_monthly_grant_applies_once_per_month(db, sample_account):
    account_id, _ = sample_account

    await grant_monthly_credits(db, account_id, 100, now=JAN)
    await db.commit()

    with pytest.raises(IdempotencyError):
        await grant_monthly_credits(db, account_id, 100, now=JAN.replace(day=28))
    await db.rollback()

    assert (await get_balance(db, account_id)).subscription_credits == 100


@pytest.mark.asyncio
async def test_zero_credit_grant_applies_once_per_month(db, sample_account):
    account_id, _ = sample_account

    assert await grant_monthly_credits(db, account_id, 0, now=JAN) is None
    await db.commit()

    with pytest.raises(IdempotencyError):
        await grant_monthly_credits(db, account_id, 0, now=JAN.replace(day=28))
    await db.rollback()

    assert await grant_monthly_credits(db, account_id, 0, now=FEB) is None
    await db.commit()
    balance = await get_balance(db, account_id)
    assert balance.total_credits == 0
    assert balance.last_monthly_grant_at.month == 2


@pytest.mark.asyncio
async def test_grant_activities_cover_paid_accounts_once(
    session_factory, account_factory, monkeypatch
):
    monkeypatch.setattr(activities, "async_session_factory", session_factory)

    async with session_factory() as db:
        paid_id, _ = await account_factory(db, email="paid@example.com", plan="builder")
        await account_factory(db, email="free@example.com", plan="free")
        db.add(TierCredits(tier="builder", monthly_credits=500))
        await db.commit()

    account_ids = await activities.list_billable_accounts()
    assert account_ids == [str(paid_id)]

    granted_at = JAN.isoformat()
    first = await activities.grant_account_monthly_credits(
        GrantAccountInput(account_id=str(paid_id), granted_at=granted_at)
    )
    retry = await activities.grant_account_monthly_credits(
        GrantAccountInput(account_id=str(paid_id), granted_at=granted_at)
    )

    assert first.credits_granted == 500
    assert first.already_granted is False
    assert retry.already_granted is True

    async with session_factory() as db:
        balance = await get_balance(db, paid_id)
        assert balance.subscription_credits == 500
