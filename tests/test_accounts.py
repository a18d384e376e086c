"""Registration, tenancy and the balance/ledger read endpoints."""
import uuid

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.accounts.models import AccountMember, MemberRole
from app.auth.models import User
from app.auth.service import register_user
from app.core.dependencies import get_current_user, get_db
from app.credits.models import CreditBalance, CreditType, TransactionType
from app.credits.service import credit
from app.main import app


def _override_db(session: AsyncSession):
    async def _get_db():
        yield session

    return _get_db


@pytest.mark.asyncio
async def test_register_creates_owned_account_with_empty_balance(db):
    user, account = await register_user(db, "new@example.com", "password123", "Acme Dental")

    assert account.name == "Acme Dental"
    assert account.plan == "free"

    member = (
        await db.execute(select(AccountMember).where(AccountMember.user_id == user.id))
    ).scalar_one()
    assert member.account_id == account.id
    assert member.role == MemberRole.OWNER

    balance = (
        await db.execute(select(CreditBalance).where(CreditBalance.account_id == account.id))
    ).scalar_one()
    assert balance.total_credits == 0


@pytest.mark.asyncio
async def test_token_flow_and_balance_endpoints(db):
    app.dependency_overrides[get_db] = _override_db(db)
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://testserver"
        ) as client:
            registered = await client.post(
                "/auth/register",
                json={"email": "reader@example.com", "password": "password123"},
            )
            account_id = registered.json()["account_id"]

            login = await client.post(
                "/auth/login",
                json={"email": "reader@example.com", "password": "password123"},
            )
            headers = {"Authorization": f"Bearer {login.json()['access_token']}"}

            me = await client.get("/auth/me", headers=headers)
            mine = await client.get("/accounts/me", headers=headers)

            await credit(
                db,
                uuid.UUID(account_id),
                75,
                credit_type=CreditType.BONUS,
                transaction_type=TransactionType.GRANT,
                description="Welcome bonus",
            )
            await db.commit()

            balance = await client.get(f"/credits/{account_id}/balance", headers=headers)
            ledger = await client.get(f"/credits/{account_id}/ledger", headers=headers)
    finally:
        app.dependency_overrides.clear()

    assert registered.status_code == 201
    assert me.json()["email"] == "reader@example.com"
    assert me.json()["is_admin"] is False
    assert [a["id"] for a in mine.json()] == [account_id]

    assert balance.status_code == 200
    assert balance.json()["bonus_credits"] == 75
    assert balance.json()["total_credits"] == 75
    assert ledger.json()["total"] == 1
    assert ledger.json()["entries"][0]["description"] == "Welcome bonus"


@pytest.mark.asyncio
async def test_balance_is_private_to_members(db, sample_account, account_factory):
    account_id, _ = sample_account
    _, outsider_id = await account_factory(db, email="outsider@example.com")

    outsider = await db.get(User, outsider_id)

    async def _get_user():
        return outsider

    app.dependency_overrides[get_db] = _override_db(db)
    app.dependency_overrides[get_current_user] = _get_user
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://testserver"
        ) as client:
            resp = await client.get(f"/credits/{account_id}/balance")
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 403
