"""Operator endpoints: admin-only access, audited grants and adjustments, reconcile."""
import uuid

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.audit.models import AuditLog
from app.auth.models import User
from app.core.dependencies import get_current_user, get_db
from app.core.security import hash_password
from app.credits.models import CreditType, TransactionType
from app.credits.service import credit, get_balance, get_ledger_total
from app.main import app


def _override_db(session: AsyncSession):
    async def _get_db():
        yield session

    return _get_db


def _override_user(user: User):
    async def _get_user():
        return user

    return _get_user


async def _make_admin(db: AsyncSession) -> User:
    admin = User(
        email="ops@example.com", hashed_password=hash_password("password"), is_admin=True
    )
    db.add(admin)
    await db.commit()
    return admin


async def _as(db: AsyncSession, user: User) -> AsyncClient:
    app.dependency_overrides[get_db] = _override_db(db)
    app.dependency_overrides[get_current_user] = _override_user(user)
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver")


@pytest.mark.asyncio
async def test_non_admin_is_forbidden(db, sample_account):
    account_id, user_id = sample_account
    owner = await db.get(User, user_id)

    try:
        async with await _as(db, owner) as client:
            grant = await client.post(
                f"/admin/accounts/{account_id}/grants",
                json={"amount": 100, "reason": "self-service"},
            )
            reconcile = await client.get(f"/admin/accounts/{account_id}/reconcile")
    finally:
        app.dependency_overrides.clear()

    assert grant.status_code == 403
    assert reconcile.status_code == 403
    assert (await get_balance(db, account_id)).total_credits == 0


@pytest.mark.asyncio
async def test_grant_adds_bonus_and_is_audited(db, sample_account):
    account_id, _ = sample_account
    admin = await _make_admin(db)
    admin_id = admin.id

    try:
        async with await _as(db, admin) as client:
            resp = await client.post(
                f"/admin/accounts/{account_id}/grants",
                json={"amount": 250, "reason": "Support goodwill"},
            )
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 201
    assert resp.json()["total_credits"] == 250
    assert resp.json()["entries"][0]["credit_type"] == "BONUS"
    assert resp.json()["entries"][0]["transaction_type"] == "GRANT"

    balance = await get_balance(db, account_id)
    assert balance.bonus_credits == 250

    result = await db.execute(select(AuditLog).where(AuditLog.account_id == account_id))
    log = result.scalar_one()
    assert log.event_type == "credits.granted"
    assert log.actor_user_id == admin_id
    assert log.metadata_["amount"] == 250


@pytest.mark.asyncio
async def test_adjustments_in_both_directions(db, sample_account):
    account_id, _ = sample_account
    admin = await _make_admin(db)

    try:
        async with await _as(db, admin) as client:
            up = await client.post(
                f"/admin/accounts/{account_id}/adjustments",
                json={"amount": 80, "credit_type": "PURCHASED", "reason": "Missed webhook"},
            )
            down = await client.post(
                f"/admin/accounts/{account_id}/adjustments",
                json={"amount": -30, "reason": "Duplicate purchase"},
            )
            too_much = await client.post(
                f"/admin/accounts/{account_id}/adjustments",
                json={"amount": -1000, "reason": "Typo"},
            )
            zero = await client.post(
                f"/admin/accounts/{account_id}/adjustments",
                json={"amount": 0, "reason": "Nothing"},
            )
    finally:
        app.dependency_overrides.clear()

    assert up.status_code == 201
    assert down.status_code == 201
    assert down.json()["total_credits"] == 50
    assert too_much.status_code == 402
    assert zero.status_code == 422

    assert (await get_balance(db, account_id)).purchased_credits == 50


@pytest.mark.asyncio
async def test_negative_adjustment_draws_in_debit_order(db, sample_account):
    account_id, _ = sample_account
    admin = await _make_admin(db)
    for credit_type in (CreditType.SUBSCRIPTION, CreditType.PURCHASED):
        await credit(
            db,
            account_id,
            10 if credit_type == CreditType.SUBSCRIPTION else 50,
            credit_type=credit_type,
            transaction_type=TransactionType.GRANT,
        )
    await db.commit()

    try:
        async with await _as(db, admin) as client:
            pinned = await client.post(
                f"/admin/accounts/{account_id}/adjustments",
                json={"amount": -30, "credit_type": "BONUS", "reason": "Wrong bucket"},
            )
            down = await client.post(
                f"/admin/accounts/{account_id}/adjustments",
                json={"amount": -30, "reason": "Duplicate purchase"},
            )
    finally:
        app.dependency_overrides.clear()

    assert pinned.status_code == 422
    assert down.status_code == 201
    assert [e["credit_type"] for e in down.json()["entries"]] == ["SUBSCRIPTION", "PURCHASED"]
    assert down.json()["total_credits"] == 30

    result = await db.execute(
        select(AuditLog).where(
            AuditLog.account_id == account_id, AuditLog.event_type == "credits.adjusted"
        )
    )
    log = result.scalar_one()
    assert log.metadata_ == {"amount": -30, "credit_types": ["SUBSCRIPTION", "PURCHASED"]}


@pytest.mark.asyncio
async def test_reconcile_reports_consistent_ledger(db, sample_account):
    account_id, _ = sample_account
    admin = await _make_admin(db)

    try:
        async with await _as(db, admin) as client:
            await client.post(
                f"/admin/accounts/{account_id}/grants",
                json={"amount": 40, "reason": "Beta tester"},
            )
            resp = await client.get(f"/admin/accounts/{account_id}/reconcile")
            audit = await client.get(f"/admin/accounts/{account_id}/audit")
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 200
    assert resp.json() == {
        "account_id": str(account_id),
        "balance_total": 40,
        "ledger_total": 40,
        "consistent": True,
    }
    assert await get_ledger_total(db, account_id) == 40
    assert [e["event_type"] for e in audit.json()] == ["credits.granted"]


@pytest.mark.asyncio
async def test_unknown_account_is_not_found(db):
    admin = await _make_admin(db)

    try:
        async with await _as(db, admin) as client:
            resp = await client.get(f"/admin/accounts/{uuid.uuid4()}/reconcile")
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 404
