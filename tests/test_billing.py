"""Billing webhook: signature checks, pack credits, renewals, and replay safety."""
import json
import uuid

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.accounts.models import Account, SubscriptionStatus
from app.config import settings
from app.core.dependencies import get_db
from app.core.security import sign_payload
from app.credits.models import CreditType, TransactionType
from app.credits.service import credit, get_balance, get_ledger
from app.main import app
from app.pricing.models import TierCredits

SECRET = "whsec_test"


def _override_db(session: AsyncSession):
    async def _get_db():
        yield session

    return _get_db


@pytest.fixture
def webhook_secret(monkeypatch):
    monkeypatch.setattr(settings, "billing_webhook_secret", SECRET)
    return SECRET


def _event(event_type: str, obj: dict) -> bytes:
    return json.dumps(
        {"id": f"evt_{uuid.uuid4().hex[:8]}", "type": event_type, "data": {"object": obj}}
    ).encode()


async def _deliver(db: AsyncSession, body: bytes, signature: str | None = None):
    headers = {"Content-Type": "application/json"}
    if signature is None:
        signature = sign_payload(SECRET, body)
    if signature:
        headers["X-Signature"] = signature

    app.dependency_overrides[get_db] = _override_db(db)
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://testserver"
        ) as client:
            return await client.post("/billing/webhook", content=body, headers=headers)
    finally:
        app.dependency_overrides.clear()


def _pack_checkout(account_id: uuid.UUID, session_id: str = "cs_test_1") -> bytes:
    return _event(
        "checkout.session.completed",
        {
            "id": session_id,
            "metadata": {
                "account_id": str(account_id),
                "credits": "500",
                "pack_type": "one_time",
            },
        },
    )


@pytest.mark.asyncio
async def test_missing_secret_is_server_error(db, sample_account, monkeypatch):
    account_id, _ = sample_account
    monkeypatch.setattr(settings, "billing_webhook_secret", "")

    resp = await _deliver(db, _pack_checkout(account_id), signature="abc")
    assert resp.status_code == 500


@pytest.mark.asyncio
async def test_missing_or_bad_signature_is_rejected(db, sample_account, webhook_secret):
    account_id, _ = sample_account
    body = _pack_checkout(account_id)

    missing = await _deliver(db, body, signature="")
    assert missing.status_code == 400

    forged = await _deliver(db, body, signature=sign_payload("wrong-secret", body))
    assert forged.status_code == 400
    assert forged.json()["detail"] == "Invalid signature"

    assert (await get_balance(db, account_id)).total_credits == 0


@pytest.mark.asyncio
async def test_pack_checkout_credits_once(db, sample_account, webhook_secret):
    account_id, _ = sample_account
    body = _pack_checkout(account_id)

    first = await _deliver(db, body)
    assert first.status_code == 200
    assert first.json()["outcome"] == "credited"

    replay = await _deliver(db, body)
    assert replay.status_code == 200
    assert replay.json()["received"] is True
    assert replay.json()["outcome"] == "already_processed"

    balance = await get_balance(db, account_id)
    assert balance.purchased_credits == 500
    entries, total = await get_ledger(db, account_id)
    assert total == 1
    assert entries[0].idempotency_key == "checkout:cs_test_1"
    assert entries[0].external_reference == "cs_test_1"
    assert entries[0].transaction_type == TransactionType.PURCHASE


@pytest.mark.asyncio
async def test_camel_case_account_metadata_is_accepted(db, sample_account, webhook_secret):
    account_id, _ = sample_account
    body = _event(
        "checkout.session.completed",
        {
            "id": "cs_test_camel",
            "metadata": {"accountId": str(account_id), "credits": "100", "pack_type": "one_time"},
        },
    )

    resp = await _deliver(db, body)
    assert resp.json()["outcome"] == "credited"
    assert (await get_balance(db, account_id)).purchased_credits == 100


@pytest.mark.asyncio
async def test_charge_refund_claws_back_purchased(db, sample_account, webhook_secret):
    account_id, _ = sample_account
    await credit(
        db,
        account_id,
        500,
        credit_type=CreditType.PURCHASED,
        transaction_type=TransactionType.PURCHASE,
    )
    await db.commit()
    body = _event(
        "charge.refunded",
        {
            "id": "ch_1",
            "amount_refunded": 2000,
            "metadata": {"account_id": str(account_id), "credits": "200"},
        },
    )

    resp = await _deliver(db, body)
    assert resp.json()["outcome"] == "clawed_back"
    replay = await _deliver(db, body)
    assert replay.json()["outcome"] == "already_processed"

    assert (await get_balance(db, account_id)).purchased_credits == 300


@pytest.mark.asyncio
async def test_plan_renewal_grants_tier_credits(db, sample_account, webhook_secret):
    account_id, _ = sample_account
    db.add(TierCredits(tier="builder", monthly_credits=500))
    await db.commit()
    body = _event(
        "invoice.payment_succeeded",
        {
            "id": "in_1",
            "subscription": "sub_1",
            "subscription_details": {
                "metadata": {"account_id": str(account_id), "plan": "builder"}
            },
        },
    )

    resp = await _deliver(db, body)
    assert resp.json()["outcome"] == "granted"

    account = await db.get(Account, account_id)
    assert account.plan == "builder"
    assert account.subscription_status == SubscriptionStatus.ACTIVE
    balance = await get_balance(db, account_id)
    assert balance.subscription_credits == 500
    assert balance.subscription_credits_expire_at is not None


@pytest.mark.asyncio
async def test_auto_topup_invoice_credits_purchased(db, sample_account, webhook_secret):
    account_id, _ = sample_account
    body = _event(
        "invoice.payment_succeeded",
        {
            "id": "in_topup_1",
            "subscription_details": {
                "metadata": {
                    "account_id": str(account_id),
                    "credits": "250",
                    "pack_type": "auto_topup",
                }
            },
        },
    )

    resp = await _deliver(db, body)
    assert resp.json()["outcome"] == "credited"
    assert (await get_balance(db, account_id)).purchased_credits == 250


@pytest.mark.asyncio
async def test_failed_payment_marks_past_due(db, sample_account, webhook_secret):
    account_id, _ = sample_account
    body = _event(
        "invoice.payment_failed",
        {
            "id": "in_2",
            "subscription_details": {
                "metadata": {"account_id": str(account_id), "plan": "builder"}
            },
        },
    )

    resp = await _deliver(db, body)
    assert resp.json()["outcome"] == "updated"

    account = await db.get(Account, account_id)
    assert account.subscription_status == SubscriptionStatus.PAST_DUE


@pytest.mark.asyncio
async def test_unknown_event_is_ignored(db, webhook_secret):
    resp = await _deliver(db, _event("customer.created", {"id": "cus_1"}))
    assert resp.status_code == 200
    assert resp.json()["outcome"] == "ignored"


@pytest.mark.asyncio
async def test_malformed_pack_metadata_is_rejected(db, sample_account, webhook_secret):
    account_id, _ = sample_account
    body = _event(
        "checkout.session.completed",
        {
            "id": "cs_bad",
            "metadata": {"account_id": str(account_id), "credits": "-5", "pack_type": "one_time"},
        },
    )

    resp = await _deliver(db, body)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_subscription_end_expires_subscription_credits(db, sample_account, webhook_secret):
    account_id, _ = sample_account
    await credit(
        db,
        account_id,
        120,
        credit_type=CreditType.SUBSCRIPTION,
        transaction_type=TransactionType.GRANT,
    )
    await credit(
        db,
        account_id,
        30,
        credit_type=CreditType.PURCHASED,
        transaction_type=TransactionType.PURCHASE,
    )
    await db.commit()
    body = _event(
        "customer.subscription.deleted",
        {"id": "sub_9", "metadata": {"account_id": str(account_id), "plan": "builder"}},
    )

    resp = await _deliver(db, body)
    assert resp.json()["outcome"] == "updated"
    replay = await _deliver(db, body)
    assert replay.json()["outcome"] == "already_processed"

    account = await db.get(Account, account_id)
    assert account.plan == "free"
    assert account.subscription_status == SubscriptionStatus.CANCELED
    balance = await get_balance(db, account_id)
    assert balance.subscription_credits == 0
    assert balance.purchased_credits == 30
