"""
Credit ledger service, the financial core.

Rules:
- NEVER update or delete credit_transactions rows (append-only).
- Every change to a credit_balances row is paired with a transaction row
  carrying the same delta, inside the same database transaction.
- Mutations lock the account's balance row first, so writers on one account
  serialize (SELECT ... FOR UPDATE on PostgreSQL, the write lock taken by the
  balance upsert on SQLite).
- Idempotency via UNIQUE(account_id, idempotency_key).

Functions here flush but never commit. The caller owns the transaction and
must roll back when any of them raises.
"""
import logging
import uuid
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.accounts.models import Account
from app.core.exceptions import (
    AccountNotFoundError,
    IdempotencyError,
    InsufficientCreditsError,
)
from app.credits.models import (
    BALANCE_FIELDS,
    CreditBalance,
    CreditTransaction,
    CreditType,
    FeatureType,
    TransactionType,
)
from app.db.base import utcnow

logger = logging.getLogger(__name__)

# Expiring credits go first, purchased credits (which never expire) last.
DEBIT_PRIORITY: tuple[CreditType, ...] = (
    CreditType.SUBSCRIPTION,
    CreditType.BONUS,
    CreditType.PURCHASED,
)

_CREDIT_TRANSACTION_TYPES = frozenset(
    {
        TransactionType.PURCHASE,
        TransactionType.REFUND,
        TransactionType.ADJUSTMENT,
        TransactionType.GRANT,
    }
)
_DEBIT_TRANSACTION_TYPES = frozenset(
    {
        TransactionType.CONSUMPTION,
        TransactionType.ADJUSTMENT,
        TransactionType.REFUND,
    }
)


# ── Helpers ───────────────────────────────────────────────────────────────────


def _dialect_insert(db: AsyncSession):
    bind = db.bind
    if bind is not None and bind.dialect.name == "sqlite":
        return sqlite_insert
    return pg_insert


def _start_of_next_month(now: datetime) -> datetime:
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        return start.replace(year=start.year + 1, month=1)
    return start.replace(month=start.month + 1)


def _debit_keys(idempotency_key: str) -> list[str]:
    """The base key plus the per-credit-type keys a split debit writes."""
    return [idempotency_key] + [
        f"{idempotency_key}:{credit_type.value.lower()}" for credit_type in CreditType
    ]


async def _require_account(db: AsyncSession, account_id: uuid.UUID) -> None:
    result = await db.execute(select(Account.id).where(Account.id == account_id))
    if result.scalar_one_or_none() is None:
        raise AccountNotFoundError(str(account_id))


async def _key_exists(
    db: AsyncSession, account_id: uuid.UUID, keys: Iterable[str]
) -> bool:
    result = await db.execute(
        select(CreditTransaction.id)
        .where(
            CreditTransaction.account_id == account_id,
            CreditTransaction.idempotency_key.in_(list(keys)),
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def _reject_replay(
    db: AsyncSession,
    account_id: uuid.UUID,
    idempotency_key: str | None,
    keys: Iterable[str] | None = None,
) -> None:
    if idempotency_key is None:
        return
    if await _key_exists(db, account_id, keys or [idempotency_key]):
        logger.warning(
            "Ledger replay rejected for account %s (key=%s)", account_id, idempotency_key
        )
        raise IdempotencyError(idempotency_key)


def _balance_query(account_id: uuid.UUID, *, for_update: bool = False) -> Select:
    stmt = (
        select(CreditBalance)
        .where(CreditBalance.account_id == account_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    return stmt


async def _lock_balance(db: AsyncSession, account_id: uuid.UUID) -> CreditBalance:
    """Lock the account's balance row, creating it first if needed.

    Every mutation takes this lock before checking idempotency keys, so key
    lookups and balance checks for one account are serialized.
    """
    await ensure_balance_exists(db, account_id)
    result = await db.execute(_balance_query(account_id, for_update=True))
    return result.scalar_one()


def _append(
    db: AsyncSession,
    balance: CreditBalance,
    credit_type: CreditType,
    delta: int,
    **fields: Any,
) -> CreditTransaction:
    """Apply ``delta`` to one balance field and log it with the same amount."""
    field = BALANCE_FIELDS[credit_type]
    setattr(balance, field, getattr(balance, field) + delta)
    entry = CreditTransaction(
        account_id=balance.account_id,
        amount=delta,
        balance_after=balance.total_credits,
        credit_type=credit_type,
        **fields,
    )
    db.add(entry)
    return entry


async def _flush(db: AsyncSession, idempotency_key: str | None) -> None:
    try:
        await db.flush()
    except IntegrityError as exc:
        # Unique key backstop; the balance lock normally catches replays first.
        if idempotency_key is None:
            raise
        logger.warning("Idempotency conflict on flush (key=%s)", idempotency_key)
        raise IdempotencyError(idempotency_key) from exc


# ── Balance ───────────────────────────────────────────────────────────────────


async def ensure_balance_exists(db: AsyncSession, account_id: uuid.UUID) -> None:
    """Create a zeroed balance row for the account unless one exists.

    Safe under concurrency: the unique account_id plus ON CONFLICT DO NOTHING
    means racing callers end up with exactly one row.
    """
    await _require_account(db, account_id)
    insert = _dialect_insert(db)
    stmt = (
        insert(CreditBalance)
        .values(
            id=uuid.uuid4(),
            account_id=account_id,
            subscription_credits=0,
            purchased_credits=0,
            bonus_credits=0,
        )
        .on_conflict_do_nothing(index_elements=["account_id"])
    )
    await db.execute(stmt)


async def get_balance(db: AsyncSession, account_id: uuid.UUID) -> CreditBalance:
    """Return the account's balance row, creating it lazily when absent."""
    result = await db.execute(_balance_query(account_id))
    balance = result.scalar_one_or_none()
    if balance is None:
        await ensure_balance_exists(db, account_id)
        result = await db.execute(_balance_query(account_id))
        balance = result.scalar_one()
    return balance


async def get_ledger_total(db: AsyncSession, account_id: uuid.UUID) -> int:
    """SUM(amount) over the account's log. Must equal the projected total."""
    result = await db.execute(
        select(func.coalesce(func.sum(CreditTransaction.amount), 0)).where(
            CreditTransaction.account_id == account_id
        )
    )
    return int(result.scalar_one())


async def get_ledger(
    db: AsyncSession,
    account_id: uuid.UUID,
    *,
    limit: int = 50,
    offset: int = 0,
    feature_type: FeatureType | None = None,
    transaction_type: TransactionType | None = None,
) -> tuple[list[CreditTransaction], int]:
    """Return a page of ledger rows (newest first) and the filtered total."""
    query = select(CreditTransaction).where(CreditTransaction.account_id == account_id)
    if feature_type is not None:
        query = query.where(CreditTransaction.feature_type == feature_type)
    if transaction_type is not None:
        query = query.where(CreditTransaction.transaction_type == transaction_type)

    total = (
        await db.execute(select(func.count()).select_from(query.subquery()))
    ).scalar_one()
    result = await db.execute(
        query.order_by(CreditTransaction.created_at.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars().all()), int(total)


# ── Mutations ─────────────────────────────────────────────────────────────────


def plan_debit(
    balance: CreditBalance,
    amount: int,
    priority: Sequence[CreditType] = DEBIT_PRIORITY,
) -> list[tuple[CreditType, int]]:
    """Split a debit across credit types in ``priority`` order."""
    if amount > balance.total_credits:
        raise InsufficientCreditsError(balance=balance.total_credits, required=amount)

    parts: list[tuple[CreditType, int]] = []
    remaining = amount
    for credit_type in priority:
        if remaining == 0:
            break
        take = min(balance.credits_of(credit_type), remaining)
        if take > 0:
            parts.append((credit_type, take))
            remaining -= take
    return parts


async def credit(
    db: AsyncSession,
    account_id: uuid.UUID,
    amount: int,
    *,
    credit_type: CreditType,
    transaction_type: TransactionType,
    idempotency_key: str | None = None,
    description: str | None = None,
    feature_type: FeatureType | None = None,
    external_reference: str | None = None,
    metadata: dict[str, Any] | None = None,
    created_by: uuid.UUID | None = None,
) -> CreditTransaction:
    """
    Add credits of one type to an account.

    - Raises IdempotencyError if ``idempotency_key`` was already applied
      (callers treat that as "already credited").
    - Inserts one transaction row and bumps the matching balance field.

    Must be called within a transaction (the caller should commit).
    """
    if amount <= 0:
        raise ValueError("Credit amount must be positive")
    if transaction_type not in _CREDIT_TRANSACTION_TYPES:
        raise ValueError(f"{transaction_type.value} transactions cannot add credits")

    balance = await _lock_balance(db, account_id)
    await _reject_replay(db, account_id, idempotency_key)
    entry = _append(
        db,
        balance,
        credit_type,
        amount,
        transaction_type=transaction_type,
        feature_type=feature_type,
        idempotency_key=idempotency_key,
        external_reference=external_reference,
        description=description,
        metadata_=metadata,
        created_by=created_by,
    )
    await _flush(db, idempotency_key)

    logger.info(
        "Credited %d %s credits to account %s (%s), total=%d",
        amount,
        credit_type.value,
        account_id,
        transaction_type.value,
        balance.total_credits,
    )
    return entry


async def debit(
    db: AsyncSession,
    account_id: uuid.UUID,
    amount: int,
    *,
    transaction_type: TransactionType = TransactionType.CONSUMPTION,
    feature_type: FeatureType | None = None,
    idempotency_key: str | None = None,
    description: str | None = None,
    metadata: dict[str, Any] | None = None,
    created_by: uuid.UUID | None = None,
) -> list[CreditTransaction]:
    """
    Deduct credits from an account.

    - Locks the balance row, then checks total >= amount
      (InsufficientCreditsError otherwise, nothing changed).
    - Draws down in DEBIT_PRIORITY order, one negative row per credit type.
      A debit spanning several types suffixes each row's key with the type.
    - Idempotent via ``idempotency_key`` when given.

    Must be called within a transaction (the caller should commit).
    """
    if amount <= 0:
        raise ValueError("Debit amount must be positive")
    if transaction_type not in _DEBIT_TRANSACTION_TYPES:
        raise ValueError(f"{transaction_type.value} transactions cannot remove credits")

    balance = await _lock_balance(db, account_id)
    if idempotency_key is not None:
        await _reject_replay(db, account_id, idempotency_key, _debit_keys(idempotency_key))

    parts = plan_debit(balance, amount)
    split = len(parts) > 1

    entries = []
    for credit_type, part in parts:
        key = idempotency_key
        if key is not None and split:
            key = f"{idempotency_key}:{credit_type.value.lower()}"
        entries.append(
            _append(
                db,
                balance,
                credit_type,
                -part,
                transaction_type=transaction_type,
                feature_type=feature_type,
                idempotency_key=key,
                description=description,
                metadata_=metadata,
                created_by=created_by,
            )
        )
    await _flush(db, idempotency_key)

    logger.info(
        "Debited %d credits from account %s (%s) across %s, total=%d",
        amount,
        account_id,
        transaction_type.value,
        ",".join(credit_type.value for credit_type, _ in parts),
        balance.total_credits,
    )
    return entries


async def refund_feature(
    db: AsyncSession,
    account_id: uuid.UUID,
    amount: int,
    original_idempotency_key: str,
    *,
    feature_type: FeatureType,
    description: str | None = None,
    created_by: uuid.UUID | None = None,
) -> CreditTransaction:
    """Compensating credit for a failed paid operation.

    Refunds land as PURCHASED so they never expire.
    """
    return await credit(
        db,
        account_id,
        amount,
        credit_type=CreditType.PURCHASED,
        transaction_type=TransactionType.REFUND,
        feature_type=feature_type,
        idempotency_key=f"{original_idempotency_key}:refund",
        description=description
        or f"Refund for failed {feature_type.value.lower()} operation",
        created_by=created_by,
    )


async def claw_back_purchased(
    db: AsyncSession,
    account_id: uuid.UUID,
    amount: int,
    *,
    idempotency_key: str,
    external_reference: str | None = None,
    description: str | None = None,
) -> CreditTransaction | None:
    """Remove up to ``amount`` purchased credits after a payment refund.

    Never takes the purchased balance below zero. Returns None when there was
    nothing left to take back.
    """
    if amount <= 0:
        raise ValueError("Claw-back amount must be positive")

    balance = await _lock_balance(db, account_id)
    await _reject_replay(db, account_id, idempotency_key)
    clawed = min(balance.purchased_credits, amount)
    if clawed == 0:
        logger.info("No purchased credits to claw back for account %s", account_id)
        return None

    entry = _append(
        db,
        balance,
        CreditType.PURCHASED,
        -clawed,
        transaction_type=TransactionType.REFUND,
        idempotency_key=idempotency_key,
        external_reference=external_reference,
        description=description or f"Refund: {clawed} credits clawed back",
    )
    await _flush(db, idempotency_key)

    logger.info("Clawed back %d credits from account %s", clawed, account_id)
    return entry


async def expire_subscription_credits(
    db: AsyncSession,
    account_id: uuid.UUID,
    *,
    idempotency_key: str,
) -> CreditTransaction | None:
    """Write off whatever subscription credits remain on the account."""
    balance = await _lock_balance(db, account_id)
    await _reject_replay(db, account_id, idempotency_key)
    balance.subscription_credits_expire_at = None
    remaining = balance.subscription_credits
    entry = None
    if remaining > 0:
        entry = _append(
            db,
            balance,
            CreditType.SUBSCRIPTION,
            -remaining,
            transaction_type=TransactionType.ADJUSTMENT,
            idempotency_key=idempotency_key,
            description=f"Expired {remaining} unused subscription credits",
        )
    await _flush(db, idempotency_key)

    if entry is not None:
        logger.info("Expired %d subscription credits for account %s", remaining, account_id)
    return entry


async def grant_monthly_credits(
    db: AsyncSession,
    account_id: uuid.UUID,
    monthly_credits: int,
    *,
    now: datetime | None = None,
) -> CreditTransaction | None:
    """
    Start a new subscription period for the account.

    Unused subscription credits from the previous period are expired, then the
    tier's monthly allowance is granted. They expire at the start of next month.
    Applied at most once per calendar month (IdempotencyError on repeat).
    """
    now = now or utcnow()
    period = now.strftime("%Y-%m")
    grant_key = f"monthly_grant:{period}"

    balance = await _lock_balance(db, account_id)
    await _reject_replay(db, account_id, grant_key)
    # A zero-credit grant writes no ledger row, so the key alone can't catch it.
    last = balance.last_monthly_grant_at
    if last is not None and last.strftime("%Y-%m") == period:
        logger.warning(
            "Monthly grant for account %s (%s) already applied", account_id, period
        )
        raise IdempotencyError(grant_key)
    leftover = balance.subscription_credits
    if leftover > 0:
        _append(
            db,
            balance,
            CreditType.SUBSCRIPTION,
            -leftover,
            transaction_type=TransactionType.ADJUSTMENT,
            idempotency_key=f"monthly_expiry:{period}",
            description=f"Expired {leftover} unused subscription credits",
        )

    entry = None
    if monthly_credits > 0:
        entry = _append(
            db,
            balance,
            CreditType.SUBSCRIPTION,
            monthly_credits,
            transaction_type=TransactionType.GRANT,
            idempotency_key=grant_key,
            description=f"Monthly subscription credits for {period}",
        )
    balance.subscription_credits_expire_at = _start_of_next_month(now)
    balance.last_monthly_grant_at = now
    await _flush(db, grant_key)

    logger.info(
        "Monthly grant for account %s (%s): expired=%d granted=%d",
        account_id,
        period,
        leftover,
        monthly_credits,
    )
    return entry
