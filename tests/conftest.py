"""
Test fixtures using async SQLite for fast, isolated tests.
No PostgreSQL required for unit tests.
"""
import uuid

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.db.base import Base
from app.auth.models import User  # noqa: F401
from app.accounts.models import Account, AccountMember, MemberRole  # noqa: F401
from app.credits.models import CreditBalance, CreditTransaction  # noqa: F401
from app.pricing.models import CreditPack, FeaturePricingRule, TierCredits  # noqa: F401
from app.usage.models import FeatureUsage  # noqa: F401
from app.audit.models import AuditLog  # noqa: F401
from app.credits.models import FeatureType
from app.core.security import hash_password


@pytest_asyncio.fixture
async def db():
    """Create a fresh in-memory SQLite database for each test."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """File-backed SQLite so concurrent tasks each get their own connection."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"timeout": 30},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


async def _make_account(
    db: AsyncSession, email: str = "owner@example.com", plan: str = "free"
) -> tuple[uuid.UUID, uuid.UUID]:
    """Create a user owning one account, return (account_id, user_id)."""
    user = User(email=email, hashed_password=hash_password("password"))
    db.add(user)
    await db.flush()

    account = Account(name="Test Account", owner_id=user.id, plan=plan)
    db.add(account)
    await db.flush()

    db.add(AccountMember(user_id=user.id, account_id=account.id, role=MemberRole.OWNER))
    await db.commit()

    return account.id, user.id


@pytest_asyncio.fixture
async def sample_account(db: AsyncSession) -> tuple[uuid.UUID, uuid.UUID]:
    return await _make_account(db)


@pytest.fixture
def account_factory():
    """Async factory for extra accounts: await account_factory(db, email, plan)."""
    return _make_account


@pytest_asyncio.fixture
async def pricing_rules(db: AsyncSession) -> None:
    db.add_all(
        [
            FeaturePricingRule(
                feature_type=FeatureType.KEYWORD_RESEARCH, rule_key="per_unit", credit_cost=1
            ),
            FeaturePricingRule(
                feature_type=FeatureType.SENTIMENT_ANALYSIS, rule_key="per_unit", credit_cost=5
            ),
        ]
    )
    await db.commit()
