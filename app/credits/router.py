import uuid

from fastapi import APIRouter, Query

from app.core.dependencies import CurrentUser, DbSession
from app.core.tenancy import require_account_member
from app.credits import service
from app.credits.models import FeatureType, TransactionType
from app.credits.schemas import BalanceResponse, CreditTransactionResponse, LedgerPage

router = APIRouter(prefix="/credits", tags=["credits"])


@router.get("/{account_id}/balance", response_model=BalanceResponse)
async def balance(
    account_id: uuid.UUID, db: DbSession, user: CurrentUser
) -> BalanceResponse:
    await require_account_member(db, account_id, user.id)
    bal = await service.get_balance(db, account_id)
    # Lazy creation may have inserted the row
    await db.commit()
    return BalanceResponse.model_validate(bal)


@router.get("/{account_id}/ledger", response_model=LedgerPage)
async def ledger(
    account_id: uuid.UUID,
    db: DbSession,
    user: CurrentUser,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    feature_type: FeatureType | None = None,
    transaction_type: TransactionType | None = None,
) -> LedgerPage:
    await require_account_member(db, account_id, user.id)
    entries, total = await service.get_ledger(
        db,
        account_id,
        limit=limit,
        offset=offset,
        feature_type=feature_type,
        transaction_type=transaction_type,
    )
    return LedgerPage(
        entries=[CreditTransactionResponse.model_validate(e) for e in entries],
        total=total,
    )
