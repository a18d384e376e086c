"""Operator endpoints. Every mutation is paired with an audit log entry."""
import logging
import uuid

from fastapi import APIRouter, Query

from app.accounts.service import get_account
from app.admin.schemas import (
    AdjustmentRequest,
    AdminLedgerChange,
    AuditLogResponse,
    GrantRequest,
    ReconcileResponse,
)
from app.audit.service import get_account_events, log_event
from app.core.dependencies import AdminUser, DbSession
from app.credits import service as credits_service
from app.credits.models import CreditType, TransactionType
from app.credits.schemas import CreditTransactionResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post(
    "/accounts/{account_id}/grants", response_model=AdminLedgerChange, status_code=201
)
async def grant_bonus(
    account_id: uuid.UUID, body: GrantRequest, db: DbSession, admin: AdminUser
) -> AdminLedgerChange:
    await get_account(db, account_id)
    entry = await credits_service.credit(
        db,
        account_id,
        body.amount,
        credit_type=CreditType.BONUS,
        transaction_type=TransactionType.GRANT,
        description=body.reason,
        created_by=admin.id,
    )
    await log_event(
        db,
        account_id,
        "credits.granted",
        actor_user_id=admin.id,
        resource_type="credit_transaction",
        resource_id=str(entry.id),
        description=body.reason,
        metadata={"amount": body.amount, "credit_type": CreditType.BONUS.value},
    )
    await db.commit()
    logger.info("Admin %s granted %d bonus credits to %s", admin.id, body.amount, account_id)

    return AdminLedgerChange(
        entries=[CreditTransactionResponse.model_validate(entry)],
        total_credits=entry.balance_after,
    )


@router.post(
    "/accounts/{account_id}/adjustments",
    response_model=AdminLedgerChange,
    status_code=201,
)
async def adjust_credits(
    account_id: uuid.UUID, body: AdjustmentRequest, db: DbSession, admin: AdminUser
) -> AdminLedgerChange:
    """Signed correction. Negative amounts draw down in the usual debit order."""
    await get_account(db, account_id)
    if body.amount > 0:
        entries = [
            await credits_service.credit(
                db,
                account_id,
                body.amount,
                credit_type=body.credit_type or CreditType.PURCHASED,
                transaction_type=TransactionType.ADJUSTMENT,
                description=body.reason,
                created_by=admin.id,
            )
        ]
    else:
        entries = await credits_service.debit(
            db,
            account_id,
            -body.amount,
            transaction_type=TransactionType.ADJUSTMENT,
            description=body.reason,
            created_by=admin.id,
        )

    await log_event(
        db,
        account_id,
        "credits.adjusted",
        actor_user_id=admin.id,
        resource_type="credit_transaction",
        resource_id=str(entries[0].id),
        description=body.reason,
        metadata={
            "amount": body.amount,
            "credit_types": [e.credit_type.value for e in entries],
        },
    )
    await db.commit()
    logger.info("Admin %s adjusted account %s by %d", admin.id, account_id, body.amount)

    return AdminLedgerChange(
        entries=[CreditTransactionResponse.model_validate(e) for e in entries],
        total_credits=entries[-1].balance_after,
    )


@router.get("/accounts/{account_id}/reconcile", response_model=ReconcileResponse)
async def reconcile(
    account_id: uuid.UUID, db: DbSession, admin: AdminUser
) -> ReconcileResponse:
    await get_account(db, account_id)
    balance = await credits_service.get_balance(db, account_id)
    ledger_total = await credits_service.get_ledger_total(db, account_id)
    await db.commit()

    consistent = balance.total_credits == ledger_total
    if not consistent:
        logger.error(
            "Ledger drift on account %s: balance=%d ledger=%d",
            account_id,
            balance.total_credits,
            ledger_total,
        )
    return ReconcileResponse(
        account_id=account_id,
        balance_total=balance.total_credits,
        ledger_total=ledger_total,
        consistent=consistent,
    )


@router.get("/accounts/{account_id}/audit", response_model=list[AuditLogResponse])
async def audit_trail(
    account_id: uuid.UUID,
    db: DbSession,
    admin: AdminUser,
    limit: int = Query(50, ge=1, le=200),
) -> list[AuditLogResponse]:
    await get_account(db, account_id)
    events = await get_account_events(db, account_id, limit=limit)
    return [AuditLogResponse.model_validate(e) for e in events]
