"""Ledger API routes - single transactions, history and bulk awards."""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user, require_teacher
from app.models.transaction import Transaction
from app.services import ledger
from app.services.accounts import get_account, list_accounts_for_student
from app.services.auth import Actor
from app.services.bulk_award import award_bulk
from app.services.classrooms import list_class_ids_for_teacher, require_class_owner

router = APIRouter(prefix="/api/transactions", tags=["transactions"])


class TransactionCreate(BaseModel):
    account_id: int
    type: str
    amount: int
    reason: str | None = None
    notes: str | None = None


class TransactionCreated(BaseModel):
    success: bool
    transaction_id: int
    balance_after: int


class TransactionItem(BaseModel):
    id: int
    account_id: int
    user_id: int
    type: str
    amount: int
    balance_before: int
    balance_after: int
    reason: str | None
    notes: str | None
    created_by: int | None
    created_at: str


class BulkAwardRequest(BaseModel):
    student_ids: list[int]
    amount: int
    reason: str
    class_id: int | None = None


class BulkAwardResponse(BaseModel):
    success: bool
    transaction_count: int
    transaction_ids: list[int]


def to_item(t: Transaction) -> TransactionItem:
    return TransactionItem(
        id=t.id,
        account_id=t.account_id,
        user_id=t.user_id,
        type=t.type,
        amount=t.amount,
        balance_before=t.balance_before,
        balance_after=t.balance_after,
        reason=t.reason,
        notes=t.notes,
        created_by=t.created_by,
        created_at=t.created_at.isoformat(),
    )


@router.post("", response_model=TransactionCreated, status_code=201)
async def create_transaction(
    body: TransactionCreate,
    user: Actor = Depends(require_teacher),
    db: AsyncSession = Depends(get_db),
):
    """Record a deposit, withdrawal, redemption or adjustment on one account."""
    account = await get_account(db, body.account_id)
    await require_class_owner(db, account.class_id, user.id)
    txn = await ledger.record_transaction(
        db,
        body.account_id,
        body.type,
        body.amount,
        reason=body.reason,
        notes=body.notes,
        created_by=user.id,
    )
    return TransactionCreated(
        success=True, transaction_id=txn.id, balance_after=txn.balance_after
    )


@router.get("", response_model=list[TransactionItem])
async def transaction_history(
    account_id: int | None = None,
    user_id: int | None = None,
    limit: int | None = None,
    user: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Return ledger history, newest first.

    Students only ever see their own entries.  Teachers may look at any
    account or student within their own classes.
    """
    if account_id is not None:
        account = await get_account(db, account_id)
        if user.is_teacher:
            await require_class_owner(db, account.class_id, user.id)
        elif account.user_id != user.id:
            raise HTTPException(status_code=403, detail="Not your account")
        txns = await ledger.list_transactions_by_account(db, account_id, limit)
        return [to_item(t) for t in txns]

    if user_id is not None and user_id != user.id:
        if not user.is_teacher:
            raise HTTPException(status_code=403, detail="Not your transactions")
        owned = set(await list_class_ids_for_teacher(db, user.id))
        visible = {
            a.id for a in await list_accounts_for_student(db, user_id)
            if a.class_id in owned
        }
        txns = await ledger.list_transactions_by_user(db, user_id)
        txns = [t for t in txns if t.account_id in visible][:limit]
        return [to_item(t) for t in txns]

    txns = await ledger.list_transactions_by_user(db, user.id, limit)
    return [to_item(t) for t in txns]


@router.post("/bulk", response_model=BulkAwardResponse, status_code=201)
async def bulk_award(
    body: BulkAwardRequest,
    user: Actor = Depends(require_teacher),
    db: AsyncSession = Depends(get_db),
):
    """Award the same amount to several students at once."""
    result = await award_bulk(
        db,
        teacher_id=user.id,
        student_ids=body.student_ids,
        amount=body.amount,
        reason=body.reason,
        class_id=body.class_id,
    )
    return BulkAwardResponse(
        success=True,
        transaction_count=result.transaction_count,
        transaction_ids=result.transaction_ids,
    )


@router.get("/{transaction_id}", response_model=TransactionItem)
async def get_one(
    transaction_id: int,
    user: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    txn = await ledger.get_transaction(db, transaction_id)
    if user.is_teacher:
        account = await get_account(db, txn.account_id)
        await require_class_owner(db, account.class_id, user.id)
    elif txn.user_id != user.id:
        raise HTTPException(status_code=403, detail="Not your transaction")
    return to_item(txn)
