"""Account API routes."""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user, require_teacher
from app.models.account import Account
from app.services import ledger
from app.services.accounts import (
    format_currency,
    get_account,
    list_accounts_for_class,
    list_accounts_for_student,
)
from app.services.auth import Actor
from app.services.classrooms import require_class_owner

router = APIRouter(prefix="/api/accounts", tags=["accounts"])


class AccountItem(BaseModel):
    id: int
    user_id: int
    class_id: int
    balance: int
    currency: str
    display_balance: str
    last_updated: str


class ReconciliationItem(BaseModel):
    account_id: int
    balance: int
    ledger_total: int
    transaction_count: int
    balanced: bool


def to_item(a: Account) -> AccountItem:
    return AccountItem(
        id=a.id,
        user_id=a.user_id,
        class_id=a.class_id,
        balance=a.balance,
        currency=a.currency,
        display_balance=format_currency(a.balance, a.currency),
        last_updated=a.last_updated.isoformat(),
    )


@router.get("", response_model=list[AccountItem])
async def list_accounts(
    class_id: int | None = None,
    user: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Students get their own accounts; teachers get one class's accounts."""
    if user.is_student:
        accounts = await list_accounts_for_student(db, user.id)
        if class_id is not None:
            accounts = [a for a in accounts if a.class_id == class_id]
        return [to_item(a) for a in accounts]

    if class_id is None:
        raise HTTPException(status_code=400, detail="class_id is required")
    await require_class_owner(db, class_id, user.id)
    return [to_item(a) for a in await list_accounts_for_class(db, class_id)]


@router.get("/{account_id}/reconcile", response_model=ReconciliationItem)
async def reconcile(
    account_id: int,
    user: Actor = Depends(require_teacher),
    db: AsyncSession = Depends(get_db),
):
    """Check an account's balance against the sum of its ledger."""
    account = await get_account(db, account_id)
    await require_class_owner(db, account.class_id, user.id)
    rec = await ledger.reconcile_account(db, account_id)
    return ReconciliationItem(
        account_id=rec.account_id,
        balance=rec.balance,
        ledger_total=rec.ledger_total,
        transaction_count=rec.transaction_count,
        balanced=rec.balanced,
    )
